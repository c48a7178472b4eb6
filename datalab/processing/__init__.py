from .store import RecordStore
from .ingest import Importer, import_dataset, registry as ingest_registry
from .mapping import FieldMapper
from .filter import FilterEngine, FilterResult, collect_categories
from .distill import DistillationEngine, allocate_quotas, target_size
from .selection import SelectionStore
from .views import ViewResolver
from .preview import PreviewService

__all__ = [
    "RecordStore",
    "Importer",
    "import_dataset",
    "ingest_registry",
    "FieldMapper",
    "FilterEngine",
    "FilterResult",
    "collect_categories",
    "DistillationEngine",
    "allocate_quotas",
    "target_size",
    "SelectionStore",
    "ViewResolver",
    "PreviewService",
]
