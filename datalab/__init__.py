from .config import Config, DistillConfig, EngineConfig, FieldMap, FilterConfig, Settings
from .engine import DatasetEngine
from .exceptions import (
    DatalabError,
    IoError,
    NotFoundError,
    ParseError,
    TaskBusyError,
    TaskCancelled,
    UnsupportedFormatError,
    ValidationError,
)
from .models import (
    CategoryCount,
    Dataset,
    DistillSummary,
    FilterSummary,
    ManualChange,
    PreviewPage,
    ProgressEvent,
    View,
)

__version__ = "0.1.0"

__all__ = [
    "Config", "DistillConfig", "EngineConfig", "FieldMap", "FilterConfig", "Settings",
    "DatasetEngine",
    "DatalabError", "IoError", "NotFoundError", "ParseError", "TaskBusyError",
    "TaskCancelled", "UnsupportedFormatError", "ValidationError",
    "CategoryCount", "Dataset", "DistillSummary", "FilterSummary", "ManualChange",
    "PreviewPage", "ProgressEvent", "View",
]
