"""
Command surface of the dataset engine.

One DatasetEngine holds one open dataset. Long-running commands (import,
filter, distill, export) and every state mutation go through the engine's
TaskCoordinator, so at most one runs at a time. A command computes its result
off to the side and commits it under the state lock only when it finishes;
a failure or cancellation leaves the previous state untouched. Reads take the
same lock and therefore never observe a half-committed state.
"""

import copy
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional, Type, TypeVar, Union

from loguru import logger
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .config import DistillConfig, EngineConfig, FieldMap, FilterConfig, Settings
from .exceptions import NotFoundError, ValidationError
from .export.exporter import DatasetExporter
from .models import (
    CategoryCount,
    Dataset,
    DistillSummary,
    FilterSummary,
    FilterVerdict,
    ManualChange,
    PreviewPage,
    View,
)
from .processing.distill import DistillationEngine
from .processing.filter import FilterEngine, FilterResult, collect_categories
from .processing.ingest import Importer
from .processing.mapping import FieldMapper
from .processing.preview import PreviewService
from .processing.selection import SelectionStore
from .processing.store import RecordStore
from .processing.views import ViewResolver, parse_view
from .tasks import Subscriber, TaskCoordinator, TaskFunc

M = TypeVar("M", bound=BaseModel)


def _coerce(model_cls: Type[M], value: Any) -> M:
    try:
        return model_cls.model_validate(value)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {model_cls.__name__}: {e}") from e


class DatasetEngine:
    """Import, filter, distill, preview and export one dataset at a time."""

    def __init__(
        self,
        engine_config: Optional[EngineConfig] = None,
        settings: Optional[Settings] = None,
    ):
        self.engine_config = engine_config or EngineConfig()
        self.tasks = TaskCoordinator()

        self._lock = threading.RLock()
        self._importer = Importer(batch_size=self.engine_config.batch_size)
        self._filter_engine = FilterEngine(self.engine_config)
        self._distiller = DistillationEngine(self.engine_config)
        self._previewer = PreviewService(self.engine_config)
        self._mapper = FieldMapper()
        self._views = ViewResolver()
        self._selection = SelectionStore()

        self._store: Optional[RecordStore] = None
        self._filter_result: Optional[FilterResult] = None
        self._filter_key: Optional[tuple] = None
        self._dataset_version = 0
        self._filter_version = 0

        self.filter_config = FilterConfig()
        self.distill_config = DistillConfig()
        self.last_path: Optional[str] = None
        self.language: Optional[str] = None

        if settings is not None:
            self.apply_settings(settings)

    # -- state accessors -------------------------------------------------

    @property
    def dataset(self) -> Optional[Dataset]:
        with self._lock:
            return self._store.dataset if self._store is not None else None

    @property
    def field_map(self) -> FieldMap:
        with self._lock:
            return self._mapper.field_map.model_copy()

    @property
    def filter_summary(self) -> Optional[FilterSummary]:
        with self._lock:
            return self._filter_result.summary if self._filter_result is not None else None

    def _require_store(self) -> RecordStore:
        if self._store is None:
            raise NotFoundError("No dataset loaded")
        return self._store

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a progress subscriber; returns a function that removes it."""
        return self.tasks.subscribe(callback)

    def cancel_task(self) -> bool:
        return self.tasks.cancel()

    def close(self):
        self.tasks.shutdown()

    # -- long-running commands -------------------------------------------

    def import_dataset(self, path: Union[str, Path], format: Optional[str] = None) -> Dataset:
        return self.tasks.run("import", self._import_task(path, format))

    def apply_filters(
        self,
        config: Optional[FilterConfig] = None,
        field_map: Optional[FieldMap] = None,
    ) -> FilterSummary:
        return self.tasks.run("filter", self._filter_task(config, field_map))

    def preview_distillation(
        self,
        config: Optional[DistillConfig] = None,
        field_map: Optional[FieldMap] = None,
    ) -> DistillSummary:
        return self.tasks.run("distill", self._distill_task(config, field_map))

    def export(self, view: Union[str, View], path: Union[str, Path], format: Optional[str] = None):
        self.tasks.run("export", self._export_task(view, path, format))

    def submit(self, command: str, *args, **kwargs) -> Future:
        """
        Run a long-running command on the worker thread.

        `command` is one of "import", "filter", "distill", "export"; arguments
        are those of the matching synchronous method. Raises TaskBusyError
        immediately if another task is running.
        """
        builders = {
            "import": self._import_task,
            "filter": self._filter_task,
            "distill": self._distill_task,
            "export": self._export_task,
        }
        if command not in builders:
            raise ValidationError(f"Unknown command '{command}'. Expected one of {list(builders)}")
        return self.tasks.submit(command, builders[command](*args, **kwargs))

    def _import_task(self, path: Union[str, Path], format: Optional[str] = None) -> TaskFunc:
        path = Path(path)

        def task(token, report):
            store = self._importer.import_file(path, format, token, report)
            with self._lock:
                self._store = store
                self._dataset_version += 1
                self._filter_result = None
                self._filter_key = None
                self._filter_version += 1
                self._selection.reset(range(len(store)))
                self._views.invalidate()
                self._mapper.auto_map(store.fields)
                self.last_path = str(path)
            return store.dataset

        return task

    # Inputs are validated inside the task so a rejected request is recorded
    # by the coordinator as a failed task.

    def _filter_task(
        self,
        config: Optional[FilterConfig] = None,
        field_map: Optional[FieldMap] = None,
    ) -> TaskFunc:
        def task(token, report):
            with self._lock:
                filters = _coerce(FilterConfig, config if config is not None else self.filter_config)
                mapping = _coerce(FieldMap, field_map if field_map is not None else self._mapper.field_map)
                store = self._require_store()
                key = (self._dataset_version, filters.model_dump_json(), mapping.model_dump_json())
                if key == self._filter_key and self._filter_result is not None:
                    logger.debug("Filter inputs unchanged, reusing cached verdicts")
                    return self._filter_result.summary

            result = self._filter_engine.apply(store, filters, mapping, token, report)
            with self._lock:
                self._filter_result = result
                self._filter_key = key
                self._filter_version += 1
                self._selection.reset(result.filtered_ids)
                self._views.invalidate()
                self.filter_config = filters
                self._mapper.set_field_map(mapping)
            logger.info(f"Applied filters, {result.summary.filtered_count} records retained")
            return result.summary

        return task

    def _distill_task(
        self,
        config: Optional[DistillConfig] = None,
        field_map: Optional[FieldMap] = None,
    ) -> TaskFunc:
        def task(token, report):
            with self._lock:
                distill = _coerce(DistillConfig, config if config is not None else self.distill_config)
                mapping = _coerce(FieldMap, field_map if field_map is not None else self._mapper.field_map)
                store = self._require_store()
                ids = self._selection.filtered_ids
                category_field = self.filter_config.category_field

            result = self._distiller.preview(
                store, ids, distill, mapping, category_field, token, report
            )
            with self._lock:
                self._selection.apply_distillation(result.selected_ids, result.summary.seed)
                self.distill_config = distill
                self._mapper.set_field_map(mapping)
            logger.info(f"Previewed distillation, {result.summary.selected_count} selected")
            return result.summary

        return task

    def _export_task(
        self,
        view: Union[str, View],
        path: Union[str, Path],
        format: Optional[str] = None,
    ) -> TaskFunc:
        path = Path(path)

        def task(token, report):
            resolved = parse_view(view)
            with self._lock:
                store = self._require_store()
                ids = self._resolve(resolved)
            DatasetExporter(store, self.engine_config, token, report).export(ids, path, format)

        return task

    # -- quick mutations -------------------------------------------------

    def set_field_map(self, field_map: FieldMap):
        def task(token, report):
            mapping = _coerce(FieldMap, field_map)
            with self._lock:
                self._mapper.set_field_map(mapping)

        self.tasks.run("field_map", task)

    def update_manual_selection(
        self,
        changes: Iterable[Union[ManualChange, dict]],
    ) -> DistillSummary:
        changes = list(changes)

        def task(token, report):
            parsed = [_coerce(ManualChange, change) for change in changes]
            with self._lock:
                self._require_store()
                return self._selection.update_manual_selection(parsed)

        return self.tasks.run("selection", task)

    def apply_settings(self, settings: Union[Settings, dict]):
        """Seed field map and configurations from persisted settings."""
        def task(token, report):
            loaded = _coerce(Settings, settings)
            with self._lock:
                self._mapper.set_field_map(loaded.field_map)
                self.filter_config = loaded.filters
                self.distill_config = loaded.distill
                self.last_path = loaded.last_path
                self.language = loaded.language

        self.tasks.run("settings", task)

    def snapshot_settings(self) -> Settings:
        with self._lock:
            return Settings(
                last_path=self.last_path,
                language=self.language,
                field_map=self._mapper.field_map,
                filters=self.filter_config,
                distill=self.distill_config,
            )

    # -- reads -----------------------------------------------------------

    def _resolve(self, view: Union[str, View]):
        store = self._require_store()
        return self._views.resolve(
            view, len(store), self._selection, self._dataset_version, self._filter_version
        )

    def view_ids(self, view: Union[str, View]) -> List[int]:
        with self._lock:
            return list(self._resolve(view))

    def list_categories(self, field: str) -> List[CategoryCount]:
        with self._lock:
            return collect_categories(self._require_store(), field)

    def get_preview(self, view: Union[str, View], page: int = 1, page_size: int = 20) -> PreviewPage:
        with self._lock:
            store = self._require_store()
            ids = self._resolve(view)
            return self._previewer.page(store, ids, self._mapper.field_map, page, page_size)

    def get_record(self, record_id: int) -> dict:
        with self._lock:
            return copy.deepcopy(self._require_store().get(record_id))

    def get_verdict(self, record_id: int) -> FilterVerdict:
        with self._lock:
            self._require_store().get(record_id)
            if self._filter_result is None:
                return FilterVerdict(included=True)
            return self._filter_result.verdict(record_id)
