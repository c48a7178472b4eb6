from typing import Any, List, Optional, Sequence

from ..config import EngineConfig, FieldMap
from ..exceptions import ValidationError
from ..models import PreviewCell, PreviewItem, PreviewPage
from .records import Record, extract_value, is_empty, value_to_string
from .store import RecordStore

MAX_NESTING = 3


def truncate_text(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


class PreviewService:
    """Paginate a view and render records into display cells."""

    def __init__(self, engine_config: Optional[EngineConfig] = None):
        self.engine_config = engine_config or EngineConfig()

    def classify(self, text: str, is_code_field: bool) -> str:
        if is_code_field or "\n" in text or len(text) > self.engine_config.code_length_threshold:
            return "code"
        return "text"

    def render_value(self, name: str, value: Any, is_code_field: bool = False, depth: int = 0) -> PreviewCell:
        if isinstance(value, (dict, list)) and depth < MAX_NESTING:
            items = value.items() if isinstance(value, dict) else (
                (f"[{i}]", v) for i, v in enumerate(value)
            )
            return PreviewCell(
                name=name,
                kind="structured",
                entries=[self.render_value(str(k), v, depth=depth + 1) for k, v in items],
            )

        text = value_to_string(value)
        return PreviewCell(
            name=name,
            kind=self.classify(text, is_code_field),
            value=truncate_text(text, self.engine_config.preview_text_limit),
        )

    def render_record(self, record: Record, field_map: FieldMap) -> List[PreviewCell]:
        cells = []
        for name in field_map.bound_fields():
            value = extract_value(record, name)
            if is_empty(value):
                continue
            cells.append(self.render_value(name, value, is_code_field=name == field_map.code))

        if not cells:
            # Nothing mapped (or all mapped fields empty): show the first raw fields.
            for name in list(record)[:self.engine_config.preview_fallback_fields]:
                cells.append(self.render_value(name, record[name]))
        return cells

    def page(
        self,
        store: RecordStore,
        ids: Sequence[int],
        field_map: FieldMap,
        page: int,
        page_size: int,
    ) -> PreviewPage:
        if page < 1:
            raise ValidationError(f"page must be >= 1, got {page}")
        if page_size < 1:
            raise ValidationError(f"page_size must be >= 1, got {page_size}")

        start = (page - 1) * page_size
        items = [
            PreviewItem(id=record_id, fields=self.render_record(store.get(record_id), field_map))
            for record_id in ids[start:start + page_size]
        ]
        return PreviewPage(items=items, total_count=len(ids), page=page, page_size=page_size)
