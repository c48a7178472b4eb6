"""Helpers for reading text out of raw records."""

import hashlib
import json
from typing import Any, Dict, Optional

from ..config import FieldMap

Record = Dict[str, Any]


def value_to_string(value: Any) -> str:
    """Render a raw value as text: strings verbatim, null empty, everything else as JSON."""
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    return json.dumps(value, ensure_ascii=False)


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


def extract_value(record: Record, field: Optional[str]) -> Any:
    if not field:
        return None
    if field in record:
        return record[field]
    return record.get(field.lower())


def extract_text(record: Record, field: Optional[str]) -> str:
    return value_to_string(extract_value(record, field))


def length_text(record: Record, field_map: FieldMap, scope: str) -> str:
    """Text a record is measured and keyword-matched by."""
    if scope == "output":
        return extract_text(record, field_map.output)
    if scope == "combined":
        return extract_text(record, field_map.instruction) + extract_text(record, field_map.output)
    return extract_text(record, field_map.instruction)


def normalize_text(text: str) -> str:
    return " ".join(text.split()).lower()


def fingerprint(record: Record, field_map: FieldMap) -> str:
    """Canonical instruction + output text used for deduplication."""
    instruction = normalize_text(extract_text(record, field_map.instruction))
    output = normalize_text(extract_text(record, field_map.output))
    if instruction and output:
        return f"{instruction} {output}"
    return instruction or output


def fingerprint_hash(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()
