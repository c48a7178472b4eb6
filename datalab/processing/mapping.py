from typing import Dict, List, Optional, Sequence, Tuple

from loguru import logger

from ..config import FieldMap

# Candidate substrings per role, in priority order.
ROLE_CANDIDATES: Dict[str, Tuple[str, ...]] = {
    "instruction": ("instruction", "prompt", "input"),
    "output": ("output", "response", "answer"),
    "code": ("code", "solution"),
    "category": ("category", "lang", "type"),
    "score": ("score", "quality", "rating"),
}


def suggest_field(fields: Sequence[str], candidates: Sequence[str]) -> Optional[str]:
    """First field, in dataset order, whose lowercase name contains any candidate."""
    for name in fields:
        lowered = name.lower()
        if any(candidate in lowered for candidate in candidates):
            return name
    return None


class FieldMapper:
    """Holds the current role -> field binding."""

    def __init__(self, field_map: Optional[FieldMap] = None):
        self.field_map = field_map or FieldMap()

    def set_field_map(self, field_map: FieldMap):
        self.field_map = FieldMap.model_validate(field_map)

    def auto_map(self, fields: List[str]) -> FieldMap:
        """Fill every unset role from the dataset's fields; set roles are kept."""
        updates = {}
        for role, candidates in ROLE_CANDIDATES.items():
            if getattr(self.field_map, role):
                continue
            suggestion = suggest_field(fields, candidates)
            if suggestion is not None:
                updates[role] = suggestion

        if updates:
            logger.debug(f"Auto-mapped fields: {updates}")
            self.field_map = self.field_map.model_copy(update=updates)
        return self.field_map
