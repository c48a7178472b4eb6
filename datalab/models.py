"""Value types returned by the engine."""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Result(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DatasetFormat(str, Enum):
    JSON = "json"
    JSONL = "jsonl"
    CSV = "csv"


class View(str, Enum):
    ALL = "all"
    FILTERED = "filtered"
    SELECTED = "selected"
    REMOVED = "removed"


class FilterRule(str, Enum):
    """Filter rules in evaluation order."""
    REQUIRED_FIELDS = "required_fields"
    MIN_LENGTH = "min_length"
    MAX_LENGTH = "max_length"
    INCLUDE_KEYWORDS = "include_keywords"
    EXCLUDE_KEYWORDS = "exclude_keywords"
    CATEGORY = "category"
    DUPLICATE_EXACT = "duplicate_exact"
    DUPLICATE_FUZZY = "duplicate_fuzzy"


DEDUPE_RULES = (FilterRule.DUPLICATE_EXACT, FilterRule.DUPLICATE_FUZZY)


class Dataset(_Result):
    id: str
    source_path: str
    format: DatasetFormat
    record_count: int
    fields: List[str]
    size_bytes: int


class FilterVerdict(_Result):
    included: bool
    failed_rule: Optional[FilterRule] = None


class FilterSummary(_Result):
    total_count: int
    filtered_count: int
    duplicates_removed: int
    rejections: Dict[FilterRule, int] = Field(default_factory=dict)


class DistillSummary(_Result):
    total_count: int
    selected_count: int
    removed_count: int
    seed: Optional[int] = None


class PreviewCell(_Result):
    """A rendered field. Structured values carry their breakdown in `entries`."""
    name: str
    kind: str  # text | code | structured
    value: str = ""
    entries: List["PreviewCell"] = Field(default_factory=list)


class PreviewItem(_Result):
    id: int
    fields: List[PreviewCell]


class PreviewPage(_Result):
    items: List[PreviewItem]
    total_count: int
    page: int
    page_size: int


class CategoryCount(_Result):
    name: str
    count: int


class ManualChange(_Result):
    id: int
    include: bool


class ProgressEvent(_Result):
    stage: str
    current: int
    total: int
    message: Optional[str] = None
