import json
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
import yaml

ROLES = ("instruction", "output", "code", "category", "score")
DEFAULT_TARGET_PERCENT = 10.0


class _CamelModel(BaseModel):
    # Accept snake_case and the camelCase settings shape; revalidate instances
    # handed back in by callers since fields are mutable.
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        revalidate_instances="always",
        validate_assignment=True,
    )


class FieldMap(_CamelModel):
    instruction: Optional[str] = None
    output: Optional[str] = None
    code: Optional[str] = None
    category: Optional[str] = None
    score: Optional[str] = None

    def bound_fields(self) -> List[str]:
        """Mapped field names in role order, each listed once."""
        names = []
        for role in ROLES:
            name = getattr(self, role)
            if name and name not in names:
                names.append(name)
        return names


class FilterConfig(_CamelModel):
    require_fields: List[str] = Field(default_factory=list)
    min_length: Optional[int] = Field(default=None, ge=0)
    max_length: Optional[int] = Field(default=None, ge=0)
    include_keywords: List[str] = Field(default_factory=list)
    exclude_keywords: List[str] = Field(default_factory=list)
    category_field: Optional[str] = None
    categories: List[str] = Field(default_factory=list)
    dedupe_exact: bool = True
    dedupe_fuzzy: bool = False
    length_scope: Literal["instruction", "output", "combined"] = "instruction"
    keyword_case_sensitive: bool = False

    @field_validator("require_fields")
    @classmethod
    def _unique_fields(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))

    @field_validator("include_keywords", "exclude_keywords")
    @classmethod
    def _drop_blank_keywords(cls, value: List[str]) -> List[str]:
        return [keyword for keyword in value if keyword]

    @model_validator(mode="after")
    def _check_bounds(self) -> "FilterConfig":
        if (
            self.min_length is not None
            and self.max_length is not None
            and self.min_length > self.max_length
        ):
            raise ValueError(
                f"min_length ({self.min_length}) exceeds max_length ({self.max_length})"
            )
        return self


class DistillConfig(_CamelModel):
    target_count: Optional[int] = Field(default=None, ge=0)
    target_percent: Optional[float] = Field(default=None, ge=0, le=100)
    strategy: Literal["random", "diversity", "importance"] = "diversity"
    random_seed: Optional[int] = Field(default=None, ge=0)
    preserve_category_balance: bool = False


class EngineConfig(BaseModel):
    batch_size: int = Field(default=1000, gt=0)
    fuzzy_threshold: float = Field(default=0.85, gt=0, le=1)
    ngram_size: int = Field(default=5, gt=0)
    num_perm: int = Field(default=128, gt=0)
    preview_text_limit: int = Field(default=480, gt=0)
    code_length_threshold: int = Field(default=240, gt=0)
    preview_fallback_fields: int = Field(default=2, ge=0)


class Settings(_CamelModel):
    """Persisted UI settings; the store that owns them lives outside the engine."""

    last_path: Optional[str] = None
    language: Optional[str] = None
    field_map: FieldMap = Field(default_factory=FieldMap)
    filters: FilterConfig = Field(default_factory=FilterConfig)
    distill: DistillConfig = Field(default_factory=DistillConfig)

    @classmethod
    def load(cls, path: Path) -> Optional["Settings"]:
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return cls.model_validate(json.load(f))

    def save(self, path: Path):
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.model_dump(by_alias=True), f, indent=2, ensure_ascii=False)


class Config(BaseModel):
    engine: EngineConfig = Field(default_factory=EngineConfig)
    field_map: FieldMap = Field(default_factory=FieldMap)
    filters: FilterConfig = Field(default_factory=FilterConfig)
    distill: DistillConfig = Field(default_factory=DistillConfig)
    log_level: str = Field(default="INFO")
    log_file: Optional[Path] = None

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return cls(**(data or {}))

    def to_yaml(self, path: Path):
        with open(path, "w") as f:
            yaml.dump(self.model_dump(mode="json"), f, default_flow_style=False)
