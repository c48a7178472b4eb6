"""Rule-based record filtering with exact and fuzzy deduplication."""

from collections import Counter
from dataclasses import dataclass
from typing import List, Optional

from loguru import logger

from ..config import EngineConfig, FieldMap, FilterConfig
from ..models import DEDUPE_RULES, CategoryCount, FilterRule, FilterSummary, FilterVerdict
from ..tasks import CancellationToken, ProgressCallback, no_progress
from .deduplicate import ExactDeduplicator, TextDeduplicator
from .records import Record, extract_value, fingerprint, is_empty, length_text, value_to_string
from .store import RecordStore


@dataclass
class FilterResult:
    """Verdicts for one filter pass. `failures[id]` is None for included records."""

    failures: List[Optional[FilterRule]]
    summary: FilterSummary

    @property
    def filtered_ids(self) -> List[int]:
        return [i for i, failure in enumerate(self.failures) if failure is None]

    def verdict(self, record_id: int) -> FilterVerdict:
        failure = self.failures[record_id]
        return FilterVerdict(included=failure is None, failed_rule=failure)


class RecordRules:
    """Per-record rules 1-6, evaluated in order; returns the first failing rule."""

    def __init__(self, config: FilterConfig, field_map: FieldMap):
        self.config = config
        self.field_map = field_map
        fold = (lambda s: s) if config.keyword_case_sensitive else str.lower
        self._fold = fold
        self.include_keywords = [fold(k) for k in config.include_keywords]
        self.exclude_keywords = [fold(k) for k in config.exclude_keywords]
        self.categories = {c.lower() for c in config.categories}

    def check(self, record: Record) -> Optional[FilterRule]:
        config = self.config

        for name in config.require_fields:
            if name not in record or is_empty(record[name]):
                return FilterRule.REQUIRED_FIELDS

        text = length_text(record, self.field_map, config.length_scope)
        length = len(text)
        if config.min_length is not None and length < config.min_length:
            return FilterRule.MIN_LENGTH
        if config.max_length is not None and length > config.max_length:
            return FilterRule.MAX_LENGTH

        if self.include_keywords or self.exclude_keywords:
            folded = self._fold(text)
            if not all(k in folded for k in self.include_keywords):
                return FilterRule.INCLUDE_KEYWORDS
            if any(k in folded for k in self.exclude_keywords):
                return FilterRule.EXCLUDE_KEYWORDS

        if self.categories and config.category_field:
            category = value_to_string(extract_value(record, config.category_field))
            if category.lower() not in self.categories:
                return FilterRule.CATEGORY

        return None


class FilterEngine:
    """Evaluate a FilterConfig against every record of a store."""

    def __init__(self, engine_config: Optional[EngineConfig] = None):
        self.engine_config = engine_config or EngineConfig()

    def apply(
        self,
        store: RecordStore,
        config: FilterConfig,
        field_map: FieldMap,
        token: Optional[CancellationToken] = None,
        report: ProgressCallback = no_progress,
    ) -> FilterResult:
        settings = self.engine_config
        rules = RecordRules(config, field_map)
        exact = ExactDeduplicator() if config.dedupe_exact else None
        fuzzy = TextDeduplicator(
            num_perm=settings.num_perm,
            threshold=settings.fuzzy_threshold,
            ngram_size=settings.ngram_size,
        ) if config.dedupe_fuzzy else None

        total = len(store)
        failures: List[Optional[FilterRule]] = []
        for batch in store.iter_batches(batch_size=settings.batch_size):
            if token is not None:
                token.raise_if_cancelled()
            for record_id, record in batch:
                failure = rules.check(record)
                if failure is None and (exact or fuzzy):
                    text = fingerprint(record, field_map)
                    if exact and exact.is_duplicate(text):
                        failure = FilterRule.DUPLICATE_EXACT
                    elif fuzzy and fuzzy.is_duplicate(str(record_id), text):
                        failure = FilterRule.DUPLICATE_FUZZY
                failures.append(failure)
            report(len(failures), total, f"Filtered {len(failures)} records")

        rejections = Counter(f for f in failures if f is not None)
        summary = FilterSummary(
            total_count=total,
            filtered_count=failures.count(None),
            duplicates_removed=sum(rejections[rule] for rule in DEDUPE_RULES),
            rejections=dict(rejections),
        )
        logger.info(
            f"Filtered {summary.total_count} → {summary.filtered_count} records "
            f"({summary.duplicates_removed} duplicates removed)"
        )
        if rejections:
            by_rule = {rule.value: n for rule, n in rejections.items()}
            logger.debug(f"Rejections by rule: {by_rule}")
        return FilterResult(failures=failures, summary=summary)


def collect_categories(store: RecordStore, field: str) -> List[CategoryCount]:
    """Count distinct values of `field`, most frequent first, ties in first-seen order."""
    counts: Counter = Counter()
    for batch in store.iter_batches():
        for _, record in batch:
            if field in record:
                counts[value_to_string(record[field])] += 1
    return [CategoryCount(name=name, count=count) for name, count in counts.most_common()]
