"""Select a target-sized training subset from the filtered records."""

import math
import random
from dataclasses import dataclass
from typing import Callable, Dict, Hashable, List, Optional, Sequence

from loguru import logger

from ..config import DEFAULT_TARGET_PERCENT, DistillConfig, EngineConfig, FieldMap
from ..models import DistillSummary
from ..tasks import CancellationToken, ProgressCallback, no_progress
from .records import extract_value, is_empty, value_to_string
from .store import RecordStore


@dataclass
class RecordMeta:
    """The parts of a record the sampling strategies look at."""
    id: int
    category: Optional[str]
    score: Optional[float]


@dataclass
class DistillResult:
    selected_ids: List[int]
    summary: DistillSummary


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def target_size(config: DistillConfig, total: int) -> int:
    """Target T: explicit count, else a percentage of `total`; clamped to [0, total]."""
    if config.target_count is not None:
        target = config.target_count
    else:
        percent = config.target_percent if config.target_percent is not None else DEFAULT_TARGET_PERCENT
        target = round_half_up(total * percent / 100)
    return max(0, min(target, total))


def parse_score(value) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        score = float(value)
    elif isinstance(value, str):
        try:
            score = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return None if math.isnan(score) else score


def allocate_quotas(sizes: Dict[Hashable, int], target: int) -> Dict[Hashable, int]:
    """
    Split `target` across groups proportionally to their sizes.

    Largest-remainder rounding: every group gets the floor of its share, the
    leftover units go to the largest fractional parts (ties in group order).
    Quotas sum to `target` and never exceed a group's size when target <= total.
    """
    total = sum(sizes.values())
    if total == 0:
        return {key: 0 for key in sizes}

    quotas = {}
    remainders = []
    for index, (key, size) in enumerate(sizes.items()):
        quota, remainder = divmod(size * target, total)
        quotas[key] = quota
        remainders.append((-remainder, index, key))

    leftover = target - sum(quotas.values())
    for _, _, key in sorted(remainders)[:leftover]:
        quotas[key] += 1
    return quotas


def select_random(metas: Sequence[RecordMeta], target: int, rng: random.Random) -> List[int]:
    ids = sorted(meta.id for meta in metas)
    return rng.sample(ids, target)


def select_diversity(metas: Sequence[RecordMeta], target: int, rng: random.Random) -> List[int]:
    """Round-robin over category buckets, one record per bucket per pass."""
    buckets: Dict[Optional[str], List[int]] = {}
    for meta in sorted(metas, key=lambda m: m.id):
        buckets.setdefault(meta.category, []).append(meta.id)

    queues = list(buckets.values())
    selected: List[int] = []
    depth = 0
    while len(selected) < target:
        progressed = False
        for queue in queues:
            if depth < len(queue):
                selected.append(queue[depth])
                progressed = True
                if len(selected) >= target:
                    break
        if not progressed:
            break
        depth += 1
    return selected


def select_importance(metas: Sequence[RecordMeta], target: int, rng: random.Random) -> List[int]:
    """Highest score first; missing scores last; ties by ascending id."""
    ranked = sorted(
        metas,
        key=lambda m: (m.score is None, -(m.score or 0.0), m.id),
    )
    return [meta.id for meta in ranked[:target]]


STRATEGIES: Dict[str, Callable[[Sequence[RecordMeta], int, random.Random], List[int]]] = {
    "random": select_random,
    "diversity": select_diversity,
    "importance": select_importance,
}


class DistillationEngine:
    """Apply a DistillConfig to the filtered records of a store."""

    def __init__(self, engine_config: Optional[EngineConfig] = None):
        self.engine_config = engine_config or EngineConfig()

    def collect_meta(
        self,
        store: RecordStore,
        ids: Sequence[int],
        field_map: FieldMap,
        category_field: Optional[str] = None,
        token: Optional[CancellationToken] = None,
        report: ProgressCallback = no_progress,
    ) -> List[RecordMeta]:
        category_field = field_map.category or category_field
        metas = []
        for batch in store.iter_batches(ids, batch_size=self.engine_config.batch_size):
            if token is not None:
                token.raise_if_cancelled()
            for record_id, record in batch:
                category = extract_value(record, category_field)
                metas.append(RecordMeta(
                    id=record_id,
                    category=None if is_empty(category) else value_to_string(category),
                    score=parse_score(extract_value(record, field_map.score)),
                ))
            report(len(metas), len(ids), f"Prepared {len(metas)} records")
        return metas

    def select(self, metas: Sequence[RecordMeta], config: DistillConfig, seed: Optional[int]) -> List[int]:
        target = target_size(config, len(metas))
        strategy = STRATEGIES[config.strategy]
        rng = random.Random(seed)

        if not config.preserve_category_balance:
            return sorted(strategy(metas, target, rng))

        groups: Dict[Optional[str], List[RecordMeta]] = {}
        for meta in metas:
            groups.setdefault(meta.category, []).append(meta)
        quotas = allocate_quotas({key: len(group) for key, group in groups.items()}, target)
        logger.debug(f"Category quotas: {quotas}")

        selected: List[int] = []
        for key, group in groups.items():
            selected.extend(strategy(group, quotas[key], rng))
        return sorted(selected)

    def preview(
        self,
        store: RecordStore,
        ids: Sequence[int],
        config: DistillConfig,
        field_map: FieldMap,
        category_field: Optional[str] = None,
        token: Optional[CancellationToken] = None,
        report: ProgressCallback = no_progress,
    ) -> DistillResult:
        seed = config.random_seed
        if seed is None and config.strategy == "random":
            seed = random.SystemRandom().randrange(2 ** 32)
            logger.info(f"No random seed configured, using {seed}")

        metas = self.collect_meta(store, ids, field_map, category_field, token, report)
        if token is not None:
            token.raise_if_cancelled()
        selected = self.select(metas, config, seed)

        summary = DistillSummary(
            total_count=len(metas),
            selected_count=len(selected),
            removed_count=len(metas) - len(selected),
            seed=seed,
        )
        logger.info(
            f"Distilled {summary.total_count} → {summary.selected_count} records "
            f"({config.strategy})"
        )
        return DistillResult(selected_ids=selected, summary=summary)
