from typing import Iterable, List, Optional, Set

from loguru import logger

from ..models import DistillSummary, ManualChange


class SelectionStore:
    """
    Authoritative include/exclude flags for the filtered records.

    Flags exist only for ids in the filtered view. A fresh filter pass leaves
    every filtered record selected; distillation replaces the selection and
    clears manual overrides; manual changes touch only the ids they name.
    """

    def __init__(self, filtered_ids: Iterable[int] = ()):
        self.version = 0
        self.seed: Optional[int] = None
        self.reset(filtered_ids)

    def reset(self, filtered_ids: Iterable[int]):
        self._filtered: List[int] = sorted(filtered_ids)
        self._members: Set[int] = set(self._filtered)
        self._selected: Set[int] = set(self._filtered)
        self._overrides: Set[int] = set()
        self.seed = None
        self.version += 1

    def apply_distillation(self, selected_ids: Iterable[int], seed: Optional[int] = None):
        selected = set(selected_ids)
        outside = selected - self._members
        if outside:
            raise ValueError(f"{len(outside)} selected ids are not in the filtered view")
        self._selected = selected
        self._overrides = set()
        self.seed = seed
        self.version += 1

    def update_manual_selection(self, changes: Iterable[ManualChange]) -> DistillSummary:
        applied = 0
        for change in changes:
            if change.id not in self._members:
                logger.debug(f"Ignoring manual change for id {change.id}: not in filtered view")
                continue
            if change.include:
                self._selected.add(change.id)
            else:
                self._selected.discard(change.id)
            self._overrides.add(change.id)
            applied += 1
        if applied:
            self.version += 1
        return self.summary()

    def is_selected(self, record_id: int) -> bool:
        return record_id in self._selected

    def is_overridden(self, record_id: int) -> bool:
        return record_id in self._overrides

    @property
    def filtered_ids(self) -> List[int]:
        return list(self._filtered)

    def selected_ids(self) -> List[int]:
        return [i for i in self._filtered if i in self._selected]

    def unselected_ids(self) -> List[int]:
        return [i for i in self._filtered if i not in self._selected]

    def summary(self) -> DistillSummary:
        selected = len(self._selected)
        return DistillSummary(
            total_count=len(self._filtered),
            selected_count=selected,
            removed_count=len(self._filtered) - selected,
            seed=self.seed,
        )
