from typing import Dict, Optional, Tuple, Union

from ..exceptions import ValidationError
from ..models import View
from .selection import SelectionStore


def parse_view(view: Union[str, View]) -> View:
    try:
        return View(view)
    except ValueError:
        raise ValidationError(
            f"Unknown view '{view}'. Expected one of {[v.value for v in View]}"
        ) from None


class ViewResolver:
    """
    Ordered id sequences for the four views, cached per input versions.

    The cache key is (dataset version, filter version, selection version);
    any upstream change produces a new key and drops every cached view.
    """

    def __init__(self):
        self._cache: Dict[View, Tuple[int, ...]] = {}
        self._cache_key: Optional[Tuple[int, int, int]] = None

    def invalidate(self):
        self._cache.clear()
        self._cache_key = None

    def resolve(
        self,
        view: Union[str, View],
        record_count: int,
        selection: SelectionStore,
        dataset_version: int,
        filter_version: int,
    ) -> Tuple[int, ...]:
        view = parse_view(view)
        key = (dataset_version, filter_version, selection.version)
        if key != self._cache_key:
            self._cache.clear()
            self._cache_key = key

        ids = self._cache.get(view)
        if ids is None:
            ids = self._compute(view, record_count, selection)
            self._cache[view] = ids
        return ids

    @staticmethod
    def _compute(view: View, record_count: int, selection: SelectionStore) -> Tuple[int, ...]:
        if view is View.ALL:
            return tuple(range(record_count))
        if view is View.FILTERED:
            return tuple(selection.filtered_ids)
        if view is View.SELECTED:
            return tuple(selection.selected_ids())
        # Unselected filtered ids plus everything the filter excluded.
        return tuple(i for i in range(record_count) if not selection.is_selected(i))
