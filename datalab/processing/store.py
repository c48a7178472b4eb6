from typing import Iterator, List, Optional, Sequence, Tuple

from ..exceptions import NotFoundError
from ..models import Dataset
from .records import Record


class RecordStore:
    """
    In-memory arena of imported records.

    Record ids are list positions: dense, stable for the lifetime of the
    store and never reused. Views elsewhere are plain id sequences into it.
    """

    def __init__(self, dataset: Dataset, records: List[Record]):
        if dataset.record_count != len(records):
            raise ValueError(
                f"Dataset declares {dataset.record_count} records, got {len(records)}"
            )
        self.dataset = dataset
        self._records = records

    def __len__(self) -> int:
        return len(self._records)

    @property
    def fields(self) -> List[str]:
        return self.dataset.fields

    def get(self, record_id: int) -> Record:
        if not 0 <= record_id < len(self._records):
            raise NotFoundError(
                f"Record id {record_id} out of range [0, {len(self._records)})"
            )
        return self._records[record_id]

    def iter_batches(
        self,
        ids: Optional[Sequence[int]] = None,
        batch_size: int = 1000,
    ) -> Iterator[List[Tuple[int, Record]]]:
        """Yield (id, record) pairs in batches, over `ids` or the whole store."""
        if ids is None:
            ids = range(len(self._records))
        for start in range(0, len(ids), batch_size):
            yield [(i, self._records[i]) for i in ids[start:start + batch_size]]
