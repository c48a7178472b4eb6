import csv
import json
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Sequence, TextIO

from loguru import logger

from ..config import EngineConfig
from ..exceptions import IoError, UnsupportedFormatError
from ..processing.records import value_to_string
from ..processing.store import RecordStore
from ..tasks import CancellationToken, ProgressCallback, no_progress

EXPORT_FORMATS = ("json", "jsonl", "csv")


def resolve_format(path: Path, format: Optional[str] = None) -> str:
    """Explicit format if given, else the destination's extension."""
    resolved = (format or path.suffix.lstrip(".")).lower()
    if resolved not in EXPORT_FORMATS:
        raise UnsupportedFormatError(
            f"Unsupported export format '{format or path.suffix}'. Supported: {list(EXPORT_FORMATS)}"
        )
    return resolved


@contextmanager
def atomic_output(path: Path, newline: Optional[str] = None) -> Iterator[TextIO]:
    """
    Open a temporary sibling of `path` for writing and move it into place on success.

    On any exception (including cancellation) the temporary file is removed
    and `path` is left as it was.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline=newline) as f:
            yield f
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


class DatasetExporter:
    """Stream records of a view to JSON, JSON-Lines or CSV."""

    def __init__(
        self,
        store: RecordStore,
        engine_config: Optional[EngineConfig] = None,
        token: Optional[CancellationToken] = None,
        report: ProgressCallback = no_progress,
    ):
        self.store = store
        self.batch_size = (engine_config or EngineConfig()).batch_size
        self.token = token
        self.report = report

    def _batches(self, ids: Sequence[int]):
        written = 0
        for batch in self.store.iter_batches(ids, batch_size=self.batch_size):
            if self.token is not None:
                self.token.raise_if_cancelled()
            yield batch
            written += len(batch)
            self.report(written, len(ids), f"Exported {written} records")

    def export_json(self, ids: Sequence[int], path: Path):
        """Write a single array of the raw records."""
        with atomic_output(path) as f:
            f.write("[")
            first = True
            for batch in self._batches(ids):
                for _, record in batch:
                    f.write("\n" if first else ",\n")
                    json.dump(record, f, ensure_ascii=False)
                    first = False
            f.write("\n]\n" if not first else "]\n")

    def export_jsonl(self, ids: Sequence[int], path: Path):
        with atomic_output(path) as f:
            for batch in self._batches(ids):
                for _, record in batch:
                    json.dump(record, f, ensure_ascii=False)
                    f.write("\n")

    def export_csv(self, ids: Sequence[int], path: Path):
        """Write the dataset's field header, then one row per record."""
        fields = self.store.fields
        with atomic_output(path, newline="") as f:
            writer = csv.writer(f)
            writer.writerow(fields)
            for batch in self._batches(ids):
                for _, record in batch:
                    writer.writerow([value_to_string(record.get(name)) for name in fields])

    def export(self, ids: Sequence[int], path: Path, format: Optional[str] = None) -> Path:
        path = Path(path)
        format = resolve_format(path, format)
        logger.info(f"Exporting {len(ids)} records to {path} ({format})")

        try:
            if format == "json":
                self.export_json(ids, path)
            elif format == "jsonl":
                self.export_jsonl(ids, path)
            else:
                self.export_csv(ids, path)
        except OSError as e:
            raise IoError(f"Cannot write {path}: {e}") from e

        logger.success(f"Wrote {len(ids)} records to {path}")
        return path


def export_records(
    store: RecordStore,
    ids: Sequence[int],
    path: Path,
    format: Optional[str] = None,
) -> Path:
    """Convenience function to export records without task plumbing."""
    return DatasetExporter(store).export(ids, path, format)
