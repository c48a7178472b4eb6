"""
Dataset import with registry-based reader dispatch.

Provides an abstract reader base class, concrete JSON / JSON-Lines / CSV
readers, and a registry that selects the reader by file extension or by a
declared format. Readers yield raw records; the Importer batches them into a
fresh RecordStore so a failed or cancelled import never touches the dataset
that is currently loaded.
"""

import csv
import json
import sys
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from loguru import logger

from ..exceptions import IoError, ParseError, UnsupportedFormatError
from ..models import Dataset, DatasetFormat
from ..tasks import CancellationToken, ProgressCallback, no_progress
from .records import Record
from .store import RecordStore

# Lift the csv module's 128 KiB per-field default; cells may hold whole source files
try:
    csv.field_size_limit(sys.maxsize)
except OverflowError:
    csv.field_size_limit(2 ** 31 - 1)


class IngestReader(ABC):
    """Abstract base class for dataset readers."""

    format: DatasetFormat

    @abstractmethod
    def extensions(self) -> list[str]:
        """Return file extensions this reader handles (e.g. ['.jsonl'])."""
        ...

    @abstractmethod
    def read(self, path: Path) -> Iterator[Record]:
        """Yield records from a file in source order."""
        ...

    def can_read(self, path: Path) -> bool:
        """Check if this reader can handle the given file path."""
        return path.suffix.lower() in self.extensions()


class JSONReader(IngestReader):
    """Reader for a top-level JSON array of objects. Parses the file whole."""

    format = DatasetFormat.JSON

    def extensions(self) -> list[str]:
        return [".json"]

    def read(self, path: Path) -> Iterator[Record]:
        with open(path, "r", encoding="utf-8-sig") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ParseError(f"Invalid JSON: {e.msg}", line=e.lineno, column=e.colno) from e

        if not isinstance(data, list):
            raise ParseError(
                f"Top-level JSON value must be an array, got {type(data).__name__}"
            )
        for index, element in enumerate(data):
            if not isinstance(element, dict):
                raise ParseError(
                    f"Array element {index} must be an object, got {type(element).__name__}"
                )
            yield element


class JSONLinesReader(IngestReader):
    """Reader for JSON-Lines files: one object per non-blank line."""

    format = DatasetFormat.JSONL

    def extensions(self) -> list[str]:
        return [".jsonl"]

    def read(self, path: Path) -> Iterator[Record]:
        with open(path, "r", encoding="utf-8-sig") as f:
            for line_no, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    value = json.loads(line)
                except json.JSONDecodeError as e:
                    raise ParseError(f"Invalid JSON: {e.msg}", line=line_no, column=e.colno) from e
                if not isinstance(value, dict):
                    raise ParseError(
                        f"Expected a JSON object, got {type(value).__name__}", line=line_no
                    )
                yield value


class CSVReader(IngestReader):
    """Reader for CSV files whose first row names the fields."""

    format = DatasetFormat.CSV

    def extensions(self) -> list[str]:
        return [".csv"]

    def read(self, path: Path) -> Iterator[Record]:
        with open(path, "r", encoding="utf-8-sig", newline="") as f:
            reader = csv.reader(f)
            try:
                header = next(reader, None)
                if not header:
                    raise ParseError("Missing CSV header row", line=1)
                duplicates = sorted({name for name in header if header.count(name) > 1})
                if duplicates:
                    raise ParseError(f"Duplicate CSV header names: {duplicates}", line=1)

                for row in reader:
                    if not row:
                        continue
                    if len(row) != len(header):
                        raise ParseError(
                            f"Expected {len(header)} columns, found {len(row)}",
                            line=reader.line_num,
                        )
                    yield dict(zip(header, row))
            except csv.Error as e:
                raise ParseError(f"Malformed CSV: {e}", line=reader.line_num) from e


class ReaderRegistry:
    """Registry that maps file extensions and formats to reader instances."""

    def __init__(self):
        self._readers: dict[str, IngestReader] = {}
        self._formats: dict[DatasetFormat, IngestReader] = {}

    def register(self, reader: IngestReader) -> None:
        """Register a reader for its format and all its supported extensions."""
        self._formats[reader.format] = reader
        for ext in reader.extensions():
            self._readers[ext] = reader
            logger.debug(f"Registered reader {reader.__class__.__name__} for {ext}")

    def get_reader(self, path: Path) -> Optional[IngestReader]:
        """Return the appropriate reader for a file path, or None."""
        return self._readers.get(path.suffix.lower())

    def supported_extensions(self) -> list[str]:
        """Return all registered file extensions."""
        return list(self._readers.keys())

    def resolve(self, path: Path, format: Optional[Union[str, DatasetFormat]] = None) -> IngestReader:
        """
        Pick the reader for a path, preferring an explicitly declared format.

        Raises:
            UnsupportedFormatError: If neither the format nor the extension is known.
        """
        if format is not None:
            try:
                return self._formats[DatasetFormat(format)]
            except (ValueError, KeyError):
                raise UnsupportedFormatError(f"Unsupported format '{format}'") from None

        reader = self.get_reader(path)
        if reader is None:
            raise UnsupportedFormatError(
                f"Unsupported file extension '{path.suffix}'. "
                f"Supported: {self.supported_extensions()}"
            )
        return reader


# Module-level registry pre-populated with built-in readers
registry = ReaderRegistry()
registry.register(JSONReader())
registry.register(JSONLinesReader())
registry.register(CSVReader())


class Importer:
    """Builds a RecordStore from a file, batch by batch."""

    def __init__(self, readers: ReaderRegistry = registry, batch_size: int = 1000):
        self.readers = readers
        self.batch_size = batch_size

    def import_file(
        self,
        path: Path,
        format: Optional[Union[str, DatasetFormat]] = None,
        token: Optional[CancellationToken] = None,
        report: ProgressCallback = no_progress,
    ) -> RecordStore:
        path = Path(path)
        reader = self.readers.resolve(path, format)
        if not path.is_file():
            raise IoError(f"Cannot read {path}: not a file")

        logger.info(f"Reading {reader.format.value}: {path}")

        records: List[Record] = []
        fields: Dict[str, None] = {}
        try:
            size_bytes = path.stat().st_size
            for record in reader.read(path):
                for name in record:
                    fields.setdefault(name, None)
                records.append(record)
                if len(records) % self.batch_size == 0:
                    if token is not None:
                        token.raise_if_cancelled()
                    report(len(records), 0, f"Imported {len(records)} records")
        except UnicodeDecodeError as e:
            raise ParseError(f"File is not valid UTF-8: {e.reason}") from e
        except OSError as e:
            raise IoError(f"Cannot read {path}: {e}") from e

        if token is not None:
            token.raise_if_cancelled()

        dataset = Dataset(
            id=str(uuid.uuid4()),
            source_path=str(path),
            format=reader.format,
            record_count=len(records),
            fields=list(fields),
            size_bytes=size_bytes,
        )
        report(len(records), len(records), "Import complete")
        logger.info(f"Imported {len(records)} records with {len(fields)} fields from {path.name}")
        return RecordStore(dataset, records)


def import_dataset(path: Path, format: Optional[str] = None) -> RecordStore:
    """Convenience function: import a file with the global registry."""
    return Importer().import_file(path, format)
