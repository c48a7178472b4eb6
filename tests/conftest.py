"""Shared fixtures for the datalab test suite."""

import copy
import csv
import json
import pytest
from pathlib import Path

from datalab.config import EngineConfig
from datalab.engine import DatasetEngine
from datalab.models import Dataset, DatasetFormat
from datalab.processing.store import RecordStore


SAMPLE_RECORDS = [
    {
        "instruction": "Write a function that adds two numbers.",
        "output": "def add(a, b):\n    return a + b",
        "category": "python",
        "score": "0.9",
    },
    {
        "instruction": "Explain recursion briefly.",
        "output": "Recursion is when a function calls itself.",
        "category": "concepts",
        "score": 0.7,
    },
    {
        # Same fingerprint as record 0 after whitespace/case normalization
        "instruction": "write a   function that adds two numbers.",
        "output": "def add(a, b):\n    return a + b",
        "category": "python",
        "score": "0.5",
    },
    {
        "instruction": "Reverse a string in JavaScript.",
        "output": "const reverse = s => s.split('').reverse().join('');",
        "category": "javascript",
        "score": "n/a",
    },
    {
        "instruction": "",
        "output": "Orphan answer without a prompt.",
        "category": "concepts",
        "score": 0.1,
    },
    {
        "instruction": "Sort a list in Python.",
        "output": "Use sorted(items) or items.sort().",
        "category": "python",
        "score": 0.8,
    },
]


def write_jsonl(path: Path, records) -> Path:
    with open(path, "w", encoding="utf-8") as f:
        for record in records:
            f.write(json.dumps(record, ensure_ascii=False) + "\n")
    return path


def write_csv(path: Path, header, rows) -> Path:
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        writer.writerows(rows)
    return path


@pytest.fixture
def sample_records():
    return copy.deepcopy(SAMPLE_RECORDS)


@pytest.fixture
def jsonl_file(tmp_path, sample_records):
    return write_jsonl(tmp_path / "data.jsonl", sample_records)


@pytest.fixture
def json_file(tmp_path, sample_records):
    path = tmp_path / "data.json"
    path.write_text(json.dumps(sample_records, ensure_ascii=False), encoding="utf-8")
    return path


@pytest.fixture
def csv_file(tmp_path, sample_records):
    header = ["instruction", "output", "category", "score"]
    rows = [[str(record[name]) for name in header] for record in sample_records]
    return write_csv(tmp_path / "data.csv", header, rows)


@pytest.fixture
def engine():
    # Small batches so batching, progress and cancellation paths get exercised
    engine = DatasetEngine(EngineConfig(batch_size=2))
    yield engine
    engine.close()


@pytest.fixture
def loaded_engine(engine, jsonl_file):
    engine.import_dataset(jsonl_file)
    return engine


@pytest.fixture
def make_store():
    """Build a RecordStore straight from a list of records."""
    def _make(records):
        fields = list(dict.fromkeys(name for record in records for name in record))
        dataset = Dataset(
            id="test",
            source_path="memory.jsonl",
            format=DatasetFormat.JSONL,
            record_count=len(records),
            fields=fields,
            size_bytes=0,
        )
        return RecordStore(dataset, records)
    return _make
