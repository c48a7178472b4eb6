"""Shared fixtures for end-to-end tests."""

import json
import pytest

from datalab.config import EngineConfig
from datalab.engine import DatasetEngine


CATEGORIES = ("python", "python", "python", "python", "javascript", "javascript", "rust")


def build_records(count=100):
    """
    Instruction records spread over three uneven categories.

    Every tenth record (ids 9, 19, ...) repeats its predecessor's instruction
    and output, so an exact dedupe pass drops count // 10 records.
    """
    records = []
    for i in range(count):
        if i % 10 == 9:
            source = records[i - 1]
            instruction, output = source["instruction"], source["output"]
        else:
            instruction = f"Task {i}: explain topic {i % 13} in detail"
            output = f"Answer for task {i}, covering topic {i % 13} step by step."
        records.append({
            "id": f"rec-{i:03d}",
            "instruction": instruction,
            "output": output,
            "category": CATEGORIES[i % len(CATEGORIES)],
            "score": (i * 37 % 100) / 100,
        })
    return records


@pytest.fixture
def curation_records():
    return build_records()


@pytest.fixture
def curation_file(tmp_path, curation_records):
    path = tmp_path / "curation.jsonl"
    with open(path, "w", encoding="utf-8") as f:
        for record in curation_records:
            f.write(json.dumps(record) + "\n")
    return path


@pytest.fixture
def pipeline_engine():
    engine = DatasetEngine(EngineConfig(batch_size=16))
    yield engine
    engine.close()
