"""Tests for the DatasetEngine command surface."""

import json
import threading

import pytest

from datalab.config import DistillConfig, FieldMap, FilterConfig, Settings
from datalab.engine import DatasetEngine
from datalab.exceptions import (
    NotFoundError,
    ParseError,
    TaskBusyError,
    TaskCancelled,
    ValidationError,
)
from datalab.models import FilterRule
from datalab.tasks import TaskState


class TestImport:
    """Importing replaces the dataset and resets derived state."""

    def test_import_sets_dataset_and_auto_maps(self, loaded_engine, jsonl_file):
        dataset = loaded_engine.dataset

        assert dataset.record_count == 6
        assert loaded_engine.last_path == str(jsonl_file)
        assert loaded_engine.field_map == FieldMap(
            instruction="instruction", output="output", category="category", score="score"
        )

    def test_everything_selected_before_filtering(self, loaded_engine):
        assert loaded_engine.view_ids("all") == [0, 1, 2, 3, 4, 5]
        assert loaded_engine.view_ids("filtered") == [0, 1, 2, 3, 4, 5]
        assert loaded_engine.view_ids("selected") == [0, 1, 2, 3, 4, 5]
        assert loaded_engine.view_ids("removed") == []
        assert loaded_engine.get_verdict(2).included is True
        assert loaded_engine.filter_summary is None

    def test_failed_import_keeps_previous_dataset(self, loaded_engine, tmp_path):
        previous = loaded_engine.dataset
        broken = tmp_path / "broken.jsonl"
        broken.write_text('{"a": 1}\nnot json\n')

        with pytest.raises(ParseError):
            loaded_engine.import_dataset(broken)

        assert loaded_engine.dataset == previous
        assert loaded_engine.tasks.last_stage == "import"

    def test_reimport_resets_filter_and_selection(self, loaded_engine, jsonl_file):
        loaded_engine.apply_filters()
        loaded_engine.preview_distillation()

        loaded_engine.import_dataset(jsonl_file)

        assert loaded_engine.filter_summary is None
        assert loaded_engine.view_ids("selected") == [0, 1, 2, 3, 4, 5]

    def test_explicit_mapping_survives_import(self, engine, jsonl_file):
        engine.set_field_map(FieldMap(instruction="output"))
        engine.import_dataset(jsonl_file)

        assert engine.field_map.instruction == "output"
        assert engine.field_map.category == "category"

    def test_commands_need_a_dataset(self, engine):
        with pytest.raises(NotFoundError):
            engine.apply_filters()
        with pytest.raises(NotFoundError):
            engine.get_preview("all")


class TestFilterAndDistill:
    def test_filter_updates_views(self, loaded_engine):
        summary = loaded_engine.apply_filters()

        assert summary.filtered_count == 5
        assert summary.duplicates_removed == 1
        assert loaded_engine.view_ids("filtered") == [0, 1, 3, 4, 5]
        assert loaded_engine.view_ids("selected") == [0, 1, 3, 4, 5]
        assert loaded_engine.view_ids("removed") == [2]
        assert loaded_engine.get_verdict(2).failed_rule == FilterRule.DUPLICATE_EXACT

    def test_distill_then_manual_changes(self, loaded_engine):
        loaded_engine.apply_filters()
        summary = loaded_engine.preview_distillation(
            DistillConfig(strategy="importance", target_count=3)
        )

        assert summary.selected_count == 3
        assert loaded_engine.view_ids("selected") == [0, 1, 5]
        assert loaded_engine.view_ids("removed") == [2, 3, 4]

        summary = loaded_engine.update_manual_selection([
            {"id": 3, "include": True},
            {"id": 0, "include": False},
            {"id": 2, "include": True},  # filtered out, ignored
        ])

        assert loaded_engine.view_ids("selected") == [1, 3, 5]
        assert summary.selected_count == 3
        assert summary.removed_count == 2

    def test_identical_filter_keeps_selection(self, loaded_engine):
        first = loaded_engine.apply_filters()
        loaded_engine.preview_distillation(DistillConfig(target_count=2))
        selected = loaded_engine.view_ids("selected")

        again = loaded_engine.apply_filters()

        assert again == first
        assert loaded_engine.view_ids("selected") == selected

    def test_changed_filter_resets_selection(self, loaded_engine):
        loaded_engine.apply_filters()
        loaded_engine.preview_distillation(DistillConfig(target_count=1))

        loaded_engine.apply_filters(FilterConfig(min_length=30))

        assert loaded_engine.view_ids("selected") == [0, 3]
        assert loaded_engine.filter_config.min_length == 30

    def test_invalid_filter_config(self, loaded_engine):
        with pytest.raises(ValidationError):
            loaded_engine.apply_filters({"min_length": 10, "max_length": 1})
        assert loaded_engine.tasks.last_stage == "filter"
        assert loaded_engine.tasks.last_state is TaskState.FAILED
        assert loaded_engine.filter_summary is None

    def test_invalid_manual_change_recorded_as_failed(self, loaded_engine):
        with pytest.raises(ValidationError):
            loaded_engine.update_manual_selection([{"include": True}])
        assert loaded_engine.tasks.last_stage == "selection"
        assert loaded_engine.tasks.last_state is TaskState.FAILED

    def test_cancelled_filter_keeps_previous_result(self, loaded_engine):
        previous = loaded_engine.apply_filters()
        loaded_engine.subscribe(lambda event: loaded_engine.cancel_task())

        with pytest.raises(TaskCancelled):
            loaded_engine.apply_filters(FilterConfig(min_length=30))

        assert loaded_engine.filter_summary == previous
        assert loaded_engine.view_ids("selected") == [0, 1, 3, 4, 5]
        assert loaded_engine.filter_config.min_length is None

    def test_distill_seed_reported(self, loaded_engine):
        loaded_engine.apply_filters()
        summary = loaded_engine.preview_distillation(
            DistillConfig(strategy="random", target_count=2, random_seed=5)
        )
        first = loaded_engine.view_ids("selected")

        loaded_engine.preview_distillation(DistillConfig(strategy="random", target_count=2, random_seed=5))

        assert summary.seed == 5
        assert loaded_engine.view_ids("selected") == first


class TestReads:
    def test_preview_page(self, loaded_engine):
        loaded_engine.apply_filters()
        page = loaded_engine.get_preview("selected", page=2, page_size=2)

        assert page.total_count == 5
        assert [item.id for item in page.items] == [3, 4]

    def test_unknown_view(self, loaded_engine):
        with pytest.raises(ValidationError):
            loaded_engine.get_preview("kept")

    def test_get_record_returns_copy(self, loaded_engine):
        record = loaded_engine.get_record(0)
        record["instruction"] = "changed"

        assert loaded_engine.get_record(0)["instruction"] == "Write a function that adds two numbers."

    def test_get_record_out_of_range(self, loaded_engine):
        with pytest.raises(NotFoundError):
            loaded_engine.get_record(6)

    def test_list_categories(self, loaded_engine):
        counts = loaded_engine.list_categories("category")
        assert [c.name for c in counts] == ["python", "concepts", "javascript"]


class TestExport:
    def test_export_view(self, loaded_engine, tmp_path):
        loaded_engine.apply_filters()
        out = tmp_path / "removed.jsonl"

        loaded_engine.export("removed", out)

        lines = out.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0]) == loaded_engine.get_record(2)

    def test_unknown_view_recorded_as_failed(self, loaded_engine, tmp_path):
        out = tmp_path / "kept.jsonl"

        with pytest.raises(ValidationError):
            loaded_engine.export("kept", out)

        assert loaded_engine.tasks.last_stage == "export"
        assert loaded_engine.tasks.last_state is TaskState.FAILED
        assert not out.exists()


class TestConcurrency:
    def test_busy_while_task_running(self, loaded_engine):
        gate = threading.Event()
        future = loaded_engine.tasks.submit("import", lambda token, report: gate.wait(5))
        try:
            with pytest.raises(TaskBusyError):
                loaded_engine.apply_filters()
            with pytest.raises(TaskBusyError):
                loaded_engine.update_manual_selection([{"id": 0, "include": False}])
            # Reads stay available
            assert loaded_engine.view_ids("all") == [0, 1, 2, 3, 4, 5]
        finally:
            gate.set()
            future.result(timeout=5)

    def test_submit_runs_command_in_background(self, engine, jsonl_file):
        future = engine.submit("import", jsonl_file)
        dataset = future.result(timeout=5)

        assert dataset.record_count == 6
        assert engine.dataset == dataset

    def test_submit_unknown_command(self, engine):
        with pytest.raises(ValidationError):
            engine.submit("train")

    def test_progress_events(self, engine, jsonl_file):
        events = []
        engine.subscribe(events.append)
        engine.import_dataset(jsonl_file)
        engine.apply_filters()

        stages = [event.stage for event in events]
        assert "import" in stages
        assert "filter" in stages
        assert events[-1].current == events[-1].total == 6


class TestSettings:
    def test_snapshot(self, loaded_engine):
        loaded_engine.apply_filters(FilterConfig(min_length=3))
        settings = loaded_engine.snapshot_settings()

        assert settings.filters.min_length == 3
        assert settings.field_map.instruction == "instruction"
        assert settings.last_path == loaded_engine.last_path

    def test_engine_seeded_from_settings(self, tmp_path):
        path = tmp_path / "settings.json"
        Settings(
            language="de",
            field_map=FieldMap(instruction="prompt"),
            distill=DistillConfig(strategy="importance"),
        ).save(path)

        engine = DatasetEngine(settings=Settings.load(path))
        try:
            assert engine.language == "de"
            assert engine.field_map.instruction == "prompt"
            assert engine.distill_config.strategy == "importance"
        finally:
            engine.close()

    def test_apply_settings_dict(self, engine):
        engine.apply_settings({"lastPath": "/tmp/x.jsonl", "filters": {"minLength": 4}})

        assert engine.last_path == "/tmp/x.jsonl"
        assert engine.filter_config.min_length == 4
