"""Tests for checkpoint state and its atomic store."""

from __future__ import annotations

import json
from pathlib import Path

from rich.console import Console

from qbank.rewrite.checkpoint import CheckpointState, CheckpointStore, display_progress


class TestCheckpointState:
    def test_mark_processed_is_idempotent(self):
        state = CheckpointState()
        state.mark_processed("a")
        state.mark_processed("b")
        state.mark_processed("a")
        assert state.processed_ids == ["a", "b"]
        assert state.is_processed("a")
        assert not state.is_processed("c")

    def test_duplicates_dropped_on_construction(self):
        state = CheckpointState(processed_ids=["x", "y", "x"])
        assert state.processed_ids == ["x", "y"]
        assert state.completed == frozenset({"x", "y"})

    def test_wire_format_keys(self):
        state = CheckpointState(processed_ids=["1"], last_batch_index=3)
        data = state.to_dict()
        assert set(data) == {"processedIds", "lastBatchIndex", "startedAt", "lastUpdatedAt"}
        restored = CheckpointState.from_dict(data)
        assert restored.processed_ids == ["1"]
        assert restored.last_batch_index == 3
        assert restored.started_at == state.started_at

    def test_numeric_ids_read_as_strings(self):
        state = CheckpointState.from_dict({"processedIds": [1, 2]})
        assert state.is_processed("1")


class TestCheckpointStore:
    def test_load_without_file_returns_fresh_state(self, tmp_path: Path):
        store = CheckpointStore(tmp_path / "progress.json")
        state = store.load()
        assert state.processed_ids == []
        assert state.last_batch_index == 0
        assert not store.exists

    def test_persist_then_load(self, tmp_path: Path):
        store = CheckpointStore(tmp_path / "nested" / "progress.json")
        state = CheckpointState(processed_ids=["a", "b"], last_batch_index=2)

        store.persist(state)

        assert store.exists
        assert not (tmp_path / "nested" / "progress.tmp").exists()
        loaded = store.load()
        assert loaded.processed_ids == ["a", "b"]
        assert loaded.last_batch_index == 2

    def test_persist_updates_timestamp(self, tmp_path: Path):
        store = CheckpointStore(tmp_path / "progress.json")
        state = CheckpointState(last_updated_at="2000-01-01T00:00:00+00:00")
        store.persist(state)
        on_disk = json.loads(store.path.read_text())
        assert on_disk["lastUpdatedAt"] != "2000-01-01T00:00:00+00:00"

    def test_corrupt_file_yields_fresh_state(self, tmp_path: Path):
        path = tmp_path / "progress.json"
        path.write_text("{not json")
        state = CheckpointStore(path).load()
        assert state.processed_ids == []

    def test_clear(self, tmp_path: Path):
        store = CheckpointStore(tmp_path / "progress.json")
        store.persist(CheckpointState())
        store.clear()
        assert not store.exists
        store.clear()


def test_display_progress_renders():
    console = Console(record=True, width=100)
    display_progress(CheckpointState(processed_ids=["a"]), 4, console)
    output = console.export_text()
    assert "1/4" in output
    assert "25.0%" in output
