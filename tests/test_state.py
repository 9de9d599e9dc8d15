"""Tests for cjsync.state — live state containers and the state file."""

from __future__ import annotations

from pathlib import Path

from cjsync.state import AppState, StateFile


class TestAppState:
    """Replace-style mutators and views."""

    def test_replace_creates_new_objects(self, app_state):
        before = app_state.todos
        new = [{"id": 3, "text": "x"}]
        app_state.replace_todos(new)
        assert app_state.todos is not before
        assert app_state.todos is not new
        assert app_state.todos == new

    def test_collect_all_is_deep_copy(self, app_state):
        data = app_state.collect_all()
        data["settings"]["todoWidth"] = 1
        data["todos"][0]["text"] = "changed"
        assert app_state.settings["todoWidth"] == 300
        assert app_state.todos[0]["text"] == "Buy milk"
        assert set(data) == {"settings", "iconConfig", "todos", "notes", "poems"}

    def test_config_data(self, app_state):
        assert set(app_state.config_data()) == {"settings", "iconConfig"}

    def test_poems_batch_overwrite(self, app_state):
        app_state.poems.replace_all([{"content": "a", "author": "b"}])
        assert len(app_state.poems) == 1
        got = app_state.poems.get_all()
        got.append({})
        assert len(app_state.poems) == 1

    def test_from_data(self, app_state):
        clone = AppState.from_data(app_state.collect_all())
        assert clone.collect_all() == app_state.collect_all()


class TestStateFile:
    """JSON persistence."""

    def test_save_load(self, tmp_path: Path, app_state):
        state_file = StateFile(tmp_path)
        state_file.save(app_state)
        assert state_file.load().collect_all() == app_state.collect_all()

    def test_missing_is_empty(self, tmp_path: Path):
        assert StateFile(tmp_path).load().collect_all()["todos"] == []

    def test_corrupt_is_empty(self, tmp_path: Path):
        (tmp_path / "state.json").write_text("{broken")
        assert StateFile(tmp_path).load().settings == {}
