"""Tests for cjsync.diff — content-fingerprint backup diffs."""

from __future__ import annotations

import json

from cjsync.diff import (
    FORMATTERS,
    analyze_backup,
    diff_collection,
    diff_settings,
    note_fingerprint,
    poem_fingerprint,
    todo_fingerprint,
)


class TestFingerprints:
    """Content keys ignore ids."""

    def test_todo_ignores_id(self):
        assert todo_fingerprint({"id": 1, "text": "a"}) == todo_fingerprint({"id": 9, "text": "a"})

    def test_note_uses_content_prefix(self):
        a = {"title": "T", "content": "x" * 100 + "tail one"}
        b = {"title": "T", "content": "x" * 100 + "tail two"}
        assert note_fingerprint(a) == note_fingerprint(b)

    def test_poem_includes_author(self):
        assert poem_fingerprint({"content": "c", "author": "A"}) != poem_fingerprint(
            {"content": "c", "author": "B"}
        )


class TestDiffCollection:
    """New-vs-duplicate classification."""

    def test_splits_new_and_duplicates(self):
        local = [{"id": 1, "text": "a"}, {"id": 2, "text": "b"}]
        backup = [{"id": 7, "text": "b"}, {"id": 8, "text": "c"}, {"id": 9, "text": "d"}]
        diff = diff_collection(backup, local, todo_fingerprint)
        assert [t["text"] for t in diff.to_add] == ["c", "d"]
        assert diff.duplicate_count == 1
        assert diff.total_in_backup == 3

    def test_idempotent_after_merge(self):
        local = [{"text": "a"}]
        backup = [{"text": "a"}, {"text": "b"}]
        first = diff_collection(backup, local, todo_fingerprint)
        merged = local + first.to_add
        second = diff_collection(backup, merged, todo_fingerprint)
        assert second.to_add == []
        assert second.duplicate_count == 2

    def test_none_sides(self):
        diff = diff_collection(None, None, todo_fingerprint)
        assert diff.to_add == []
        assert diff.total_in_backup == 0


class TestDiffSettings:
    """Key-level settings comparison."""

    def test_identical(self):
        assert not diff_settings({"a": 1}, {"a": 1}).has_diff

    def test_changed_and_one_sided_keys(self):
        diff = diff_settings({"a": 1, "b": 2}, {"a": 5, "c": 3})
        assert set(diff.diff_keys) == {"a", "b", "c"}

    def test_nested_values_compared_by_content(self):
        assert not diff_settings({"a": {"x": 1, "y": 2}}, {"a": {"y": 2, "x": 1}}).has_diff

    def test_internal_keys_skipped(self):
        assert not diff_settings({"__ts": 1}, {"__ts": 2}).has_diff


class TestAnalyzeBackup:
    """Full backup analysis and formatting."""

    def test_analyze(self, app_state):
        backup = {
            "settings": {**app_state.settings, "todoWidth": 500},
            "iconConfig": app_state.icon_config,
            "todos": [{"id": 99, "text": "Buy milk"}, {"id": 100, "text": "New task"}],
            "notes": [],
            "poems": [{"content": "静夜思", "author": "李白"}],
        }
        diff = analyze_backup(backup, app_state.collect_all())
        assert diff.todos.duplicate_count == 1
        assert [t["text"] for t in diff.todos.to_add] == ["New task"]
        assert len(diff.poems.to_add) == 1
        assert diff.settings.diff_keys == ["todoWidth"]

    def test_formatters(self, app_state):
        diff = analyze_backup(app_state.collect_all(), app_state.collect_all())
        assert "Settings identical." in FORMATTERS["text"](diff)
        summary = json.loads(FORMATTERS["json"](diff))
        assert summary["todos"] == {"new": 0, "duplicates": 2, "total_in_backup": 2}
