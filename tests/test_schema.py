"""Tests for cjsync.schema — field checks and registry lookups."""

from __future__ import annotations

import math

import pytest

from cjsync.schema import (
    ICON_REGISTRY,
    SETTINGS_REGISTRY,
    FieldKind,
    SchemaField,
    SchemaRegistry,
)


class TestFieldAccepts:
    """SchemaField.accepts value checks."""

    def test_int_in_range(self):
        field = SETTINGS_REGISTRY.get("todoWidth")
        assert field.accepts(300)
        assert field.accepts(100)
        assert field.accepts(800)

    def test_int_out_of_range(self):
        field = SETTINGS_REGISTRY.get("todoWidth")
        assert not field.accepts(99)
        assert not field.accepts(801)

    def test_int_rejects_float_and_bool(self):
        field = SETTINGS_REGISTRY.get("todoWidth")
        assert not field.accepts(300.5)
        assert not field.accepts(True)

    def test_float_rejects_non_finite(self):
        field = SETTINGS_REGISTRY.get("wallpaperBlur")
        assert field.accepts(12.5)
        assert field.accepts(10)
        assert not field.accepts(math.nan)
        assert not field.accepts(math.inf)

    def test_bool_must_be_bool(self):
        field = SETTINGS_REGISTRY.get("todoShow")
        assert field.accepts(False)
        assert not field.accepts(0)
        assert not field.accepts("true")

    def test_enum(self):
        field = SETTINGS_REGISTRY.get("folderPreviewMode")
        assert field.accepts("3x3")
        assert not field.accepts("4x4")

    def test_string_max_length(self):
        field = SETTINGS_REGISTRY.get("weatherCity")
        assert field.accepts("Hangzhou")
        assert not field.accepts("x" * 51)
        assert not field.accepts(42)


class TestRegistry:
    """SchemaRegistry lookups and sanitization."""

    def test_aliases_unique_across_registry(self):
        aliases = [f.alias for f in SETTINGS_REGISTRY]
        assert len(aliases) == len(set(aliases))

    def test_duplicate_alias_rejected(self):
        fields = [
            SchemaField("a", FieldKind.BOOL, "x", "misc"),
            SchemaField("b", FieldKind.BOOL, "x", "misc"),
        ]
        with pytest.raises(ValueError, match="Duplicate alias"):
            SchemaRegistry("test", fields)

    def test_duplicate_key_rejected(self):
        fields = [
            SchemaField("a", FieldKind.BOOL, "x", "misc"),
            SchemaField("a", FieldKind.BOOL, "y", "misc"),
        ]
        with pytest.raises(ValueError, match="Duplicate key"):
            SchemaRegistry("test", fields)

    def test_alias_lookup(self):
        assert SETTINGS_REGISTRY.alias_for("todoWidth") == "tw"
        assert SETTINGS_REGISTRY.by_alias("tw").key == "todoWidth"
        assert ICON_REGISTRY.by_alias("bs").key == "boxSize"

    def test_unknown_key_aliases_to_itself(self):
        assert SETTINGS_REGISTRY.alias_for("notAField") == "notAField"

    def test_appearance_keys(self):
        keys = SETTINGS_REGISTRY.appearance_keys()
        assert "wallpaperBlur" in keys
        assert "layoutGridRows" in keys
        assert "todoWidth" not in keys
        assert set(ICON_REGISTRY.appearance_keys()) == set(ICON_REGISTRY.keys())

    def test_categories_group_keys(self):
        categories = SETTINGS_REGISTRY.categories()
        assert "todoWidth" in categories["todo"]
        assert "pomodoroWorkMinutes" in categories["pomodoro"]

    def test_sanitize_strict(self):
        clean, dropped = SETTINGS_REGISTRY.sanitize({"todoWidth": 99, "todoShow": True, "bogus": 1})
        assert clean == {"todoShow": True}
        assert "todoWidth (invalid)" in dropped
        assert "bogus (unknown field)" in dropped

    def test_sanitize_lenient_keeps_unknown(self):
        clean, dropped = SETTINGS_REGISTRY.sanitize({"bogus": 1, "todoWidth": 5000}, strict=False)
        assert clean == {"bogus": 1}
        assert dropped == ["todoWidth (invalid)"]
