"""
Schema registry — the allowlist of every syncable field.

Each field has a full key, a short alias used on the wire, a kind, an
optional range or enum, and a category. The registry is also the
sanitizer: a value that does not pass its field check never reaches
live state.

    SETTINGS_REGISTRY.by_alias("tw")        -> todoWidth field
    SETTINGS_REGISTRY.sanitize({"todoWidth": 99})
        -> ({}, ["todoWidth (invalid)"])
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional


class FieldKind(str, Enum):
    """Value type of a schema field."""

    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    ENUM = "enum"
    STRING = "string"


@dataclass(frozen=True)
class SchemaField:
    """One syncable field.

    Attributes:
        key: Full field name as used in live state.
        kind: Expected value type.
        alias: Short wire name.
        category: UI grouping used for selective export and restore.
        appearance: Whether the field travels in theme mode.
        min: Inclusive lower bound for numeric kinds.
        max: Inclusive upper bound for numeric kinds.
        enum_values: Allowed values for ENUM fields.
        max_length: Maximum length for STRING fields.
    """

    key: str
    kind: FieldKind
    alias: str
    category: str
    appearance: bool = False
    min: Optional[float] = None
    max: Optional[float] = None
    enum_values: tuple[str, ...] = ()
    max_length: Optional[int] = None

    def accepts(self, value: Any) -> bool:
        """Check a value against this field's kind, range and enum."""
        if self.kind == FieldKind.BOOL:
            return isinstance(value, bool)

        if self.kind in (FieldKind.INT, FieldKind.FLOAT):
            # bool is an int subclass; never let True stand in for 1
            if isinstance(value, bool):
                return False
            if self.kind == FieldKind.INT and not isinstance(value, int):
                return False
            if not isinstance(value, (int, float)):
                return False
            if isinstance(value, float) and not math.isfinite(value):
                return False
            if self.min is not None and value < self.min:
                return False
            if self.max is not None and value > self.max:
                return False
            return True

        if not isinstance(value, str):
            return False
        if self.kind == FieldKind.ENUM:
            return value in self.enum_values
        if self.max_length is not None and len(value) > self.max_length:
            return False
        return True


class SchemaRegistry:
    """Lookup tables over a fixed set of fields.

    Args:
        name: Registry name, used in log and drop messages.
        fields: The fields. Keys and aliases must each be unique.

    Raises:
        ValueError: If a key or alias is registered twice.
    """

    def __init__(self, name: str, fields: Iterable[SchemaField]) -> None:
        self.name = name
        self._by_key: dict[str, SchemaField] = {}
        self._by_alias: dict[str, SchemaField] = {}
        for f in fields:
            if f.key in self._by_key:
                raise ValueError(f"Duplicate key in {name} registry: {f.key}")
            if f.alias in self._by_alias:
                raise ValueError(f"Duplicate alias in {name} registry: {f.alias}")
            self._by_key[f.key] = f
            self._by_alias[f.alias] = f

    def __contains__(self, key: object) -> bool:
        return key in self._by_key

    def __iter__(self):
        return iter(self._by_key.values())

    def __len__(self) -> int:
        return len(self._by_key)

    def keys(self) -> list[str]:
        return list(self._by_key)

    def get(self, key: str) -> Optional[SchemaField]:
        return self._by_key.get(key)

    def by_alias(self, alias: str) -> Optional[SchemaField]:
        return self._by_alias.get(alias)

    def appearance_keys(self) -> list[str]:
        return [f.key for f in self if f.appearance]

    def categories(self) -> dict[str, list[str]]:
        """Group field keys by category, preserving registration order."""
        grouped: dict[str, list[str]] = {}
        for f in self:
            grouped.setdefault(f.category, []).append(f.key)
        return grouped

    def alias_for(self, key: str) -> str:
        """Short name for a key, or the key itself when unregistered."""
        f = self._by_key.get(key)
        return f.alias if f else key

    def sanitize(
        self,
        values: dict[str, Any],
        strict: bool = True,
    ) -> tuple[dict[str, Any], list[str]]:
        """Drop every entry that fails its schema check.

        Args:
            values: Full-key map to check.
            strict: When True, unregistered keys are dropped as well.
                When False they pass through untouched, which is what
                a full-fidelity backup file of the app's own state needs.

        Returns:
            tuple: (clean map, list of human-readable drop reasons).
        """
        clean: dict[str, Any] = {}
        dropped: list[str] = []
        for key, value in values.items():
            f = self._by_key.get(key)
            if f is None:
                if strict:
                    dropped.append(f"{key} (unknown field)")
                else:
                    clean[key] = value
                continue
            if not f.accepts(value):
                dropped.append(f"{key} (invalid)")
                continue
            clean[key] = value
        return clean, dropped


def _b(key: str, alias: str, category: str, appearance: bool = False) -> SchemaField:
    return SchemaField(key, FieldKind.BOOL, alias, category, appearance)


def _i(key: str, alias: str, category: str, lo: float, hi: float, appearance: bool = False) -> SchemaField:
    return SchemaField(key, FieldKind.INT, alias, category, appearance, min=lo, max=hi)


def _f(key: str, alias: str, category: str, lo: float, hi: float, appearance: bool = False) -> SchemaField:
    return SchemaField(key, FieldKind.FLOAT, alias, category, appearance, min=lo, max=hi)


def _e(key: str, alias: str, category: str, values: tuple[str, ...], appearance: bool = False) -> SchemaField:
    return SchemaField(key, FieldKind.ENUM, alias, category, appearance, enum_values=values)


def _s(key: str, alias: str, category: str, max_length: int) -> SchemaField:
    return SchemaField(key, FieldKind.STRING, alias, category, max_length=max_length)


FOLDER_MODES = ("2x2", "3x3", "list")

SETTINGS_REGISTRY = SchemaRegistry("settings", [
    _b("generalOpenInNewTab", "ont", "general"),
    _b("clockShow", "sc", "clock"),
    _b("shortcutsShow", "ss", "shortcuts"),
    # Todo
    _b("todoShow", "st", "todo"),
    _b("todoDefaultCollapsed", "tdc", "todo"),
    _i("todoWidth", "tw", "todo", 100, 800),
    _i("todoListMaxHeight", "tlmh", "todo", 100, 1000),
    # Wallpaper
    _b("wallpaperDailyEnabled", "dw", "wallpaper"),
    _f("wallpaperBlur", "wb", "wallpaper", 0, 50, appearance=True),
    _f("wallpaperMask", "wm", "wallpaper", 0, 100, appearance=True),
    # Folder
    _b("folderAutoCleanEmpty", "def", "folder"),
    _e("folderPreviewMode", "fpm", "folder", FOLDER_MODES),
    _i("folderInnerSpacing", "fis", "folder", 0, 50),
    _b("folderCompressLarge", "clf", "folder"),
    _e("folderDefaultMode", "dfm", "folder", FOLDER_MODES),
    _b("folderSmartSuggestion", "esfs", "folder"),
    # Layout
    _e("layoutPreset", "dp", "layout", ("compact", "standard", "spacious", "custom"), appearance=True),
    _i("layoutGridRows", "gr", "layout", 1, 10, appearance=True),
    _i("layoutGridCols", "gc", "layout", 1, 20, appearance=True),
    _i("layoutGridGapX", "gx", "layout", 0, 200, appearance=True),
    _i("layoutGridGapY", "gy", "layout", 0, 200, appearance=True),
    _i("layoutPaddingTop", "lpt", "layout", 0, 500, appearance=True),
    _i("layoutGap", "lg", "layout", 0, 200, appearance=True),
    # Search bar
    _b("searchBarShow", "sb", "searchBar"),
    _b("searchBarShowIcon", "si", "searchBar"),
    _i("searchBarWidth", "sbw", "searchBar", 10, 100, appearance=True),
    _i("searchBarHeight", "sbh", "searchBar", 20, 200, appearance=True),
    _i("searchBarRadius", "sbr", "searchBar", 0, 100, appearance=True),
    _f("searchBarOpacity", "sbo", "searchBar", 0, 100, appearance=True),
    # Note pad
    _b("notePadShow", "sn", "notePad"),
    _i("notePadWidth", "npw", "notePad", 100, 800),
    _i("notePadHeight", "nph", "notePad", 100, 800),
    _e("notePadEditorMode", "npem", "notePad", ("rich", "markdown", "plain")),
    _b("notePadImageCompress", "ci", "notePad"),
    _f("notePadImageMaxSizeMB", "mis", "notePad", 0.1, 10),
    _i("notePadImageMaxWidth", "miw", "notePad", 100, 4000),
    # Weather
    _b("weatherAutoLocation", "wal", "weather"),
    _s("weatherCity", "wc", "weather", 50),
    # Pomodoro
    _i("pomodoroWorkMinutes", "pwm", "pomodoro", 1, 120),
    _i("pomodoroBreakMinutes", "pbm", "pomodoro", 1, 60),
    _b("pomodoroAutoBreak", "pab", "pomodoro"),
    _b("pomodoroAutoWork", "paw", "pomodoro"),
    _s("pomodoroIntent", "pi", "pomodoro", 100),
    _b("calculatorShow", "sca", "calculator"),
    _b("poemShow", "sdp", "poem"),
    _b("poemFetchOnline", "dpo", "poem"),
])

ICON_REGISTRY = SchemaRegistry("iconConfig", [
    _b("hideLabel", "hl", "icon", appearance=True),
    _i("boxSize", "bs", "icon", 40, 200, appearance=True),
    _i("iconScale", "is", "icon", 20, 100, appearance=True),
    _i("radius", "rd", "icon", 0, 50, appearance=True),
    _f("opacity", "op", "icon", 0, 100, appearance=True),
    _b("showShadow", "shw", "icon", appearance=True),
])
