"""
Backup Diff — what a backup would add to the current state.

Collections are compared by content fingerprint, never by id: ids are
regenerated per install, so two copies of the same todo rarely share
one. Anything in the backup whose fingerprint is already present
locally counts as a duplicate and is left alone.

Settings are compared key by key for display only; merge decisions
never look at the settings diff.

Usage:
    diff = analyze_backup(backup["data"], current_data)
    print(format_text(diff))
"""

from __future__ import annotations

import json
from typing import Any, Callable, Iterable

from .models import CollectionDiff, DiffResult, SettingsDiff

Fingerprint = Callable[[dict[str, Any]], str]


def _text(item: dict[str, Any], key: str) -> str:
    value = item.get(key)
    return "" if value is None else str(value)


def todo_fingerprint(item: dict[str, Any]) -> str:
    return _text(item, "text")


def note_fingerprint(item: dict[str, Any]) -> str:
    return f"{_text(item, 'title')}|{_text(item, 'content')[:100]}"


def poem_fingerprint(item: dict[str, Any]) -> str:
    return f"{_text(item, 'content')}|{_text(item, 'author')}"


FINGERPRINTS: dict[str, Fingerprint] = {
    "todos": todo_fingerprint,
    "notes": note_fingerprint,
    "poems": poem_fingerprint,
}


def diff_collection(
    backup_items: Iterable[dict[str, Any]] | None,
    current_items: Iterable[dict[str, Any]] | None,
    fingerprint: Fingerprint,
) -> CollectionDiff:
    """Split backup items into new ones and duplicates.

    One pass over each side. Backup order is preserved in to_add.

    Args:
        backup_items: Items from the backup.
        current_items: Items already present locally.
        fingerprint: Content key for an item.

    Returns:
        CollectionDiff: New items, duplicate count, backup total.
    """
    backup_list = list(backup_items or [])
    seen = {fingerprint(item) for item in (current_items or [])}

    to_add = []
    duplicates = 0
    for item in backup_list:
        if fingerprint(item) in seen:
            duplicates += 1
        else:
            to_add.append(item)

    return CollectionDiff(
        to_add=to_add,
        duplicate_count=duplicates,
        total_in_backup=len(backup_list),
    )


_MISSING = object()


def _serialize(value: Any) -> Any:
    if value is _MISSING:
        return _MISSING
    return json.dumps(value, sort_keys=True, default=str)


def diff_settings(
    backup_settings: dict[str, Any] | None,
    current_settings: dict[str, Any] | None,
) -> SettingsDiff:
    """Keys whose serialized values differ, in either direction.

    A key present on one side only always differs. Keys starting with
    a double underscore are internal and skipped.
    """
    backup_settings = backup_settings or {}
    current_settings = current_settings or {}

    diff_keys = []
    for key in dict.fromkeys([*backup_settings, *current_settings]):
        if key.startswith("__"):
            continue
        old = _serialize(current_settings.get(key, _MISSING))
        new = _serialize(backup_settings.get(key, _MISSING))
        if old is _MISSING or new is _MISSING or old != new:
            diff_keys.append(key)

    return SettingsDiff(has_diff=bool(diff_keys), diff_keys=diff_keys)


def analyze_backup(backup_data: dict[str, Any], current_data: dict[str, Any]) -> DiffResult:
    """Compare a backup's data section against the current state.

    Args:
        backup_data: The backup's "data" object.
        current_data: Current state in the same shape.

    Returns:
        DiffResult: Per-collection diffs plus the combined settings diff.
    """
    collections = {
        name: diff_collection(backup_data.get(name), current_data.get(name), fp)
        for name, fp in FINGERPRINTS.items()
    }
    settings = diff_settings(
        {**(backup_data.get("settings") or {}), **(backup_data.get("iconConfig") or {})},
        {**(current_data.get("settings") or {}), **(current_data.get("iconConfig") or {})},
    )
    return DiffResult(settings=settings, **collections)


def format_text(diff: DiffResult) -> str:
    """Format the diff as plain text.

    Args:
        diff: The computed backup diff.

    Returns:
        Human-readable diff text.
    """
    lines = ["# Backup Diff", ""]

    for name in FINGERPRINTS:
        c: CollectionDiff = getattr(diff, name)
        lines.append(
            f"{name}: +{len(c.to_add)} new, {c.duplicate_count} duplicate, "
            f"{c.total_in_backup} in backup"
        )

    lines.append("")
    if diff.settings.has_diff:
        lines.append(f"Settings differ ({len(diff.settings.diff_keys)}):")
        for key in diff.settings.diff_keys:
            lines.append(f"  ~ {key}")
    else:
        lines.append("Settings identical.")

    lines.append("")
    return "\n".join(lines)


def format_json(diff: DiffResult) -> str:
    """Format the diff as JSON, with counts instead of full item lists."""
    summary: dict[str, Any] = {
        name: {
            "new": len(getattr(diff, name).to_add),
            "duplicates": getattr(diff, name).duplicate_count,
            "total_in_backup": getattr(diff, name).total_in_backup,
        }
        for name in FINGERPRINTS
    }
    summary["settings"] = diff.settings.model_dump()
    return json.dumps(summary, indent=2, default=str)


FORMATTERS = {"text": format_text, "json": format_json}
