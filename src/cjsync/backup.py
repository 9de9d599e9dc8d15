"""
Full backup files — every setting, todo, note and poem in one JSON file.

Layout:
    {
      "meta": {"version": 1, "exportTime": <epoch ms>,
               "appName": "ChengJing", "dataKeys": [...]},
      "data": {"settings": {}, "iconConfig": {}, "todos": [],
               "notes": [], "poems": []}
    }

A backup may be password protected, in which case the file holds
{"e": true, "d": "<packed envelope>"} and the container above is the
plaintext.

Validation yields valid / migrate / reject. Older versions are migrated
in place; newer ones are refused.
"""

from __future__ import annotations

import copy
import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from . import APP_NAME, crypto
from .errors import MalformedInput, PasswordRequired, UnsupportedVersion
from .models import BackupMeta, RestoreStats, ValidationOutcome, ValidationStatus
from .schema import ICON_REGISTRY, SETTINGS_REGISTRY
from .state import AppState

logger = logging.getLogger("cjsync.backup")

CURRENT_BACKUP_VERSION = 1
DATA_KEYS = ["settings", "iconConfig", "todos", "notes", "poems"]


def build_backup(state: AppState) -> dict[str, Any]:
    """Wrap the full current state in a backup container.

    Args:
        state: Live state to export.

    Returns:
        dict: Container ready for json.dumps.
    """
    data = state.collect_all()
    meta = BackupMeta(
        version=CURRENT_BACKUP_VERSION,
        exportTime=int(time.time() * 1000),
        appName=APP_NAME,
        dataKeys=list(data),
    )
    return {"meta": meta.model_dump(), "data": data}


def validate_backup(container: Any) -> ValidationOutcome:
    """Check that a parsed file is a backup this version can restore.

    Args:
        container: Parsed JSON.

    Returns:
        ValidationOutcome: valid(version), migrate(old version) or reject(reason).
    """
    if not isinstance(container, dict):
        return ValidationOutcome(status=ValidationStatus.REJECT, reason="Not an object")

    meta = container.get("meta")
    data = container.get("data")
    if not isinstance(meta, dict) or not isinstance(data, dict):
        return ValidationOutcome(status=ValidationStatus.REJECT, reason="Missing meta or data")

    app_name = meta.get("appName")
    if app_name != APP_NAME:
        return ValidationOutcome(
            status=ValidationStatus.REJECT,
            reason=f"App name mismatch (expected {APP_NAME}, got {app_name or 'unknown'})",
        )

    data_keys = meta.get("dataKeys")
    if isinstance(data_keys, list):
        missing = [k for k in data_keys if k not in data]
        if missing:
            # tolerated: an empty collection may simply have been omitted
            logger.warning("Backup declares data keys it does not contain: %s", missing)

    version = meta.get("version") or 0
    if not isinstance(version, int) or isinstance(version, bool):
        return ValidationOutcome(status=ValidationStatus.REJECT, reason=f"Invalid version {version!r}")

    if version == CURRENT_BACKUP_VERSION:
        return ValidationOutcome(status=ValidationStatus.VALID, version=version)
    if version < CURRENT_BACKUP_VERSION:
        return ValidationOutcome(status=ValidationStatus.MIGRATE, version=version)
    return ValidationOutcome(
        status=ValidationStatus.REJECT,
        version=version,
        reason=(
            f"Backup version v{version} is newer than supported "
            f"v{CURRENT_BACKUP_VERSION}; upgrade the app"
        ),
    )


def migrate_backup(container: dict[str, Any], from_version: int) -> dict[str, Any]:
    """Bring a pre-v1 container up to the current layout.

    Version 0 files predate meta.version and may lack collections
    entirely; missing pieces are filled with empty values.
    """
    migrated = copy.deepcopy(container)
    data = migrated.setdefault("data", {})
    for key in ("settings", "iconConfig"):
        if not isinstance(data.get(key), dict):
            data[key] = {}
    for key in ("todos", "notes", "poems"):
        if not isinstance(data.get(key), list):
            data[key] = []

    meta = migrated.setdefault("meta", {})
    meta["version"] = CURRENT_BACKUP_VERSION
    meta["dataKeys"] = list(DATA_KEYS)
    logger.info("Migrated backup from v%d to v%d", from_version, CURRENT_BACKUP_VERSION)
    return migrated


def sanitize_backup_data(data: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """Drop registered settings whose values fail their schema check.

    Unregistered setting keys pass through; a backup file is a
    full-fidelity copy of the app's own state, not a QR allowlist.
    Collections that are not lists are dropped.
    """
    clean = dict(data)
    dropped: list[str] = []

    settings = data.get("settings")
    if isinstance(settings, dict):
        clean["settings"], d = SETTINGS_REGISTRY.sanitize(settings, strict=False)
        dropped.extend(f"settings.{x}" for x in d)
    elif settings is not None:
        clean.pop("settings")
        dropped.append("settings (not an object)")

    icon_config = data.get("iconConfig")
    if isinstance(icon_config, dict):
        clean["iconConfig"], d = ICON_REGISTRY.sanitize(icon_config, strict=False)
        dropped.extend(f"iconConfig.{x}" for x in d)
    elif icon_config is not None:
        clean.pop("iconConfig")
        dropped.append("iconConfig (not an object)")

    for key in ("todos", "notes", "poems"):
        items = data.get(key)
        if items is None:
            continue
        if not isinstance(items, list):
            clean.pop(key)
            dropped.append(f"{key} (not a list)")
            continue
        clean[key] = [item for item in items if isinstance(item, dict)]
        if len(clean[key]) != len(items):
            dropped.append(f"{key} ({len(items) - len(clean[key])} non-object items)")

    if dropped:
        logger.warning("Dropped from backup: %s", ", ".join(dropped))
    return clean, dropped


def parse_backup(
    text: str,
    password: Optional[str] = None,
    iterations: Optional[int] = None,
) -> dict[str, Any]:
    """Parse, decrypt, validate and migrate backup file contents.

    Args:
        text: File contents.
        password: Password for protected backups.
        iterations: PBKDF2 work factor override.

    Returns:
        dict: A current-version container with sanitized data.

    Raises:
        MalformedInput: Not JSON, or rejected for shape/app reasons.
        PasswordRequired, InvalidPassword: Protected file.
        UnsupportedVersion: Written by a newer version.
    """
    try:
        container = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise MalformedInput(f"Invalid JSON: {exc}") from exc

    if isinstance(container, dict) and container.get("e") is True:
        if not password:
            raise PasswordRequired()
        inner = crypto.decrypt_packed(container.get("d"), password, iterations)
        try:
            container = json.loads(inner)
        except ValueError as exc:
            raise MalformedInput(f"Invalid JSON inside encrypted backup: {exc}") from exc

    outcome = validate_backup(container)
    if outcome.status == ValidationStatus.REJECT:
        if outcome.version is not None:
            raise UnsupportedVersion(outcome.reason or "", version=outcome.version)
        raise MalformedInput(outcome.reason or "Invalid backup")
    if outcome.status == ValidationStatus.MIGRATE:
        container = migrate_backup(container, outcome.version or 0)

    container["data"], _ = sanitize_backup_data(container["data"])
    return container


def restore_stats(container: dict[str, Any]) -> RestoreStats:
    """Summarize a parsed container for a confirmation prompt."""
    data = container.get("data", {})
    meta = container.get("meta", {})
    return RestoreStats(
        settings=bool(data.get("settings")),
        icon_config=bool(data.get("iconConfig")),
        todo_count=len(data.get("todos") or []),
        note_count=len(data.get("notes") or []),
        poem_count=len(data.get("poems") or []),
        export_time=meta.get("exportTime") or 0,
        version=meta.get("version") or 0,
    )


def export_backup(
    state: AppState,
    output_dir: Path,
    password: Optional[str] = None,
    iterations: Optional[int] = None,
) -> dict[str, Any]:
    """Write a backup file of the full state.

    Args:
        state: Live state to export.
        output_dir: Directory for the file. Created if missing.
        password: Protect the file with a password when given.
        iterations: PBKDF2 work factor override.

    Returns:
        dict: Result with 'filepath', 'size', 'encrypted', 'meta'.
    """
    container = build_backup(state)
    content = json.dumps(container, indent=2, ensure_ascii=False)
    if password:
        content = json.dumps({"e": True, "d": crypto.encrypt_packed(content, password, iterations)})

    out_dir = Path(output_dir).expanduser()
    out_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    suffix = "-encrypted" if password else ""
    filepath = out_dir / f"chengjing-backup-v{CURRENT_BACKUP_VERSION}-{stamp}{suffix}.json"
    filepath.write_text(content, encoding="utf-8")

    logger.info("Backup exported: %s (%d bytes, encrypted=%s)", filepath, len(content), bool(password))
    return {
        "filepath": str(filepath),
        "size": filepath.stat().st_size,
        "encrypted": bool(password),
        "meta": container["meta"],
    }


def read_backup(
    path: Path,
    password: Optional[str] = None,
    iterations: Optional[int] = None,
) -> dict[str, Any]:
    """Read and parse a backup file from disk."""
    filepath = Path(path).expanduser()
    if not filepath.exists():
        raise FileNotFoundError(f"Backup not found: {filepath}")
    return parse_backup(filepath.read_text(encoding="utf-8"), password, iterations)
