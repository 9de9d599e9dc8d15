"""
Sync orchestrator — the only code path that writes live state.

Every destructive operation runs in the same envelope:

    idle -> collecting_snapshot -> applying -> committed
                                           \\-> rolled_back
                                           \\-> failed

1. collecting_snapshot: copy the full state into the context's safety
   point. Over the size limit, copy settings and icon configuration
   only and mark the safety point partial.
2. applying: write new objects (never edit in place).
3. On failure, restore what the safety point covers. If restoring
   itself fails, the phase becomes failed and RollbackFailure is
   raised.
4. On success, run the commit callbacks, then drop the safety point.
   A callback that raises is treated like a failed apply and rolled
   back; callbacks that already ran are not called again.

Only one operation may be in flight; a second caller gets SyncBusy.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from .config import SyncSettings, load_settings, resolve_home
from .errors import RollbackFailure, SyncBusy
from .models import (
    ApplyResult,
    DecodeResult,
    DiffResult,
    MergeOptions,
    Preset,
    SafetyPoint,
    SnapshotTrigger,
    SyncPhase,
)
from .presets import PresetStore
from .schema import ICON_REGISTRY, SETTINGS_REGISTRY
from .snapshots import AutoSaver, SnapshotStore
from .state import AppState, StateFile
from .store import BlobStore, FileBlobStore

logger = logging.getLogger("cjsync.orchestrator")

CommitCallback = Callable[[AppState], None]

# imported wallpaper image, stored as a data URL
WALLPAPER_KEY = "wallpaper.custom-bg"


class SyncContext:
    """Everything one sync session works on.

    Built with SyncContext.open() and released with close(). Holds the
    live state, stores, settings, commit callbacks and the single
    safety-point slot.
    """

    def __init__(
        self,
        state: AppState,
        blob_store: BlobStore,
        settings: Optional[SyncSettings] = None,
    ) -> None:
        self.state = state
        self.blob_store = blob_store
        self.settings = settings or SyncSettings()
        self.snapshots = SnapshotStore(
            blob_store,
            state,
            max_snapshots=self.settings.max_snapshots,
            evict_retry_limit=self.settings.evict_retry_limit,
        )
        self.presets = PresetStore(blob_store)
        self.autosaver = AutoSaver(self.snapshots, self.settings.auto_save_delay_seconds)
        self.safety_point: Optional[SafetyPoint] = None
        self._callbacks: list[CommitCallback] = []

    @classmethod
    def open(
        cls,
        home: Optional[Path] = None,
        state: Optional[AppState] = None,
        blob_store: Optional[BlobStore] = None,
        settings: Optional[SyncSettings] = None,
    ) -> "SyncContext":
        """Open a session rooted at a sync home.

        Args:
            home: Sync home. Defaults to CJSYNC_HOME or ~/.cjsync.
            state: Live state. When omitted it is loaded from
                <home>/state.json and saved back on every commit.
            blob_store: Snapshot/preset storage. Defaults to
                <home>/snapshots/.
            settings: Engine settings. Defaults to <home>/config.yaml.
        """
        root = resolve_home(home)
        settings = settings or load_settings(root)
        state_file = None
        if state is None:
            state_file = StateFile(root)
            state = state_file.load()
        if blob_store is None:
            blob_store = FileBlobStore(root / "snapshots", quota_bytes=settings.storage_quota_bytes)

        context = cls(state, blob_store, settings)
        if state_file is not None:
            context.on_commit(state_file.save)
        logger.debug("Opened sync context at %s", root)
        return context

    def on_commit(self, callback: CommitCallback) -> None:
        """Register a callback run after every committed change."""
        self._callbacks.append(callback)

    def publish(self) -> None:
        for callback in self._callbacks:
            callback(self.state)
        self.autosaver.notify_change()

    def close(self) -> None:
        """Release the session. A pending auto-save is dropped."""
        self.autosaver.cancel()
        self._callbacks.clear()

    def __enter__(self) -> "SyncContext":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def _unwrap(backup: dict[str, Any]) -> dict[str, Any]:
    # accept a whole container or just its "data" part
    if isinstance(backup.get("data"), dict) and "meta" in backup:
        return backup["data"]
    return backup


class SyncOrchestrator:
    """Transactional apply, merge and restore over a SyncContext."""

    def __init__(self, context: SyncContext) -> None:
        self.context = context
        self.phase = SyncPhase.IDLE
        self._busy = threading.Lock()
        self._undo: list[Callable[[], None]] = []

    @property
    def state(self) -> AppState:
        return self.context.state

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    # ------------------------------------------------------------------
    # Envelope
    # ------------------------------------------------------------------

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        if not self._busy.acquire(blocking=False):
            raise SyncBusy("Another sync operation is in progress")
        try:
            yield
        finally:
            self._busy.release()

    def _capture_safety_point(self) -> SafetyPoint:
        self.phase = SyncPhase.COLLECTING_SNAPSHOT
        data = self.state.collect_all()
        size_kb = len(json.dumps(data, ensure_ascii=False, default=str).encode("utf-8")) / 1024

        if size_kb > self.context.settings.safety_limit_kb:
            logger.warning(
                "State is %.0f KB (limit %.0f KB); safety point covers configuration only",
                size_kb, self.context.settings.safety_limit_kb,
            )
            point = SafetyPoint(
                partial=True,
                data={"settings": data["settings"], "iconConfig": data["iconConfig"]},
            )
        else:
            point = SafetyPoint(partial=False, data=data)

        self.context.safety_point = point
        return point

    def _rollback(self) -> None:
        point = self.context.safety_point
        if point is None:
            return
        try:
            while self._undo:
                self._undo.pop()()
            self.state.replace_settings(point.data["settings"])
            self.state.replace_icon_config(point.data["iconConfig"])
            if not point.partial:
                self.state.replace_todos(point.data["todos"])
                self.state.replace_notes(point.data["notes"])
                self.state.poems.replace_all(point.data["poems"])
        except Exception as exc:
            logger.critical("Rollback failed, live state may be inconsistent: %s", exc)
            raise RollbackFailure(f"Rollback failed: {exc}") from exc
        finally:
            self.context.safety_point = None
        logger.warning("Rolled back to safety point (%s)", "partial" if point.partial else "full")

    def _run(self, operation: str, apply: Callable[[], ApplyResult]) -> ApplyResult:
        with self._exclusive():
            point = self._capture_safety_point()
            self.phase = SyncPhase.APPLYING
            self._undo = []
            try:
                result = apply()
                self.context.publish()
            except Exception as exc:
                logger.warning("%s failed, rolling back: %s", operation, exc)
                try:
                    self._rollback()
                except RollbackFailure:
                    self.phase = SyncPhase.FAILED
                    raise
                self.phase = SyncPhase.ROLLED_BACK
                return ApplyResult(
                    success=False,
                    rolled_back=True,
                    partial=point.partial,
                    error=str(exc),
                )

            self._undo = []
            self.context.safety_point = None
            self.phase = SyncPhase.COMMITTED
            logger.info("%s committed", operation)
            return result

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def perform_restore(self, backup_data: dict[str, Any]) -> ApplyResult:
        """Replace live state with a backup's contents.

        Settings and icon configuration are merged over the current
        values; collections present in the backup replace the current
        ones outright.
        """
        data = _unwrap(backup_data)

        def apply() -> ApplyResult:
            applied = 0
            if isinstance(data.get("settings"), dict):
                self.state.replace_settings({**self.state.settings, **data["settings"]})
                applied += 1
            if isinstance(data.get("iconConfig"), dict):
                self.state.replace_icon_config({**self.state.icon_config, **data["iconConfig"]})
                applied += 1
            if isinstance(data.get("todos"), list):
                self.state.replace_todos(data["todos"])
                applied += 1
            if isinstance(data.get("notes"), list):
                self.state.replace_notes(data["notes"])
                applied += 1
            if isinstance(data.get("poems"), list):
                self.state.poems.replace_all(data["poems"])
                applied += 1
            return ApplyResult(success=True, applied_count=applied)

        return self._run("Restore", apply)

    def perform_merge(self, diff: DiffResult, options: MergeOptions) -> ApplyResult:
        """Append the new items of a diff to the selected collections.

        Existing items are never edited or removed. Appended todos and
        notes get fresh ids. Settings are overwritten from
        options.source_data only when options.overwrite_settings is set.
        """
        source = _unwrap(options.source_data)

        def apply() -> ApplyResult:
            if options.overwrite_settings:
                if isinstance(source.get("settings"), dict):
                    self.state.replace_settings({**self.state.settings, **source["settings"]})
                if isinstance(source.get("iconConfig"), dict):
                    self.state.replace_icon_config({**self.state.icon_config, **source["iconConfig"]})

            added = {"todos": 0, "notes": 0, "poems": 0}

            if options.include_todos and diff.todos.to_add:
                new_todos = [
                    {**item, "id": uuid.uuid4().int & 0x1FFFFFFFFFFFFF}
                    for item in diff.todos.to_add
                ]
                self.state.replace_todos(self.state.todos + new_todos)
                added["todos"] = len(new_todos)

            if options.include_notes and diff.notes.to_add:
                new_notes = [{**item, "id": str(uuid.uuid4())} for item in diff.notes.to_add]
                self.state.replace_notes(self.state.notes + new_notes)
                added["notes"] = len(new_notes)

            if options.include_poems and diff.poems.to_add:
                self.state.poems.replace_all(self.state.poems.get_all() + diff.poems.to_add)
                added["poems"] = len(diff.poems.to_add)

            return ApplyResult(success=True, added_count=added)

        return self._run("Merge", apply)

    def perform_selective_settings_restore(
        self,
        selected_keys: list[str],
        backup_data: dict[str, Any],
    ) -> ApplyResult:
        """Write only the chosen keys from a backup's configuration."""
        data = _unwrap(backup_data)
        backup_settings = data.get("settings") or {}
        backup_icons = data.get("iconConfig") or {}

        def apply() -> ApplyResult:
            settings = dict(self.state.settings)
            icon_config = dict(self.state.icon_config)
            applied = 0
            for key in selected_keys:
                if (key in settings or key in SETTINGS_REGISTRY) and key in backup_settings:
                    settings[key] = backup_settings[key]
                    applied += 1
                elif (key in icon_config or key in ICON_REGISTRY) and key in backup_icons:
                    icon_config[key] = backup_icons[key]
                    applied += 1
            self.state.replace_settings(settings)
            self.state.replace_icon_config(icon_config)
            return ApplyResult(success=True, applied_count=applied)

        return self._run("Selective restore", apply)

    def apply_decoded(self, decoded: DecodeResult) -> ApplyResult:
        """Apply a decoded transport payload over the live configuration.

        A carried wallpaper is stored under WALLPAPER_KEY and turns the
        daily wallpaper off, so the imported image is the one shown.
        """

        def apply() -> ApplyResult:
            settings = {**self.state.settings, **decoded.settings}
            applied = len(decoded.settings) + len(decoded.icon_config)
            if decoded.wallpaper:
                self._store_wallpaper(decoded.wallpaper)
                settings["wallpaperDailyEnabled"] = False
                applied += 1
            self.state.replace_settings(settings)
            self.state.replace_icon_config({**self.state.icon_config, **decoded.icon_config})
            return ApplyResult(success=True, applied_count=applied)

        return self._run(f"Import ({decoded.mode.value})", apply)

    def _store_wallpaper(self, wallpaper: str) -> None:
        blob_store = self.context.blob_store
        previous = blob_store.get(WALLPAPER_KEY)

        def undo() -> None:
            if previous is None:
                blob_store.delete(WALLPAPER_KEY)
            else:
                blob_store.put(WALLPAPER_KEY, previous)

        blob_store.put(WALLPAPER_KEY, wallpaper)
        self._undo.append(undo)

    def apply_preset(self, preset: Preset) -> ApplyResult:
        """Record a preset_apply snapshot, then merge the preset in."""

        def apply() -> ApplyResult:
            self.context.snapshots.create_snapshot(
                SnapshotTrigger.PRESET_APPLY, f"Before preset {preset.name}"
            )
            self.state.replace_settings({**self.state.settings, **preset.settings})
            self.state.replace_icon_config({**self.state.icon_config, **preset.icon_config})
            return ApplyResult(
                success=True,
                applied_count=len(preset.settings) + len(preset.icon_config),
            )

        return self._run(f"Preset {preset.id}", apply)

    def restore_snapshot(self, snapshot_id: str) -> ApplyResult:
        """Restore a stored snapshot. A restore point is recorded first.

        Raises:
            SnapshotNotFound: Unknown id; nothing is touched.
        """
        snapshot = self.context.snapshots.load(snapshot_id)

        def apply() -> ApplyResult:
            self.context.snapshots.restore_snapshot(snapshot_id)
            return ApplyResult(
                success=True,
                applied_count=sum(len(v) for v in snapshot.data.values()),
            )

        return self._run(f"Snapshot restore {snapshot_id}", apply)
