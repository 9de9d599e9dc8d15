"""
Tests for cjsync.orchestrator — transactional apply and rollback.

Covers: restore, merge safety, selective restore, decoded imports,
presets, snapshot restore, rollback exactness (full and partial),
critical rollback failure, the busy flag, and commit callbacks.
"""

from __future__ import annotations

import threading

import pytest

from cjsync import codec
from cjsync.config import SyncSettings
from cjsync.diff import analyze_backup
from cjsync.errors import RollbackFailure, SnapshotNotFound, SyncBusy
from cjsync.models import DecodeResult, MergeOptions, SnapshotTrigger, SyncPhase
from cjsync.orchestrator import WALLPAPER_KEY, SyncContext, SyncOrchestrator
from cjsync.presets import SYSTEM_PRESETS
from cjsync.state import AppState
from cjsync.store import MemoryBlobStore


class FailingState(AppState):
    """AppState whose collection writes fail on demand."""

    def __init__(self, *args, fail_todos: int = 0, fail_settings_after: int = -1, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_todos = fail_todos
        self.fail_settings_after = fail_settings_after

    def replace_todos(self, todos):
        if self.fail_todos > 0:
            self.fail_todos -= 1
            raise RuntimeError("todo store unavailable")
        super().replace_todos(todos)

    def replace_settings(self, settings):
        if self.fail_settings_after == 0:
            raise RuntimeError("settings store unavailable")
        if self.fail_settings_after > 0:
            self.fail_settings_after -= 1
        super().replace_settings(settings)


def _disk_full(state: AppState) -> None:
    raise OSError("disk full")


def _failing_context(app_state: AppState, **kwargs) -> SyncContext:
    state = FailingState(
        settings=app_state.settings,
        icon_config=app_state.icon_config,
        todos=app_state.todos,
        notes=app_state.notes,
        poems=app_state.poems.get_all(),
        **kwargs,
    )
    return SyncContext(state, MemoryBlobStore(), SyncSettings())


@pytest.fixture
def backup_data(app_state) -> dict:
    return {
        "settings": {"todoWidth": 500, "todoShow": False},
        "iconConfig": {"boxSize": 120},
        "todos": [{"id": 50, "text": "Buy milk"}, {"id": 51, "text": "Call mom"}],
        "notes": [{"id": "n9", "title": "Trip", "content": "Pack bags"}],
        "poems": [{"content": "床前明月光", "author": "李白"}, {"content": "春眠不觉晓", "author": "孟浩然"}],
    }


# ---------------------------------------------------------------------------
# Restore
# ---------------------------------------------------------------------------


class TestPerformRestore:
    """Whole-state restore."""

    def test_restore(self, orchestrator, app_state, backup_data):
        result = orchestrator.perform_restore(backup_data)

        assert result.success
        assert result.applied_count == 5
        assert app_state.settings["todoWidth"] == 500
        assert app_state.settings["weatherCity"] == "Hangzhou"
        assert app_state.icon_config["boxSize"] == 120
        assert app_state.todos == backup_data["todos"]
        assert len(app_state.poems) == 2
        assert orchestrator.phase == SyncPhase.COMMITTED
        assert orchestrator.context.safety_point is None

    def test_accepts_whole_container(self, orchestrator, app_state, backup_data):
        container = {"meta": {"version": 1}, "data": backup_data}
        assert orchestrator.perform_restore(container).success
        assert app_state.notes == backup_data["notes"]

    def test_commit_callbacks(self, context, orchestrator, backup_data):
        seen = []
        context.on_commit(lambda state: seen.append(state.settings["todoWidth"]))
        orchestrator.perform_restore(backup_data)
        assert seen == [500]
        assert context.autosaver.pending


class TestRollback:
    """Failures inside Applying are compensated."""

    def test_rollback_exact(self, app_state, backup_data):
        context = _failing_context(app_state, fail_todos=1)
        before = context.state.collect_all()

        result = SyncOrchestrator(context).perform_restore(backup_data)

        assert not result.success
        assert result.rolled_back
        assert result.partial is False
        assert "todo store unavailable" in result.error
        assert context.state.collect_all() == before
        assert context.safety_point is None

    def test_partial_safety_point(self, app_state, backup_data):
        context = _failing_context(app_state, fail_todos=1)
        context.settings = SyncSettings(safety_limit_kb=0.01)
        before_settings = dict(context.state.settings)

        orchestrator = SyncOrchestrator(context)
        result = orchestrator.perform_restore(backup_data)

        assert result.rolled_back
        assert result.partial is True
        assert context.state.settings == before_settings
        assert orchestrator.phase == SyncPhase.ROLLED_BACK

    def test_no_commit_callbacks_on_rollback(self, app_state, backup_data):
        context = _failing_context(app_state, fail_todos=1)
        seen = []
        context.on_commit(seen.append)
        SyncOrchestrator(context).perform_restore(backup_data)
        assert seen == []

    def test_rollback_failure_is_critical(self, app_state, backup_data):
        # first settings write succeeds, the rollback's settings write fails
        context = _failing_context(app_state, fail_todos=1, fail_settings_after=1)
        with pytest.raises(RollbackFailure):
            SyncOrchestrator(context).perform_restore(backup_data)
        assert context.safety_point is None

    def test_rollback_failure_sets_failed_phase(self, app_state, backup_data):
        context = _failing_context(app_state, fail_todos=1, fail_settings_after=1)
        orchestrator = SyncOrchestrator(context)
        with pytest.raises(RollbackFailure):
            orchestrator.perform_restore(backup_data)
        assert orchestrator.phase == SyncPhase.FAILED
        assert not orchestrator.busy

    def test_failing_commit_callback_rolls_back(self, context, orchestrator, app_state, backup_data):
        before = app_state.collect_all()

        context.on_commit(_disk_full)
        result = orchestrator.perform_restore(backup_data)

        assert not result.success
        assert result.rolled_back
        assert "disk full" in result.error
        assert app_state.collect_all() == before
        assert orchestrator.phase == SyncPhase.ROLLED_BACK
        assert context.safety_point is None
        assert not context.autosaver.pending


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


class TestPerformMerge:
    """Append-only merges."""

    def test_merge_appends_only_new(self, orchestrator, app_state, backup_data):
        before = app_state.collect_all()
        diff = analyze_backup(backup_data, before)

        result = orchestrator.perform_merge(diff, MergeOptions(source_data=backup_data))

        assert result.success
        assert result.added_count == {"todos": 1, "notes": 1, "poems": 1}
        assert app_state.todos[: len(before["todos"])] == before["todos"]
        assert app_state.notes[: len(before["notes"])] == before["notes"]
        assert app_state.poems.get_all()[:1] == before["poems"]
        assert app_state.todos[-1]["text"] == "Call mom"
        assert app_state.settings == before["settings"]

    def test_merged_items_get_fresh_ids(self, orchestrator, app_state, backup_data):
        diff = analyze_backup(backup_data, app_state.collect_all())
        orchestrator.perform_merge(diff, MergeOptions())
        assert app_state.todos[-1]["id"] != 51
        assert app_state.notes[-1]["id"] != "n9"
        assert diff.todos.to_add[0]["id"] == 51

    def test_merge_never_shrinks(self, orchestrator, app_state):
        before = {k: len(v) for k, v in app_state.collect_all().items() if isinstance(v, list)}
        diff = analyze_backup({"todos": [], "notes": [], "poems": []}, app_state.collect_all())
        orchestrator.perform_merge(diff, MergeOptions())
        after = {k: len(v) for k, v in app_state.collect_all().items() if isinstance(v, list)}
        assert after == before

    def test_merge_is_idempotent(self, orchestrator, app_state, backup_data):
        orchestrator.perform_merge(analyze_backup(backup_data, app_state.collect_all()), MergeOptions())
        again = analyze_backup(backup_data, app_state.collect_all())
        result = orchestrator.perform_merge(again, MergeOptions())
        assert result.added_count == {"todos": 0, "notes": 0, "poems": 0}

    def test_selected_collections_only(self, orchestrator, app_state, backup_data):
        diff = analyze_backup(backup_data, app_state.collect_all())
        result = orchestrator.perform_merge(
            diff, MergeOptions(include_todos=False, include_poems=False)
        )
        assert result.added_count == {"todos": 0, "notes": 1, "poems": 0}
        assert len(app_state.todos) == 2

    def test_overwrite_settings(self, orchestrator, app_state, backup_data):
        diff = analyze_backup(backup_data, app_state.collect_all())
        orchestrator.perform_merge(diff, MergeOptions(overwrite_settings=True, source_data=backup_data))
        assert app_state.settings["todoWidth"] == 500
        assert app_state.icon_config["boxSize"] == 120

    def test_merge_rollback(self, app_state, backup_data):
        context = _failing_context(app_state, fail_todos=1)
        before = context.state.collect_all()
        diff = analyze_backup(backup_data, before)
        result = SyncOrchestrator(context).perform_merge(
            diff, MergeOptions(overwrite_settings=True, source_data=backup_data)
        )
        assert result.rolled_back
        assert context.state.collect_all() == before


# ---------------------------------------------------------------------------
# Narrow applies
# ---------------------------------------------------------------------------


class TestSelectiveRestore:
    """Only chosen keys are written."""

    def test_writes_only_selected(self, orchestrator, app_state, backup_data):
        result = orchestrator.perform_selective_settings_restore(["todoWidth", "boxSize"], backup_data)
        assert result.success
        assert result.applied_count == 2
        assert app_state.settings["todoWidth"] == 500
        assert app_state.settings["todoShow"] is True
        assert app_state.icon_config["boxSize"] == 120
        assert len(app_state.todos) == 2

    def test_keys_missing_from_backup_skipped(self, orchestrator, app_state, backup_data):
        result = orchestrator.perform_selective_settings_restore(["weatherCity"], backup_data)
        assert result.applied_count == 0
        assert app_state.settings["weatherCity"] == "Hangzhou"


class TestApplyDecoded:
    """Applying an imported transport payload."""

    def test_merges_over_live(self, orchestrator, app_state):
        decoded = DecodeResult(
            settings={"wallpaperBlur": 3}, icon_config={"radius": 20}, mode="theme", version=1, timestamp=1
        )
        result = orchestrator.apply_decoded(decoded)
        assert result.applied_count == 2
        assert app_state.settings["wallpaperBlur"] == 3
        assert app_state.settings["todoWidth"] == 300
        assert app_state.icon_config["radius"] == 20

    def test_wallpaper_stored(self, orchestrator, context, app_state):
        app_state.replace_settings({**app_state.settings, "wallpaperDailyEnabled": True})
        payload = codec.encode({}, {}, "full", wallpaper="data:image/png;base64,AAAA").payload

        result = orchestrator.apply_decoded(codec.decode(payload))

        assert result.success
        assert context.blob_store.get(WALLPAPER_KEY) == "data:image/png;base64,AAAA"
        assert app_state.settings["wallpaperDailyEnabled"] is False

    def test_wallpaper_rolled_back(self, context, orchestrator, app_state):
        context.blob_store.put(WALLPAPER_KEY, "data:image/png;base64,OLD=")
        context.on_commit(_disk_full)
        decoded = DecodeResult(wallpaper="data:image/png;base64,AAAA", mode="full", version=1, timestamp=1)

        result = orchestrator.apply_decoded(decoded)

        assert result.rolled_back
        assert context.blob_store.get(WALLPAPER_KEY) == "data:image/png;base64,OLD="
        assert "wallpaperDailyEnabled" not in app_state.settings

    def test_new_wallpaper_removed_on_rollback(self, context, orchestrator):
        context.on_commit(_disk_full)
        decoded = DecodeResult(wallpaper="data:image/png;base64,AAAA", mode="full", version=1, timestamp=1)

        orchestrator.apply_decoded(decoded)

        assert context.blob_store.get(WALLPAPER_KEY) is None


class TestApplyPreset:
    """Presets record a snapshot first."""

    def test_preset(self, orchestrator, context, app_state):
        minimal = SYSTEM_PRESETS[0]
        result = orchestrator.apply_preset(minimal)

        assert result.success
        assert app_state.settings["todoShow"] is False
        assert app_state.icon_config["hideLabel"] is True
        metas = context.snapshots.list_snapshots()
        assert metas[0].trigger == SnapshotTrigger.PRESET_APPLY
        snap = context.snapshots.load(metas[0].id)
        assert snap.data["settings"]["todoShow"] is True


class TestRestoreSnapshot:
    """Snapshot restore through the orchestrator."""

    def test_restore(self, orchestrator, context, app_state):
        snap = context.snapshots.create_snapshot(SnapshotTrigger.MANUAL)
        app_state.replace_settings({**app_state.settings, "todoWidth": 777})

        result = orchestrator.restore_snapshot(snap.id)

        assert result.success
        assert app_state.settings["todoWidth"] == 300
        triggers = [m.trigger for m in context.snapshots.list_snapshots()]
        assert SnapshotTrigger.RESTORE_POINT in triggers

    def test_unknown(self, orchestrator):
        with pytest.raises(SnapshotNotFound):
            orchestrator.restore_snapshot("snap_nope")


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestBusy:
    """One mutating operation at a time."""

    def test_second_request_rejected(self, context, app_state, backup_data):
        entered = threading.Event()
        release = threading.Event()
        orchestrator = SyncOrchestrator(context)
        context.on_commit(lambda state: (entered.set(), release.wait(5)))

        worker = threading.Thread(target=orchestrator.perform_restore, args=(backup_data,))
        worker.start()
        try:
            assert entered.wait(5)
            assert orchestrator.busy
            with pytest.raises(SyncBusy):
                orchestrator.perform_merge(analyze_backup(backup_data, {}), MergeOptions())
        finally:
            release.set()
            worker.join(5)
        assert not orchestrator.busy


class TestSyncContext:
    """Opening a context on disk."""

    def test_open_loads_and_persists_state(self, sync_home, backup_data):
        from cjsync.state import StateFile

        context = SyncContext.open(sync_home)
        try:
            assert context.state.settings["todoWidth"] == 300
            SyncOrchestrator(context).perform_restore(backup_data)
        finally:
            context.close()

        assert StateFile(sync_home).load().settings["todoWidth"] == 500
        assert (sync_home / "snapshots").is_dir()
