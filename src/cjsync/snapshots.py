"""
Snapshot history — bounded, lockable copies of the configuration.

Each snapshot holds settings and icon configuration only (collections
are too large to keep ten copies of). At most MAX_SNAPSHOTS unlocked
snapshots are kept; the oldest unlocked one goes first. Locked
snapshots never count against the cap and are never evicted.

Restoring a snapshot first records a restore point of the current
state, so every restore can itself be undone.

Storage: blob store keys "snapshot.<id>"
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Optional

from .debounce import PendingTimer
from .errors import SnapshotNotFound, StorageQuotaExceeded
from .models import Snapshot, SnapshotMeta, SnapshotTrigger
from .state import AppState
from .store import BlobStore

logger = logging.getLogger("cjsync.snapshots")

MAX_SNAPSHOTS = 10
AUTO_SAVE_DELAY_SECONDS = 5 * 60
EVICT_RETRY_LIMIT = 3
KEY_PREFIX = "snapshot."


def _now_ms() -> int:
    return int(time.time() * 1000)


def _size_kb(data: dict) -> float:
    raw = json.dumps(data, ensure_ascii=False, default=str).encode("utf-8")
    return round(len(raw) / 1024, 1)


class SnapshotStore:
    """Manages configuration snapshots in a blob store.

    Args:
        blob_store: Persistence backend.
        state: Live state snapshots are taken from and restored into.
        max_snapshots: Cap on unlocked snapshots.
        evict_retry_limit: How many times a quota failure may evict and retry.
    """

    def __init__(
        self,
        blob_store: BlobStore,
        state: AppState,
        max_snapshots: int = MAX_SNAPSHOTS,
        evict_retry_limit: int = EVICT_RETRY_LIMIT,
    ) -> None:
        self.blob_store = blob_store
        self.state = state
        self.max_snapshots = max_snapshots
        self.evict_retry_limit = evict_retry_limit

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_snapshot(
        self,
        trigger: SnapshotTrigger | str,
        label: Optional[str] = None,
    ) -> Snapshot:
        """Copy the current configuration into a new snapshot.

        Args:
            trigger: Why the snapshot is taken.
            label: Optional display label.

        Returns:
            Snapshot: The stored snapshot.

        Raises:
            StorageQuotaExceeded: Still full after evict-and-retry.
        """
        data = self.state.config_data()
        existing = self.list_snapshots()
        # strictly increasing, so eviction order is exact even within one ms
        timestamp = _now_ms()
        if existing:
            timestamp = max(timestamp, existing[0].timestamp + 1)

        snapshot = Snapshot(
            id=f"snap_{timestamp}_{uuid.uuid4().hex[:6]}",
            timestamp=timestamp,
            trigger=SnapshotTrigger(trigger),
            label=label,
            size_kb=_size_kb(data),
            is_locked=False,
            data=data,
        )

        self._save_with_retry(snapshot)
        evicted = self.cleanup()
        logger.info(
            "Snapshot created: %s (%s, %.1f KB, %d evicted)",
            snapshot.id, snapshot.trigger.value, snapshot.size_kb, evicted,
        )
        return snapshot

    def get_snapshot(self, snapshot_id: str) -> Optional[Snapshot]:
        raw = self.blob_store.get(KEY_PREFIX + snapshot_id)
        if raw is None:
            return None
        return Snapshot.model_validate(raw)

    def load(self, snapshot_id: str) -> Snapshot:
        """Load a snapshot or raise SnapshotNotFound."""
        snapshot = self.get_snapshot(snapshot_id)
        if snapshot is None:
            raise SnapshotNotFound(f"Snapshot '{snapshot_id}' not found")
        return snapshot

    def delete_snapshot(self, snapshot_id: str) -> bool:
        return self.blob_store.delete(KEY_PREFIX + snapshot_id)

    def list_snapshots(self) -> list[SnapshotMeta]:
        """Snapshot metadata, newest first."""
        metas = []
        for key in self.blob_store.list_keys(KEY_PREFIX):
            raw = self.blob_store.get(key)
            if raw is None:
                continue
            try:
                metas.append(Snapshot.model_validate(raw).meta())
            except ValueError as exc:
                logger.warning("Skipping corrupt snapshot %s: %s", key, exc)
        return sorted(metas, key=lambda m: m.timestamp, reverse=True)

    def toggle_lock(self, snapshot_id: str) -> bool:
        """Flip the lock flag. Returns the new state.

        Only the flag changes. Unlocking can leave more than
        max_snapshots unlocked snapshots; the cap is enforced again by
        the next create_snapshot().
        """
        snapshot = self.load(snapshot_id)
        snapshot.is_locked = not snapshot.is_locked
        self.blob_store.put(KEY_PREFIX + snapshot.id, snapshot.model_dump(mode="json"))
        return snapshot.is_locked

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def restore_snapshot(self, snapshot_id: str) -> Snapshot:
        """Overwrite live configuration from a snapshot.

        A restore point of the current state is recorded first.

        Returns:
            Snapshot: The restore point that was created.
        """
        snapshot = self.load(snapshot_id)
        restore_point = self.create_snapshot(
            SnapshotTrigger.RESTORE_POINT, f"Before restoring {snapshot_id}"
        )

        settings = dict(self.state.settings)
        settings.update(snapshot.data.get("settings", {}))
        icon_config = dict(self.state.icon_config)
        icon_config.update(snapshot.data.get("iconConfig", {}))
        self.state.replace_settings(settings)
        self.state.replace_icon_config(icon_config)

        logger.info("Restored snapshot %s (restore point %s)", snapshot_id, restore_point.id)
        return restore_point

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    def cleanup(self) -> int:
        """Delete the oldest unlocked snapshots beyond the cap.

        Returns:
            int: Number of snapshots deleted.
        """
        unlocked = [m for m in self.list_snapshots() if not m.is_locked]
        stale = unlocked[self.max_snapshots:]
        for meta in stale:
            self.delete_snapshot(meta.id)
        return len(stale)

    def _evict_oldest_unlocked(self) -> bool:
        unlocked = [m for m in self.list_snapshots() if not m.is_locked]
        if not unlocked:
            return False
        oldest = unlocked[-1]
        self.delete_snapshot(oldest.id)
        logger.warning("Storage full, evicted snapshot %s", oldest.id)
        return True

    def _save_with_retry(self, snapshot: Snapshot) -> None:
        payload = snapshot.model_dump(mode="json")
        attempts = 0
        while True:
            try:
                self.blob_store.put(KEY_PREFIX + snapshot.id, payload)
                return
            except StorageQuotaExceeded:
                attempts += 1
                if attempts > self.evict_retry_limit or not self._evict_oldest_unlocked():
                    raise


class AutoSaver:
    """Debounced automatic snapshots.

    Call notify_change() on every state change; one AUTO snapshot is
    taken after the changes stop for `delay` seconds.
    """

    def __init__(self, store: SnapshotStore, delay: float = AUTO_SAVE_DELAY_SECONDS) -> None:
        self.store = store
        self.delay = delay
        self._timer = PendingTimer(name="cjsync-autosave")

    @property
    def pending(self) -> bool:
        return self._timer.pending

    def notify_change(self) -> None:
        self._timer.arm(self.delay, self._save)

    def flush(self) -> bool:
        return self._timer.flush()

    def cancel(self) -> bool:
        return self._timer.cancel()

    def _save(self) -> None:
        self.store.create_snapshot(SnapshotTrigger.AUTO)
