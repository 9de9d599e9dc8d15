"""
Pydantic models shared across the sync engine.

Wire formats (transport payload, backup container) stay plain dicts at
the edges; everything the engine hands back to a caller is one of
these models.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class ExportMode(str, Enum):
    """Which subset of settings a transport payload carries."""

    THEME = "theme"
    FULL = "full"
    CUSTOM = "custom"


class SnapshotTrigger(str, Enum):
    """Why a history snapshot was taken."""

    MANUAL = "manual"
    AUTO = "auto"
    RESTORE_POINT = "restore_point"
    PRESET_APPLY = "preset_apply"


class SyncPhase(str, Enum):
    """Orchestrator transaction phase."""

    IDLE = "idle"
    COLLECTING_SNAPSHOT = "collecting_snapshot"
    APPLYING = "applying"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Codec results
# ---------------------------------------------------------------------------


class EncodeResult(BaseModel):
    """Serialized transport payload plus its size check."""

    payload: str
    size: int
    is_over_limit: bool


class DecodeResult(BaseModel):
    """Sanitized, fully-qualified state recovered from a payload.

    Attributes:
        settings: Settings keyed by their full names.
        icon_config: Icon configuration keyed by full names.
        wallpaper: Optional wallpaper image as a data URL or base64 text.
        mode: Export mode the payload was written with.
        version: Protocol version of the payload.
        timestamp: Epoch milliseconds when the payload was written.
        encrypted: Whether the payload arrived encrypted.
        dropped: Fields removed by sanitization, for audit display.
    """

    settings: dict[str, Any] = Field(default_factory=dict)
    icon_config: dict[str, Any] = Field(default_factory=dict)
    wallpaper: Optional[str] = None
    mode: ExportMode
    version: int
    timestamp: float
    encrypted: bool = False
    dropped: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Backup file
# ---------------------------------------------------------------------------


class BackupMeta(BaseModel):
    """Header of a full backup file."""

    version: int
    exportTime: int
    appName: str
    dataKeys: list[str] = Field(default_factory=list)


class ValidationStatus(str, Enum):
    """Outcome category of backup validation."""

    VALID = "valid"
    MIGRATE = "migrate"
    REJECT = "reject"


class ValidationOutcome(BaseModel):
    """Valid(version) | Migrate(old_version) | Reject(reason)."""

    status: ValidationStatus
    version: Optional[int] = None
    reason: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.status != ValidationStatus.REJECT


class RestoreStats(BaseModel):
    """Counts shown to the user before a restore is confirmed."""

    settings: bool
    icon_config: bool
    todo_count: int = 0
    note_count: int = 0
    poem_count: int = 0
    export_time: int = 0
    version: int = 0


# ---------------------------------------------------------------------------
# Diff
# ---------------------------------------------------------------------------


class CollectionDiff(BaseModel):
    """Backup items missing locally, plus how many were duplicates."""

    to_add: list[dict[str, Any]] = Field(default_factory=list)
    duplicate_count: int = 0
    total_in_backup: int = 0


class SettingsDiff(BaseModel):
    """Keys whose values differ between backup and local state."""

    has_diff: bool = False
    diff_keys: list[str] = Field(default_factory=list)


class DiffResult(BaseModel):
    """Everything a merge needs to know about a backup."""

    todos: CollectionDiff = Field(default_factory=CollectionDiff)
    notes: CollectionDiff = Field(default_factory=CollectionDiff)
    poems: CollectionDiff = Field(default_factory=CollectionDiff)
    settings: SettingsDiff = Field(default_factory=SettingsDiff)


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


class SnapshotMeta(BaseModel):
    """Listing entry for a snapshot, without its payload."""

    id: str
    timestamp: int
    trigger: SnapshotTrigger
    label: Optional[str] = None
    size_kb: float = 0.0
    is_locked: bool = False


class Snapshot(SnapshotMeta):
    """A stored copy of settings and icon configuration."""

    data: dict[str, dict[str, Any]] = Field(default_factory=dict)

    def meta(self) -> SnapshotMeta:
        return SnapshotMeta(**self.model_dump(exclude={"data"}))


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class SafetyPoint(BaseModel):
    """Copy of live state taken right before a destructive apply.

    A partial safety point only covers settings and icon configuration.
    """

    partial: bool = False
    data: dict[str, Any] = Field(default_factory=dict)


class MergeOptions(BaseModel):
    """What a merge should touch."""

    include_todos: bool = True
    include_notes: bool = True
    include_poems: bool = True
    overwrite_settings: bool = False
    source_data: dict[str, Any] = Field(default_factory=dict)


class ApplyResult(BaseModel):
    """Outcome of an orchestrator transaction."""

    success: bool
    rolled_back: bool = False
    partial: bool = False
    error: Optional[str] = None
    added_count: dict[str, int] = Field(default_factory=dict)
    applied_count: int = 0


class Preset(BaseModel):
    """Named bundle of settings that can be applied in one step."""

    id: str
    name: str
    description: Optional[str] = None
    icon: str = ""
    is_system: bool = False
    created_at: int = 0
    settings: dict[str, Any] = Field(default_factory=dict)
    icon_config: dict[str, Any] = Field(default_factory=dict)
