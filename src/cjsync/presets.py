"""
Configuration presets — named partial settings applied in one step.

Three system presets ship built in and cannot be edited or deleted.
User presets are captured from the live configuration and stored in
the blob store under one key.

Applying a preset goes through the orchestrator, which records a
preset_apply snapshot first.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Optional

from .models import Preset
from .schema import ICON_REGISTRY, SETTINGS_REGISTRY
from .state import AppState
from .store import BlobStore

logger = logging.getLogger("cjsync.presets")

PRESETS_KEY = "presets.user"

SYSTEM_PRESETS: list[Preset] = [
    Preset(
        id="system_minimal",
        name="Minimal",
        description="Content first, fewer distractions",
        icon="🎯",
        is_system=True,
        settings={
            "todoShow": False,
            "notePadShow": False,
            "calculatorShow": False,
            "poemShow": False,
            "layoutGridRows": 1,
            "layoutGridCols": 8,
            "layoutPreset": "compact",
        },
        icon_config={"hideLabel": True, "boxSize": 72},
    ),
    Preset(
        id="system_standard",
        name="Standard",
        description="Balanced features and simplicity",
        icon="⚖️",
        is_system=True,
        settings={
            "todoShow": True,
            "notePadShow": True,
            "calculatorShow": True,
            "poemShow": True,
            "layoutGridRows": 2,
            "layoutGridCols": 6,
            "layoutPreset": "standard",
        },
        icon_config={"hideLabel": False, "boxSize": 84},
    ),
    Preset(
        id="system_focus",
        name="Focus",
        description="Pomodoro and todos for deep work",
        icon="🍅",
        is_system=True,
        settings={
            "todoShow": True,
            "notePadShow": False,
            "calculatorShow": False,
            "poemShow": False,
            "pomodoroWorkMinutes": 25,
            "pomodoroBreakMinutes": 5,
            "pomodoroAutoBreak": True,
        },
    ),
]


class PresetStore:
    """System presets plus user presets persisted in a blob store."""

    def __init__(self, blob_store: BlobStore) -> None:
        self.blob_store = blob_store

    def _load_user(self) -> list[Preset]:
        raw = self.blob_store.get(PRESETS_KEY) or []
        presets = []
        for item in raw:
            try:
                presets.append(Preset.model_validate(item))
            except ValueError as exc:
                logger.warning("Skipping corrupt preset: %s", exc)
        return presets

    def _save_user(self, presets: list[Preset]) -> None:
        self.blob_store.put(PRESETS_KEY, [p.model_dump(mode="json") for p in presets])

    def list_presets(self) -> list[Preset]:
        return [p.model_copy(deep=True) for p in SYSTEM_PRESETS] + self._load_user()

    def get(self, preset_id: str) -> Optional[Preset]:
        for preset in self.list_presets():
            if preset.id == preset_id:
                return preset
        return None

    def save_current(
        self,
        state: AppState,
        name: str,
        icon: str = "📦",
        description: Optional[str] = None,
    ) -> Preset:
        """Capture the live registered settings as a new user preset."""
        now = int(time.time() * 1000)
        settings, _ = SETTINGS_REGISTRY.sanitize(
            {k: v for k, v in state.settings.items() if k in SETTINGS_REGISTRY}
        )
        icon_config, _ = ICON_REGISTRY.sanitize(
            {k: v for k, v in state.icon_config.items() if k in ICON_REGISTRY}
        )
        preset = Preset(
            id=f"preset_{now}_{uuid.uuid4().hex[:6]}",
            name=name,
            description=description,
            icon=icon,
            is_system=False,
            created_at=now,
            settings=settings,
            icon_config=icon_config,
        )
        presets = self._load_user()
        presets.append(preset)
        self._save_user(presets)
        logger.info("Saved preset %s (%s)", preset.id, name)
        return preset

    def rename(self, preset_id: str, name: str) -> bool:
        """Rename a user preset. System presets are read-only."""
        presets = self._load_user()
        for preset in presets:
            if preset.id == preset_id:
                preset.name = name
                self._save_user(presets)
                return True
        return False

    def delete(self, preset_id: str) -> bool:
        """Delete a user preset. System presets cannot be deleted."""
        presets = self._load_user()
        kept = [p for p in presets if p.id != preset_id]
        if len(kept) == len(presets):
            return False
        self._save_user(kept)
        return True
