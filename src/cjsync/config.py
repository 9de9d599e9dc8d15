"""
Engine configuration.

Stored at: <home>/config.yaml

    max_snapshots: 10
    auto_save_delay_seconds: 300
    pbkdf2_iterations: 1000000

Missing keys take their defaults. An unreadable or invalid file is
logged and ignored, never fatal.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from . import SYNC_HOME

logger = logging.getLogger("cjsync.config")

CONFIG_FILENAME = "config.yaml"


class SyncSettings(BaseModel):
    """Tunables for the sync engine."""

    max_snapshots: int = Field(default=10, ge=1)
    auto_save_delay_seconds: float = Field(default=300, ge=0)
    max_transport_chars: int = Field(default=2000, ge=1)
    safety_limit_kb: float = Field(default=4500, gt=0)
    broker_timeout_seconds: float = Field(default=10, gt=0)
    pbkdf2_iterations: int = Field(default=1_000_000, ge=1)
    storage_quota_bytes: Optional[int] = Field(default=None, ge=0)
    evict_retry_limit: int = Field(default=3, ge=0)


def resolve_home(home: Optional[Path] = None) -> Path:
    """The sync home directory: explicit path, else CJSYNC_HOME, else ~/.cjsync."""
    return Path(home or SYNC_HOME).expanduser()


def load_settings(home: Optional[Path] = None) -> SyncSettings:
    """Load settings from <home>/config.yaml, or defaults."""
    config_file = resolve_home(home) / CONFIG_FILENAME
    if config_file.exists():
        try:
            data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
            return SyncSettings(**data)
        except (yaml.YAMLError, TypeError, ValueError) as exc:
            logger.warning("Failed to load config %s: %s", config_file, exc)
    return SyncSettings()


def save_settings(settings: SyncSettings, home: Optional[Path] = None) -> Path:
    """Write settings to <home>/config.yaml. Returns the file path."""
    config_file = resolve_home(home) / CONFIG_FILENAME
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(
        yaml.dump(settings.model_dump(), default_flow_style=False),
        encoding="utf-8",
    )
    return config_file
