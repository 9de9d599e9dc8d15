"""Shared test fixtures for cjsync."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from cjsync import crypto
from cjsync.config import SyncSettings
from cjsync.orchestrator import SyncContext, SyncOrchestrator
from cjsync.state import AppState
from cjsync.store import MemoryBlobStore

FAST_ITERATIONS = 1000


@pytest.fixture(autouse=True)
def fast_kdf(monkeypatch):
    """Keep PBKDF2 cheap; a million iterations per test is too slow."""
    monkeypatch.setattr(crypto, "PBKDF2_ITERATIONS", FAST_ITERATIONS)


@pytest.fixture
def sample_settings() -> dict:
    return {
        "todoWidth": 300,
        "todoShow": True,
        "wallpaperBlur": 12.5,
        "wallpaperMask": 30,
        "layoutPreset": "standard",
        "layoutGridRows": 2,
        "layoutGridCols": 6,
        "searchBarWidth": 60,
        "weatherCity": "Hangzhou",
        "pomodoroWorkMinutes": 25,
    }


@pytest.fixture
def sample_icons() -> dict:
    return {"hideLabel": False, "boxSize": 84, "iconScale": 60, "radius": 12, "opacity": 95.5}


@pytest.fixture
def app_state(sample_settings: dict, sample_icons: dict) -> AppState:
    """Live state with a little of everything."""
    return AppState(
        settings=sample_settings,
        icon_config=sample_icons,
        todos=[
            {"id": 1, "text": "Buy milk", "done": False},
            {"id": 2, "text": "Write report", "done": True},
        ],
        notes=[{"id": "n1", "title": "Ideas", "content": "Ship the sync engine"}],
        poems=[{"id": "p1", "content": "床前明月光", "author": "李白"}],
    )


@pytest.fixture
def blob_store() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def context(app_state: AppState, blob_store: MemoryBlobStore):
    """In-memory SyncContext, closed after the test."""
    ctx = SyncContext(app_state, blob_store, SyncSettings(pbkdf2_iterations=FAST_ITERATIONS))
    yield ctx
    ctx.close()


@pytest.fixture
def orchestrator(context: SyncContext) -> SyncOrchestrator:
    return SyncOrchestrator(context)


@pytest.fixture
def sync_home(tmp_path: Path, app_state: AppState) -> Path:
    """On-disk sync home with config and state, as the CLI sees it."""
    from cjsync.state import StateFile

    home = tmp_path / ".cjsync"
    home.mkdir()
    (home / "config.yaml").write_text(
        yaml.dump({"pbkdf2_iterations": FAST_ITERATIONS}, default_flow_style=False)
    )
    StateFile(home).save(app_state)
    return home
