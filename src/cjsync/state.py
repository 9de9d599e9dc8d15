"""
Live application state — the containers the orchestrator writes to.

The UI owns these in the running app; here they are plain in-process
objects with replace-style mutators so every write is one atomic swap
of a new object, never an in-place edit observers could see half done.

    state.replace_settings({...})   new dict
    state.replace_todos([...])      new list
    state.poems.replace_all([...])  batch overwrite through the store

StateFile persists an AppState as JSON under the sync home.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger("cjsync.state")


class PoemCollection:
    """Collection store for saved poems.

    Only supports whole-collection reads and batch overwrites, which is
    all the sync engine needs.
    """

    def __init__(self, items: Optional[list[dict[str, Any]]] = None) -> None:
        self._items: list[dict[str, Any]] = list(items or [])

    def get_all(self) -> list[dict[str, Any]]:
        return copy.deepcopy(self._items)

    def replace_all(self, items: list[dict[str, Any]]) -> None:
        self._items = copy.deepcopy(list(items))

    def __len__(self) -> int:
        return len(self._items)


class AppState:
    """Settings, icon configuration, todos, notes and poems.

    Args:
        settings: Settings keyed by full name.
        icon_config: Icon configuration keyed by full name.
        todos: Todo items.
        notes: Note items.
        poems: Poem items, held in a PoemCollection.
    """

    def __init__(
        self,
        settings: Optional[dict[str, Any]] = None,
        icon_config: Optional[dict[str, Any]] = None,
        todos: Optional[list[dict[str, Any]]] = None,
        notes: Optional[list[dict[str, Any]]] = None,
        poems: Optional[list[dict[str, Any]]] = None,
    ) -> None:
        self.settings: dict[str, Any] = dict(settings or {})
        self.icon_config: dict[str, Any] = dict(icon_config or {})
        self.todos: list[dict[str, Any]] = list(todos or [])
        self.notes: list[dict[str, Any]] = list(notes or [])
        self.poems = PoemCollection(poems)

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------

    def replace_settings(self, settings: dict[str, Any]) -> None:
        self.settings = copy.deepcopy(dict(settings))

    def replace_icon_config(self, icon_config: dict[str, Any]) -> None:
        self.icon_config = copy.deepcopy(dict(icon_config))

    def replace_todos(self, todos: list[dict[str, Any]]) -> None:
        self.todos = copy.deepcopy(list(todos))

    def replace_notes(self, notes: list[dict[str, Any]]) -> None:
        self.notes = copy.deepcopy(list(notes))

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def config_data(self) -> dict[str, dict[str, Any]]:
        """Deep copy of settings and icon configuration only."""
        return {
            "settings": copy.deepcopy(self.settings),
            "iconConfig": copy.deepcopy(self.icon_config),
        }

    def collect_all(self) -> dict[str, Any]:
        """Deep copy of everything, in backup-file "data" shape."""
        return {
            **self.config_data(),
            "todos": copy.deepcopy(self.todos),
            "notes": copy.deepcopy(self.notes),
            "poems": self.poems.get_all(),
        }

    @classmethod
    def from_data(cls, data: dict[str, Any]) -> "AppState":
        return cls(
            settings=data.get("settings"),
            icon_config=data.get("iconConfig"),
            todos=data.get("todos"),
            notes=data.get("notes"),
            poems=data.get("poems"),
        )


class StateFile:
    """Load and save an AppState as JSON.

    Stores at: <home>/state.json
    """

    def __init__(self, home: Path) -> None:
        self.path = Path(home).expanduser() / "state.json"

    def load(self) -> AppState:
        if not self.path.exists():
            return AppState()
        try:
            return AppState.from_data(json.loads(self.path.read_text(encoding="utf-8")))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Failed to load state from %s: %s", self.path, exc)
            return AppState()

    def save(self, state: AppState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(state.collect_all(), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
