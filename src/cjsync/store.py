"""
Persistent key/blob stores used by the snapshot history.

Two implementations of the same small interface:

    FileBlobStore    one JSON file per key under a directory
    MemoryBlobStore  dict-backed, for tests and ephemeral sessions

Both honour an optional byte quota and raise StorageQuotaExceeded
instead of writing past it. Neither deduplicates concurrent writes to
the same key; the last write wins.
"""

from __future__ import annotations

import errno
import json
import logging
import re
import threading
from pathlib import Path
from typing import Any, Optional, Protocol

from .errors import StorageQuotaExceeded

logger = logging.getLogger("cjsync.store")

_SAFE_KEY = re.compile(r"[^A-Za-z0-9_.-]")


class BlobStore(Protocol):
    """Key/value persistence for JSON-serializable values."""

    def get(self, key: str) -> Optional[Any]: ...

    def put(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> bool: ...

    def list_keys(self, prefix: str = "") -> list[str]: ...


class MemoryBlobStore:
    """In-memory BlobStore.

    Values are stored as serialized JSON so callers never share
    mutable state with the store.

    Args:
        quota_bytes: Optional cap on the total serialized size.
    """

    def __init__(self, quota_bytes: Optional[int] = None) -> None:
        self.quota_bytes = quota_bytes
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            raw = self._data.get(key)
        return None if raw is None else json.loads(raw)

    def put(self, key: str, value: Any) -> None:
        raw = json.dumps(value, default=str)
        with self._lock:
            if self.quota_bytes is not None:
                used = sum(len(v) for k, v in self._data.items() if k != key)
                if used + len(raw) > self.quota_bytes:
                    raise StorageQuotaExceeded(
                        f"Store quota exceeded writing {key} ({used + len(raw)} > {self.quota_bytes})"
                    )
            self._data[key] = raw

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def list_keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))


class FileBlobStore:
    """BlobStore keeping one JSON file per key.

    Stores at: <base_dir>/<key>.json

    Args:
        base_dir: Directory for the files. Created if missing.
        quota_bytes: Optional cap on the total size of stored files.
    """

    def __init__(self, base_dir: Path, quota_bytes: Optional[int] = None) -> None:
        self.base_dir = Path(base_dir).expanduser()
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.quota_bytes = quota_bytes

    def _path(self, key: str) -> Path:
        return self.base_dir / f"{_SAFE_KEY.sub('_', key)}.json"

    def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Unreadable blob %s: %s", path, exc)
            return None

    def put(self, key: str, value: Any) -> None:
        path = self._path(key)
        raw = json.dumps(value, indent=2, default=str)

        if self.quota_bytes is not None:
            used = sum(p.stat().st_size for p in self.base_dir.glob("*.json") if p != path)
            if used + len(raw.encode("utf-8")) > self.quota_bytes:
                raise StorageQuotaExceeded(f"Store quota exceeded writing {key}")

        tmp = path.with_suffix(".json.tmp")
        try:
            tmp.write_text(raw, encoding="utf-8")
            tmp.replace(path)
        except OSError as exc:
            tmp.unlink(missing_ok=True)
            if exc.errno == errno.ENOSPC:
                raise StorageQuotaExceeded(str(exc)) from exc
            raise

    def delete(self, key: str) -> bool:
        path = self._path(key)
        if not path.exists():
            return False
        path.unlink()
        return True

    def list_keys(self, prefix: str = "") -> list[str]:
        keys = [p.stem for p in self.base_dir.glob("*.json")]
        return sorted(k for k in keys if k.startswith(prefix))
