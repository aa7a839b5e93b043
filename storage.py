"""Durable string key/value storage used by the ride cache.

Values are opaque strings; callers serialize. A store raises StorageError
(or StorageQuotaError) when a write cannot complete.
"""
import os
import re
import tempfile
from pathlib import Path
from threading import Lock
from typing import Dict, Optional, Protocol

from exceptions import StorageError, StorageQuotaError


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data = dict(initial or {})
        self._lock = Lock()

    def get(self, key):
        with self._lock:
            return self._data.get(key)

    def set(self, key, value):
        with self._lock:
            self._data[key] = value

    def delete(self, key):
        with self._lock:
            self._data.pop(key, None)

    def keys(self):
        with self._lock:
            return sorted(self._data)


_SAFE_KEY = re.compile(r"[^A-Za-z0-9_.-]")


class FileStore:
    """One file per key under ``directory``, replaced atomically on write."""

    def __init__(self, directory, max_bytes: Optional[int] = None):
        self.directory = Path(directory)
        self.max_bytes = max_bytes

    def _path(self, key: str) -> Path:
        return self.directory / (_SAFE_KEY.sub("_", key) + ".txt")

    def _used_bytes(self, excluding: Path) -> int:
        if not self.directory.exists():
            return 0
        return sum(p.stat().st_size for p in self.directory.glob("*.txt") if p != excluding)

    def get(self, key):
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Failed reading {key}: {e}") from e

    def set(self, key, value):
        path = self._path(key)
        encoded = value.encode("utf-8")
        if self.max_bytes is not None and self._used_bytes(path) + len(encoded) > self.max_bytes:
            raise StorageQuotaError(f"Writing {key} would exceed {self.max_bytes} bytes")
        tmp = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
            with os.fdopen(fd, "wb") as fh:
                fh.write(encoded)
            os.replace(tmp, path)
        except OSError as e:
            if tmp is not None and os.path.exists(tmp):
                os.unlink(tmp)
            raise StorageError(f"Failed writing {key}: {e}") from e

    def delete(self, key):
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Failed deleting {key}: {e}") from e
