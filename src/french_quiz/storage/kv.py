"""Durable key-value slots (JSON file per key + fcntl.flock + atomic write)."""

import fcntl
import json
import os
import re
import tempfile
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import structlog

from french_quiz.errors import StorageError

logger = structlog.get_logger()

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class JsonFileStore:
    """Device-scoped key-value storage.

    Each key lives in ``<root>/<key>.json``. ``update`` runs a whole
    read-modify-write cycle while holding an exclusive lock for that key,
    so writers against the same key are serialized both across threads and
    across processes sharing the directory.

    Args:
        root: Directory holding the slots. Created if missing.
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise StorageError(f"Invalid storage key: {key!r}")
        return self.root / f"{key}.json"

    def _thread_lock(self, key: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(key, threading.Lock())

    @contextmanager
    def _locked(self, key: str) -> Iterator[None]:
        self._path(key)
        lock_path = self.root / f".{key}.lock"
        with self._thread_lock(key):
            with open(lock_path, "w") as lock_file:
                fcntl.flock(lock_file, fcntl.LOCK_EX)
                try:
                    yield
                finally:
                    fcntl.flock(lock_file, fcntl.LOCK_UN)

    def _read(self, key: str, default: Any) -> Any:
        path = self._path(key)
        if not path.exists():
            return default
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error("storage_read_failed", key=key, error=str(e))
            raise StorageError(f"Could not read slot {key!r}: {e}") from e

    def _write(self, key: str, value: Any) -> None:
        path = self._path(key)
        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", dir=self.root, delete=False, suffix=".json", encoding="utf-8"
            ) as tmp:
                tmp_name = tmp.name
                json.dump(value, tmp)
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_name:
                Path(tmp_name).unlink(missing_ok=True)
            logger.error("storage_write_failed", key=key, error=str(e))
            raise StorageError(f"Could not write slot {key!r}: {e}") from e

    def get(self, key: str, default: Any = None) -> Any:
        return self._read(key, default)

    def get_raw(self, key: str) -> str | None:
        """Return the slot's text exactly as stored, or None."""
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set_raw(self, key: str, text: str) -> None:
        """Store text verbatim (used to restore backups byte for byte)."""
        path = self._path(key)
        with self._locked(key):
            with tempfile.NamedTemporaryFile(
                "w", dir=self.root, delete=False, suffix=".json", encoding="utf-8"
            ) as tmp:
                tmp.write(text)
            os.replace(tmp.name, path)

    def set(self, key: str, value: Any) -> None:
        with self._locked(key):
            self._write(key, value)

    def update(self, key: str, fn: Callable[[Any], Any], default: Any = None) -> Any:
        """Apply ``fn`` to the current value and store the result atomically."""
        with self._locked(key):
            current = self._read(key, default)
            new_value = fn(current)
            self._write(key, new_value)
            return new_value

    def delete(self, key: str) -> None:
        with self._locked(key):
            self._path(key).unlink(missing_ok=True)

    def keys(self, prefix: str = "") -> list[str]:
        return sorted(
            p.stem for p in self.root.glob("*.json")
            if p.stem.startswith(prefix)
        )
