"""Thread-safe key-value stores for per-user records.

WHY: Connected users' credentials must survive between slash commands,
and the bot process and the HTTP API process must see the same records.
The vault only needs get/set/delete by string key, so a tiny key-value
interface keeps it independent of where records live.

HOW: KVStore defines the interface. MemoryKVStore keeps a dict behind a
threading.Lock (tests, single-process runs). JsonFileKVStore keeps one
JSON object on disk; every mutation re-reads the file, applies the change
and atomically replaces the file, so two processes sharing the path see
each other's writes.

RULES:
- Keys and values are str
- get() returns None for missing keys (no exceptions)
- set() is last-write-wins
- delete() returns True if the key existed
- All public methods acquire self._lock
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class KVStore(ABC):
    """Minimal string key-value store interface."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the value for key, or None."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove key; return True if it was present."""


class MemoryKVStore(KVStore):
    """In-process dict store."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None


class JsonFileKVStore(KVStore):
    """Store backed by a single JSON object file.

    WHY: Lets the bot and the API run as separate processes without a
    database server.

    HOW: Reads are a plain load of the file. Writes load, mutate, dump to
    a temp file in the same directory, then os.replace() it over the
    original so readers never see a half-written file.

    RULES:
    - A missing file is an empty store
    - The parent directory is created on first write
    - A corrupt file raises ValueError (never silently reset)
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._dump(data)

    def delete(self, key: str) -> bool:
        with self._lock:
            data = self._load()
            if key not in data:
                return False
            del data[key]
            self._dump(data)
            return True

    def _load(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        text = self._path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError("KV store file {} is corrupt: {}".format(self._path, exc))
        if not isinstance(data, dict):
            raise ValueError("KV store file {} must hold a JSON object".format(self._path))
        return data

    def _dump(self, data: Dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=".kv_", suffix=".json", dir=str(self._path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp_name, self._path)
        except OSError:
            logger.exception("Failed to write KV store %s", self._path)
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


def create_kv_store(kv_path: str = "") -> KVStore:
    """Return a JsonFileKVStore for kv_path, or a MemoryKVStore when empty."""
    if kv_path:
        logger.info("Using file-backed KV store at %s", kv_path)
        return JsonFileKVStore(kv_path)
    logger.warning("JENKINS_KV_PATH not set; connected users are kept in memory only")
    return MemoryKVStore()
