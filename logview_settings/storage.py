"""Durable key-value stores and the settings blob persistence helpers."""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional, Protocol, Union
from urllib.parse import quote

from .schema import PersistedSettings, ValidationError, parse_persisted_settings

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """Process-local store; useful for tests and embedding."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class JsonDirectoryStore:
    """One ``<key>.json`` file per key inside ``directory``.

    Writes go to a temporary file in the same directory and are moved into
    place with :func:`os.replace`, so readers never observe a half-written
    blob.
    """

    def __init__(self, directory: Union[str, Path]) -> None:
        self.directory = Path(directory).expanduser()

    def path_for(self, key: str) -> Path:
        if not key:
            raise ValueError("Storage key must not be empty")
        # Percent-encoding keeps distinct keys in distinct files.
        return self.directory / f"{quote(key, safe='')}.json"

    def get(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def set(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(key)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.stem}.", suffix=".tmp", dir=str(self.directory))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(value)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

    def delete(self, key: str) -> None:
        try:
            self.path_for(key).unlink()
        except FileNotFoundError:
            pass


class SqliteStore:
    """Key-value table in a SQLite database."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path).expanduser()
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.path), check_same_thread=False)
            _ensure_schema(self._conn)
            logger.debug("opened settings store %s", self.path)
        return self._conn

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            cur = self._get_conn().execute("SELECT value FROM kv_store WHERE key = ?", (key,))
            row = cur.fetchone()
        return row[0] if row is not None else None

    def set(self, key: str, value: str) -> None:
        with self._lock:
            conn = self._get_conn()
            with conn:
                conn.execute(
                    "INSERT INTO kv_store (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                    (key, value),
                )

    def delete(self, key: str) -> None:
        with self._lock:
            conn = self._get_conn()
            with conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS kv_store (
          key TEXT PRIMARY KEY,
          value TEXT NOT NULL
        )
        """
    )
    conn.commit()


def open_store(backend: str, directory: Union[str, Path]) -> KeyValueStore:
    """Build the store named by ``backend`` (``json``, ``sqlite`` or ``memory``)."""

    if backend == "json":
        return JsonDirectoryStore(directory)
    if backend == "sqlite":
        return SqliteStore(Path(directory) / "settings.sqlite3")
    if backend == "memory":
        return MemoryStore()
    raise ValueError(f"Unknown storage backend: {backend!r}")


def load_settings(store: KeyValueStore, key: str) -> Optional[PersistedSettings]:
    """Return the stored settings, or ``None`` if absent or unreadable."""

    try:
        raw = store.get(key)
    except UnicodeDecodeError as exc:
        logger.warning("Stored settings under %r are not valid UTF-8, using defaults: %s", key, exc)
        return None
    if raw is None:
        return None
    try:
        return parse_persisted_settings(json.loads(raw))
    except json.JSONDecodeError as exc:
        logger.warning("Stored settings under %r are not valid JSON, using defaults: %s", key, exc)
    except RecursionError:
        logger.warning("Stored settings under %r are nested too deeply, using defaults", key)
    except ValidationError as exc:
        logger.warning("Stored settings under %r failed validation, using defaults: %s", key, exc)
    return None


def save_settings(store: KeyValueStore, key: str, settings: PersistedSettings) -> None:
    store.set(key, json.dumps(settings.dump(), ensure_ascii=False))


__all__ = [
    "JsonDirectoryStore",
    "KeyValueStore",
    "MemoryStore",
    "SqliteStore",
    "load_settings",
    "open_store",
    "save_settings",
]
