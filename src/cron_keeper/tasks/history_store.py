# src/cron_keeper/tasks/history_store.py

from __future__ import annotations

import contextlib
import fcntl
import json
import logging
import os
import sqlite3
import threading
import time
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from ..errors import CorruptLedger, StoreUnavailable

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_FILE = "history.log"


class FileHistoryStore:
    """
    Default history store: one JSON object (key -> string value) in one file.

    - The file is (re)created as "{}" whenever it is missing, so an
      accidentally deleted history file does not break the next read.
    - Writes go to a temp file and are moved into place with os.replace.
    - Each read-modify-write holds an exclusive flock on a sidecar lock file,
      so processes sharing the file cannot tear it.
    - A file that does not decode to a JSON object raises CorruptLedger and
      is never rewritten.
    """

    def __init__(self, path: str | Path = DEFAULT_HISTORY_FILE) -> None:
        self._path = Path(path).expanduser()
        self._lock_path = self._path.with_name(self._path.name + ".lock")
        self._ensure_file()
        logger.debug("FileHistoryStore ready path=%s", self._path)

    @property
    def path(self) -> Path:
        return self._path

    # ---- HistoryStore ----

    def set_item(self, key: str, value: str) -> bool:
        with self._locked():
            data = self._read()
            data[key] = value
            self._write(data)
        return True

    def get_item(self, key: str) -> str | None:
        with self._locked():
            data = self._read()
        value = data.get(key)
        return None if value is None else str(value)

    def remove_item(self, key: str) -> bool:
        with self._locked():
            data = self._read()
            if data.pop(key, None) is not None:
                self._write(data)
        return True

    # ---- internals ----

    @contextlib.contextmanager
    def _locked(self) -> Iterator[None]:
        try:
            self._lock_path.parent.mkdir(parents=True, exist_ok=True)
            lockf = self._lock_path.open("a+")
        except OSError as e:
            raise StoreUnavailable(f"Cannot open lock file {self._lock_path}: {e}") from e

        with lockf:
            fcntl.flock(lockf.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lockf.fileno(), fcntl.LOCK_UN)

    def _ensure_file(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            if not self._path.exists():
                self._path.write_text("{}", "utf-8")
        except OSError as e:
            raise StoreUnavailable(f"Cannot create history file {self._path}: {e}") from e

    def _read(self) -> dict[str, Any]:
        self._ensure_file()
        try:
            raw = self._path.read_text("utf-8")
        except OSError as e:
            raise StoreUnavailable(f"Cannot read history file {self._path}: {e}") from e

        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CorruptLedger(f"History file {self._path} is not valid JSON: {e}", raw=raw) from e
        if not isinstance(data, dict):
            raise CorruptLedger(f"History file {self._path} does not hold a JSON object", raw=raw)
        return data

    def _write(self, data: dict[str, Any]) -> None:
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            tmp.write_text(json.dumps(data, ensure_ascii=False), "utf-8")
            os.replace(tmp, self._path)
        except OSError as e:
            with contextlib.suppress(OSError):
                tmp.unlink()
            raise StoreUnavailable(f"Cannot write history file {self._path}: {e}") from e


class SqliteHistoryStore:
    """
    SQLite history store.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "history.sqlite3") -> None:
        self._db_path = Path(db_path).expanduser()
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreUnavailable(f"Cannot create directory for {self._db_path}: {e}") from e
        self._ensure_schema()
        logger.debug("SqliteHistoryStore ready db=%s", self._db_path)

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Cannot open {self._db_path}: {e}") from e
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS history_items (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            conn.commit()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Cannot create schema in {self._db_path}: {e}") from e
        finally:
            conn.close()

    # ---- HistoryStore ----

    def set_item(self, key: str, value: str) -> bool:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO history_items(key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, time.time()),
            )
            conn.commit()
            return True
        except sqlite3.Error as e:
            raise StoreUnavailable(f"set_item({key!r}) failed: {e}") from e
        finally:
            conn.close()

    def get_item(self, key: str) -> str | None:
        conn = self._get_conn()
        try:
            cur = conn.execute("SELECT value FROM history_items WHERE key = ?", (key,))
            row = cur.fetchone()
            return None if row is None else str(row[0])
        except sqlite3.Error as e:
            raise StoreUnavailable(f"get_item({key!r}) failed: {e}") from e
        finally:
            conn.close()

    def remove_item(self, key: str) -> bool:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM history_items WHERE key = ?", (key,))
            conn.commit()
            return True
        except sqlite3.Error as e:
            raise StoreUnavailable(f"remove_item({key!r}) failed: {e}") from e
        finally:
            conn.close()


class MemoryHistoryStore:
    """In-process store; nothing survives a restart."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._items: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def set_item(self, key: str, value: str) -> bool:
        with self._lock:
            self._items[key] = value
        return True

    def get_item(self, key: str) -> str | None:
        with self._lock:
            return self._items.get(key)

    def remove_item(self, key: str) -> bool:
        with self._lock:
            self._items.pop(key, None)
        return True
