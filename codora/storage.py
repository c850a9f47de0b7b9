"""Key-value storage backends for cache entries and usage history."""

from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol


class KeyValueStore(Protocol):
    """Storage backend interface. Values must be JSON-serializable."""

    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def delete(self, key: str) -> bool:
        ...

    def keys(self, prefix: str = "") -> List[str]:
        ...


class InMemoryStore:
    """In-memory storage backend (default).

    Values are copied through JSON on the way in and out, so anything that
    would not survive a real backend fails here too.
    """

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            raw = self._data.get(key)
        if raw is None:
            return default
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        raw = json.dumps(value)
        with self._lock:
            self._data[key] = raw

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return sorted(k for k in self._data if k.startswith(prefix))


class SQLiteStore:
    """SQLite-backed storage backend."""

    def __init__(self, db_path: str = "codora.db"):
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._lock = threading.Lock()
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM kv WHERE key = ?",
                (key,),
            ).fetchone()
        if not row:
            return default
        return json.loads(row["value"])

    def set(self, key: str, value: Any) -> None:
        raw = json.dumps(value)
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO kv (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value=excluded.value,
                    updated_at=excluded.updated_at
                """,
                (key, raw, datetime.now(timezone.utc).isoformat()),
            )
            self._conn.commit()

    def delete(self, key: str) -> bool:
        with self._lock:
            cur = self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            self._conn.commit()
        return cur.rowcount > 0

    def keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT key FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key ASC",
                (len(prefix), prefix),
            ).fetchall()
        return [row["key"] for row in rows]

    def close(self) -> None:
        self._conn.close()


def open_store(db_path: Optional[str] = None) -> KeyValueStore:
    """SQLite when a path is given, in-memory otherwise."""
    if db_path:
        return SQLiteStore(db_path=db_path)
    return InMemoryStore()
