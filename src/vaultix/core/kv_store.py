# Vaultix Core - Key/Value Store
#
# Narrow persistence interface used by every vault component:
#   get(key) / set(key, value) / remove(key)
#
# There are no transactions. A component that needs atomicity keeps its
# whole state under one key and replaces the value in a single set().
#
# Two implementations:
#   - SQLiteKeyValueStore  (on-disk, WAL via core.db.connect)
#   - MemoryKeyValueStore  (process-local, used by tests and dry runs)

import json
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from ..exceptions import StorageIOError

logger = logging.getLogger(__name__)


class KeyValueStore:
    """Interface for string-keyed, string-valued persistence."""

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> bool:
        raise NotImplementedError

    def keys(self) -> Iterable[str]:
        raise NotImplementedError

    # ── JSON helpers ─────────────────────────────────────────────────

    def get_json(self, key: str, default: Any = None) -> Any:
        """Decode a JSON value. Corrupt values raise StorageIOError."""
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StorageIOError(f"Corrupt value stored under {key!r}: {exc}") from exc

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value, separators=(",", ":")))


class MemoryKeyValueStore(KeyValueStore):
    """In-memory store. Nothing survives the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"Value for {key!r} must be str, got {type(value).__name__}")
        with self._lock:
            self._data[key] = value

    def remove(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self) -> Iterable[str]:
        with self._lock:
            return sorted(self._data)


class SQLiteKeyValueStore(KeyValueStore):
    """SQLite key/value store.

    Args:
        db_path: Path to SQLite file. Parent directories are created.
    """

    def __init__(self, db_path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _connect(self) -> sqlite3.Connection:
        from .db import connect as db_connect

        return db_connect(self.db_path, row_factory=True)

    def _init_database(self):
        try:
            with self._connect() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS kv_store (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                """)
                conn.commit()
        except sqlite3.Error as exc:
            raise StorageIOError(f"Cannot open key-value store {self.db_path}: {exc}") from exc

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get a value by key. Returns default if not found."""
        try:
            with self._connect() as conn:
                row = conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?", (key,)
                ).fetchone()
        except sqlite3.Error as exc:
            raise StorageIOError(f"Read of {key!r} failed: {exc}") from exc
        if row is None:
            return default
        return row["value"]

    def set(self, key: str, value: str) -> None:
        """Set a value (upsert). The previous value is replaced whole."""
        if not isinstance(value, str):
            raise TypeError(f"Value for {key!r} must be str, got {type(value).__name__}")
        now = datetime.now(timezone.utc).isoformat()
        try:
            with self._connect() as conn:
                conn.execute(
                    """INSERT INTO kv_store (key, value, updated_at)
                       VALUES (?, ?, ?)
                       ON CONFLICT(key) DO UPDATE SET
                           value = excluded.value,
                           updated_at = excluded.updated_at""",
                    (key, value, now),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise StorageIOError(f"Write of {key!r} failed: {exc}") from exc

    def remove(self, key: str) -> bool:
        """Delete a key. Returns True if the key existed."""
        try:
            with self._connect() as conn:
                cur = conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                conn.commit()
                return cur.rowcount > 0
        except sqlite3.Error as exc:
            raise StorageIOError(f"Delete of {key!r} failed: {exc}") from exc

    def keys(self) -> Iterable[str]:
        try:
            with self._connect() as conn:
                rows = conn.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
        except sqlite3.Error as exc:
            raise StorageIOError(f"Key listing failed: {exc}") from exc
        return [row["key"] for row in rows]
