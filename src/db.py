"""Shared SQLite helpers and the key/value repository behind every local store."""

import copy
import json
import sqlite3
from datetime import datetime
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional, Protocol

import structlog

logger = structlog.get_logger()


def wal_connect(db_path: str | Path, row_factory: bool = False) -> sqlite3.Connection:
    """Open SQLite connection with WAL journal mode.

    Args:
        db_path: Path to database file.
        row_factory: If True, set conn.row_factory = sqlite3.Row.
    """
    conn = sqlite3.connect(str(db_path))
    conn.execute("PRAGMA journal_mode=WAL")
    if row_factory:
        conn.row_factory = sqlite3.Row
    return conn



class Repository(Protocol):
    """Minimal persistence port: one serialized value per storage key."""

    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any) -> None: ...

    def clear(self, key: str) -> None: ...

    def transaction(self) -> Iterator[Any]: ...


_DELETED = object()


class _BufferedRepository:
    """Shared transaction handling: writes inside ``transaction()`` are buffered.

    The buffer is flushed in one ``_write_many`` call when the outermost block
    exits cleanly and discarded if it raises. Reads see buffered writes.
    """

    _buffer: Optional[dict[str, Any]] = None

    @contextmanager
    def transaction(self):
        if self._buffer is not None:
            yield self
            return
        self._buffer = {}
        try:
            yield self
        except BaseException:
            self._buffer = None
            raise
        buffer, self._buffer = self._buffer, None
        if buffer:
            self._write_many(buffer)

    def get(self, key: str) -> Optional[Any]:
        if self._buffer is not None and key in self._buffer:
            value = self._buffer[key]
            return None if value is _DELETED else copy.deepcopy(value)
        return self._read(key)

    def set(self, key: str, value: Any) -> None:
        self._stage(key, copy.deepcopy(value))

    def clear(self, key: str) -> None:
        self._stage(key, _DELETED)

    def _stage(self, key: str, value: Any) -> None:
        if self._buffer is not None:
            self._buffer[key] = value
        else:
            self._write_many({key: value})

    def _read(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def _write_many(self, items: dict[str, Any]) -> None:
        raise NotImplementedError


class SQLiteRepository(_BufferedRepository):
    """JSON values in a single kv table."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_tables()

    def _init_tables(self):
        with wal_connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

    def _read(self, key: str) -> Optional[Any]:
        with wal_connect(self.db_path) as conn:
            row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        if not row:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError as e:
            logger.warning("kv_store.corrupt_value", key=key, error=str(e))
            return None

    def _write_many(self, items: dict[str, Any]) -> None:
        """Apply every staged upsert and delete in a single SQLite transaction."""
        now = datetime.now().isoformat()
        with wal_connect(self.db_path) as conn:
            for key, value in items.items():
                if value is _DELETED:
                    conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                    continue
                conn.execute(
                    """INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                        updated_at = excluded.updated_at""",
                    (key, json.dumps(value, sort_keys=True), now),
                )

    def keys(self) -> list[str]:
        with wal_connect(self.db_path) as conn:
            rows = conn.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
        return [r[0] for r in rows]


class MemoryRepository(_BufferedRepository):
    """In-process repository, used for tests and ephemeral sessions."""

    def __init__(self):
        self._data: dict[str, Any] = {}

    def _read(self, key: str) -> Optional[Any]:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    def _write_many(self, items: dict[str, Any]) -> None:
        for key, value in items.items():
            if value is _DELETED:
                self._data.pop(key, None)
            else:
                self._data[key] = value

    def keys(self) -> list[str]:
        return sorted(self._data)
