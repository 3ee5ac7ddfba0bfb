"""SQLite-backed remote history store with a monotonically increasing change cursor."""

import json
import sqlite3
from pathlib import Path
from typing import Optional

import structlog

from db import wal_connect
from history.records import EmotionRecord

logger = structlog.get_logger()


def parse_cursor(cursor: Optional[str]) -> int:
    """Cursor is the last seen server sequence; empty means from the start."""
    if cursor is None or cursor == "":
        return 0
    try:
        value = int(cursor)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid cursor: {cursor!r}")
    if value < 0:
        raise ValueError(f"Invalid cursor: {cursor!r}")
    return value


class RemoteHistoryStore:
    """Upsert-by-id record storage; every write gets a fresh sequence number."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_tables()

    def _init_tables(self):
        with wal_connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS remote_history (
                    id TEXT PRIMARY KEY,
                    seq INTEGER NOT NULL,
                    updated_at INTEGER NOT NULL DEFAULT 0,
                    deleted INTEGER NOT NULL DEFAULT 0,
                    record TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_remote_seq ON remote_history(seq)")

    def upsert(self, records: list[EmotionRecord]) -> list[str]:
        """Store records, newest updatedAt per id winning within the batch.

        Returns ids in first-seen order.
        """
        latest: dict[str, EmotionRecord] = {}
        for record in records:
            existing = latest.get(record.id)
            stamp = record.updated_at or record.created_at
            if existing is None or stamp >= (existing.updated_at or existing.created_at):
                latest[record.id] = record
        if not latest:
            return []

        try:
            with wal_connect(self.db_path) as conn:
                seq = conn.execute("SELECT COALESCE(MAX(seq), 0) FROM remote_history").fetchone()[0]
                for record in latest.values():
                    seq += 1
                    conn.execute(
                        """INSERT INTO remote_history (id, seq, updated_at, deleted, record)
                        VALUES (?, ?, ?, ?, ?)
                        ON CONFLICT(id) DO UPDATE SET seq = excluded.seq,
                            updated_at = excluded.updated_at,
                            deleted = excluded.deleted,
                            record = excluded.record""",
                        (
                            record.id,
                            seq,
                            record.updated_at,
                            int(record.deleted),
                            json.dumps(record.to_dict()),
                        ),
                    )
        except sqlite3.Error as e:
            logger.error("remote_store.upsert_failed", error=str(e))
            raise
        logger.info("remote_store.upserted", count=len(latest))
        return list(latest)

    def changes_since(self, cursor: Optional[str], limit: int = 500) -> tuple[list[dict], str]:
        """Records written after ``cursor`` in write order, plus the next cursor."""
        after = parse_cursor(cursor)
        with wal_connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT seq, record FROM remote_history WHERE seq > ? ORDER BY seq LIMIT ?",
                (after, limit),
            ).fetchall()
        records = [json.loads(r[1]) for r in rows]
        next_cursor = rows[-1][0] if rows else after
        return records, str(next_cursor)

    def get(self, record_id: str) -> Optional[dict]:
        with wal_connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT record FROM remote_history WHERE id = ?", (record_id,)
            ).fetchone()
        return json.loads(row[0]) if row else None

    def count(self) -> int:
        with wal_connect(self.db_path) as conn:
            return conn.execute("SELECT COUNT(*) FROM remote_history").fetchone()[0]

    def clear(self) -> int:
        with wal_connect(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM remote_history")
            removed = cursor.rowcount
        logger.info("remote_store.cleared", count=removed)
        return removed
