"""Push ledger: which local record states the remote side has acknowledged."""

import hashlib
import json
from typing import Iterable

import structlog

from db import Repository
from history.records import EmotionRecord

logger = structlog.get_logger().bind(source="sync")

LEDGER_KEY = "sync.ledger.v1"


def fingerprint(record: EmotionRecord) -> dict:
    """Revision plus a content hash, so same-rev edits are still caught."""
    content = {
        "message": record.message,
        "emotion": record.emotion,
        "intensity": record.intensity,
        "deleted": record.deleted,
        "createdAt": record.created_at,
        "updatedAt": record.updated_at,
    }
    digest = hashlib.sha1(json.dumps(content, sort_keys=True).encode()).hexdigest()
    return {"rev": record.rev, "hash": digest}


class PushLedger:
    """Maps record id to the last acknowledged {rev, hash}."""

    def __init__(self, repository: Repository, key: str = LEDGER_KEY):
        self.repository = repository
        self.key = key

    def entries(self) -> dict[str, dict]:
        raw = self.repository.get(self.key)
        return raw if isinstance(raw, dict) else {}

    def compute_pending(self, local: Iterable[EmotionRecord]) -> list[EmotionRecord]:
        """Records whose current state has not been confirmed by the remote."""
        acked = self.entries()
        return [r for r in local if acked.get(r.id) != fingerprint(r)]

    def mark_pushed(self, ids: Iterable[str], local: Iterable[EmotionRecord]) -> int:
        """Record acknowledgment for ``ids`` using their state in ``local``."""
        wanted = set(ids)
        return self._write(r for r in local if r.id in wanted)

    def acknowledge(self, records: Iterable[EmotionRecord]) -> int:
        """Mark records that arrived from the remote side as already known there."""
        return self._write(records)

    def _write(self, records: Iterable[EmotionRecord]) -> int:
        acked = self.entries()
        count = 0
        for record in records:
            acked[record.id] = fingerprint(record)
            count += 1
        if count:
            self.repository.set(self.key, acked)
        return count

    def forget(self, ids: Iterable[str]) -> None:
        acked = self.entries()
        changed = False
        for record_id in ids:
            if acked.pop(record_id, None) is not None:
                changed = True
        if changed:
            self.repository.set(self.key, acked)

    def clear(self) -> None:
        """Forget every acknowledgment; all records become pending again."""
        self.repository.clear(self.key)
        logger.info("sync.ledger.cleared")
