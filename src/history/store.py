"""On-device record store: the local source of truth for emotion history."""

import time
import uuid
from typing import Callable, Iterable, Optional

import structlog

from db import Repository

from .records import EmotionRecord, coerce_intensity, normalize_record

logger = structlog.get_logger().bind(source="history")

RECORDS_KEY = "history.records.v1"

EDITABLE_FIELDS = {"message", "emotion", "intensity", "deleted", "source", "session_id", "message_id"}


def now_ms() -> int:
    return int(time.time() * 1000)


class RecordStore:
    """Upsert-only collection of EmotionRecords keyed by id.

    Records are persisted as one serialized list under a single storage key.
    Deletions are tombstones, so nothing is ever structurally removed.
    """

    def __init__(
        self,
        repository: Repository,
        key: str = RECORDS_KEY,
        clock: Callable[[], int] = now_ms,
    ):
        self.repository = repository
        self.key = key
        self.clock = clock

    def _load(self) -> dict[str, EmotionRecord]:
        raw = self.repository.get(self.key) or []
        records: dict[str, EmotionRecord] = {}
        if not isinstance(raw, list):
            logger.warning("history.load.unexpected_shape", key=self.key)
            return records
        for item in raw:
            try:
                record = normalize_record(item)
            except ValueError as e:
                logger.warning("history.load.skipped_record", error=str(e))
                continue
            existing = records.get(record.id)
            # Legacy data may hold duplicates; keep the most advanced version
            if existing is None or (record.rev, record.updated_at) > (
                existing.rev,
                existing.updated_at,
            ):
                records[record.id] = record
        return records

    def _save(self, records: dict[str, EmotionRecord]) -> None:
        ordered = [records[k].to_dict() for k in sorted(records)]
        self.repository.set(self.key, ordered)

    def all(self) -> list[EmotionRecord]:
        """All records including tombstones, ordered by id."""
        records = self._load()
        return [records[k] for k in sorted(records)]

    def visible(self) -> list[EmotionRecord]:
        """Non-deleted records, newest first."""
        return sorted(
            (r for r in self._load().values() if not r.deleted),
            key=lambda r: (r.updated_at, r.id),
            reverse=True,
        )

    def get(self, record_id: str) -> Optional[EmotionRecord]:
        return self._load().get(record_id)

    def upsert(self, record: EmotionRecord | dict) -> EmotionRecord:
        return self.apply([record])[0]

    def apply(self, records: Iterable[EmotionRecord | dict]) -> list[EmotionRecord]:
        """Upsert a batch of records in one write."""
        normalized = [normalize_record(r) for r in records]
        if not normalized:
            return []
        current = self._load()
        for record in normalized:
            current[record.id] = record
        self._save(current)
        logger.debug("history.applied", count=len(normalized))
        return normalized

    def create(
        self,
        message: str,
        emotion: str = "neutral",
        intensity: float = 0.0,
        source: str = "local",
        session_id: Optional[str] = None,
        message_id: Optional[str] = None,
    ) -> EmotionRecord:
        """Create a new record with a fresh id at rev 1."""
        ts = self.clock()
        record = EmotionRecord(
            id=str(uuid.uuid4()),
            message=message,
            emotion=emotion or "neutral",
            intensity=coerce_intensity(intensity),
            created_at=ts,
            updated_at=ts,
            rev=1,
            source=source,
            session_id=session_id,
            message_id=message_id,
        )
        self.upsert(record)
        logger.info("history.created", id=record.id, emotion=record.emotion)
        return record

    def patch(self, record_id: str, **changes) -> EmotionRecord:
        """Apply a local edit: bump rev and move updatedAt strictly forward.

        Raises:
            KeyError: Unknown record id.
            ValueError: Field is not editable.
        """
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot edit fields: {', '.join(sorted(unknown))}")

        current = self.get(record_id)
        if current is None:
            raise KeyError(record_id)

        if "intensity" in changes:
            changes["intensity"] = coerce_intensity(changes["intensity"])
        updated = current.evolve(
            **changes,
            rev=current.rev + 1,
            updated_at=max(self.clock(), current.updated_at + 1),
        )
        self.upsert(updated)
        logger.info("history.patched", id=record_id, rev=updated.rev)
        return updated

    def delete(self, record_id: str) -> EmotionRecord:
        """Tombstone a record so the deletion itself can sync."""
        return self.patch(record_id, deleted=True)

    def clear(self) -> int:
        """Wipe local history. Returns number of records removed."""
        count = len(self._load())
        self.repository.clear(self.key)
        logger.info("history.cleared", count=count)
        return count
