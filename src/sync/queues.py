"""Persistent conflict queue and decision queue.

The conflict queue holds unresolved conflicts shown to the user. The decision
queue holds user choices that have not been applied yet (for example, made
while offline). Both survive restarts through the injected repository.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional

import structlog

from db import Repository
from history.records import EmotionRecord, normalize_record
from shared_types import ConflictReason, KeepSide

from .conflicts import Conflict, detect

logger = structlog.get_logger().bind(source="sync")

CONFLICTS_KEY = "sync.conflicts.v1"
DECISIONS_KEY = "sync.decisions.v1"


@dataclass
class ConflictQueueEntry:
    id: str
    reason: ConflictReason
    base_rev: Optional[int]
    diffs: list[str]
    summary: str
    local: EmotionRecord
    remote: EmotionRecord
    queued_at: int
    updated_at: int

    @classmethod
    def from_conflict(cls, conflict: Conflict, now: int) -> "ConflictQueueEntry":
        result = detect(conflict.local, conflict.remote)
        return cls(
            id=conflict.id,
            reason=conflict.reason,
            base_rev=conflict.base_rev,
            diffs=result.fields,
            summary=result.summary,
            local=conflict.local,
            remote=conflict.remote,
            queued_at=now,
            updated_at=now,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reason": self.reason.value,
            "baseRev": self.base_rev,
            "diffs": list(self.diffs),
            "summary": self.summary,
            "local": self.local.to_dict(),
            "remote": self.remote.to_dict(),
            "queuedAt": self.queued_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ConflictQueueEntry":
        return cls(
            id=data["id"],
            reason=ConflictReason(data["reason"]),
            base_rev=data.get("baseRev"),
            diffs=list(data.get("diffs") or []),
            summary=data.get("summary", ""),
            local=normalize_record(data["local"]),
            remote=normalize_record(data["remote"]),
            queued_at=int(data.get("queuedAt") or 0),
            updated_at=int(data.get("updatedAt") or data.get("queuedAt") or 0),
        )


@dataclass
class ConflictDecision:
    id: str
    keep: KeepSide
    local: Optional[EmotionRecord] = None
    remote: Optional[EmotionRecord] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "keep": self.keep.value,
            "local": self.local.to_dict() if self.local else None,
            "remote": self.remote.to_dict() if self.remote else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ConflictDecision":
        return cls(
            id=data["id"],
            keep=KeepSide(data["keep"]),
            local=normalize_record(data["local"]) if data.get("local") else None,
            remote=normalize_record(data["remote"]) if data.get("remote") else None,
        )


class _PersistentQueue:
    """List of id-keyed entries stored under one repository key."""

    entry_type: type

    def __init__(self, repository: Repository, key: str):
        self.repository = repository
        self.key = key

    def _load(self) -> dict[str, object]:
        entries = {}
        for item in self.repository.get(self.key) or []:
            try:
                entry = self.entry_type.from_dict(item)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("sync.queue.skipped_entry", key=self.key, error=str(e))
                continue
            entries[entry.id] = entry
        return entries

    def _save(self, entries: dict[str, object]) -> None:
        if entries:
            self.repository.set(self.key, [e.to_dict() for e in self._ordered(entries)])
        else:
            self.repository.clear(self.key)

    def _ordered(self, entries: dict[str, object]) -> list:
        return [entries[k] for k in sorted(entries)]

    def all(self) -> list:
        return self._ordered(self._load())

    def get(self, record_id: str):
        return self._load().get(record_id)

    def ids(self) -> list[str]:
        return [e.id for e in self.all()]

    def remove(self, ids: Iterable[str]) -> int:
        entries = self._load()
        removed = 0
        for record_id in ids:
            if entries.pop(record_id, None) is not None:
                removed += 1
        if removed:
            self._save(entries)
        return removed

    def clear(self) -> None:
        self.repository.clear(self.key)

    def __len__(self) -> int:
        return len(self._load())


class ConflictQueue(_PersistentQueue):
    """Unresolved conflicts, ordered by when they were first queued."""

    entry_type = ConflictQueueEntry

    def __init__(self, repository: Repository, key: str = CONFLICTS_KEY):
        super().__init__(repository, key)

    def _ordered(self, entries):
        return sorted(entries.values(), key=lambda e: (e.queued_at, e.id))

    def enqueue(self, conflicts: Iterable[Conflict], now: int) -> list[ConflictQueueEntry]:
        """Queue conflicts, merging with entries already queued for the same id.

        A merge takes the latest diff, summary and both sides but keeps the
        original queued_at.
        """
        entries = self._load()
        queued = []
        for conflict in conflicts:
            fresh = ConflictQueueEntry.from_conflict(conflict, now)
            existing = entries.get(conflict.id)
            if existing is not None:
                fresh.queued_at = existing.queued_at
            entries[conflict.id] = fresh
            queued.append(fresh)
        if queued:
            self._save(entries)
            logger.info("sync.conflicts.queued", count=len(queued), total=len(entries))
        return queued


class DecisionQueue(_PersistentQueue):
    """User choices awaiting application; one decision per id, latest wins."""

    entry_type = ConflictDecision

    def __init__(self, repository: Repository, key: str = DECISIONS_KEY):
        super().__init__(repository, key)

    def enqueue(self, decision: ConflictDecision) -> None:
        entries = self._load()
        entries[decision.id] = decision
        self._save(entries)
        logger.info("sync.decisions.queued", id=decision.id, keep=decision.keep.value)
