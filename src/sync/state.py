"""Sync-state store: shadow revisions plus the incremental pull cursor."""

from dataclasses import dataclass, field
from typing import Iterable, Optional

import structlog

from db import Repository
from history.records import EmotionRecord

logger = structlog.get_logger().bind(source="sync")

STATE_KEY = "sync.state.v1"

_UNSET = object()


@dataclass
class SyncState:
    shadow: dict[str, int] = field(default_factory=dict)
    sync_token: Optional[str] = None
    last_synced_at: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "shadow": dict(self.shadow),
            "syncToken": self.sync_token,
            "lastSyncedAt": self.last_synced_at,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "SyncState":
        if not isinstance(data, dict):
            return cls()
        shadow = data.get("shadow") or {}
        if not isinstance(shadow, dict):
            shadow = {}
        clean: dict[str, int] = {}
        for record_id, rev in shadow.items():
            try:
                clean[str(record_id)] = int(rev or 0)
            except (TypeError, ValueError):
                continue
        token = data.get("syncToken")
        synced_at = data.get("lastSyncedAt")
        return cls(
            shadow=clean,
            sync_token=str(token) if token is not None else None,
            last_synced_at=int(synced_at) if isinstance(synced_at, (int, float)) else None,
        )


class SyncStateStore:
    """Persists SyncState under one storage key; absent state means first run."""

    def __init__(self, repository: Repository, key: str = STATE_KEY):
        self.repository = repository
        self.key = key

    def load(self) -> SyncState:
        return SyncState.from_dict(self.repository.get(self.key))

    def save(self, state: SyncState) -> None:
        self.repository.set(self.key, state.to_dict())

    def advance(
        self,
        state: SyncState,
        records: Iterable[EmotionRecord],
        sync_token=_UNSET,
        synced_at=_UNSET,
    ) -> SyncState:
        """Return a copy of ``state`` with shadow revisions moved to ``records``."""
        shadow = dict(state.shadow)
        for record in records:
            shadow[record.id] = record.rev
        return SyncState(
            shadow=shadow,
            sync_token=state.sync_token if sync_token is _UNSET else sync_token,
            last_synced_at=state.last_synced_at if synced_at is _UNSET else synced_at,
        )

    def clear_token(self) -> None:
        """Drop the pull cursor so the next step re-pulls everything."""
        state = self.load()
        state.sync_token = None
        self.save(state)
        logger.info("sync.state.token_cleared")

    def reset(self) -> None:
        self.repository.clear(self.key)
        logger.info("sync.state.reset")
