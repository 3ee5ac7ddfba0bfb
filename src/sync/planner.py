"""Sync planning: partition a pull into safe applies and held conflicts."""

from dataclasses import dataclass, field
from typing import Iterable

from history.records import EmotionRecord

from .conflicts import Conflict, changed_since_base, classify, detect
from .state import SyncState


@dataclass(frozen=True)
class SyncPlan:
    apply_local: list[EmotionRecord] = field(default_factory=list)
    apply_remote: list[EmotionRecord] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)
    in_sync: list[EmotionRecord] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.apply_local or self.apply_remote or self.conflicts or self.in_sync)


def _index(records: Iterable[EmotionRecord]) -> dict[str, EmotionRecord]:
    return {r.id: r for r in records}


def _same_version(local: EmotionRecord, remote: EmotionRecord) -> bool:
    return (
        local.rev == remote.rev
        and local.updated_at == remote.updated_at
        and not detect(local, remote).diffs
    )


def build_plan(
    local: Iterable[EmotionRecord],
    remote_delta: Iterable[EmotionRecord],
    state: SyncState,
) -> SyncPlan:
    """Decide, per record id, which side moves and which pairs are held.

    Ids are visited in sorted order over local, remote and shadow, so equal
    inputs always produce an equal plan.

    - both sides changed since the shadow revision: conflict, nothing applied
    - only local changed: apply_local (push candidate)
    - only remote changed: apply_remote (written to the record store)
    - both sides hold the same version (rev, updatedAt and content): in_sync,
      only the shadow moves

    A tombstone that is the only change on its side propagates even when the
    other side never had the record.
    """
    local_by_id = _index(local)
    remote_by_id = _index(remote_delta)
    ids = sorted(set(local_by_id) | set(remote_by_id) | set(state.shadow))

    apply_local: list[EmotionRecord] = []
    apply_remote: list[EmotionRecord] = []
    conflicts: list[Conflict] = []
    in_sync: list[EmotionRecord] = []

    for record_id in ids:
        lv = local_by_id.get(record_id)
        rv = remote_by_id.get(record_id)
        base = state.shadow.get(record_id)

        local_changed = changed_since_base(lv, base)
        remote_changed = changed_since_base(rv, base)

        if local_changed and remote_changed:
            if _same_version(lv, rv):
                in_sync.append(lv)
            else:
                conflicts.append(classify(lv, rv, base))
        elif local_changed:
            apply_local.append(lv)
        elif remote_changed:
            apply_remote.append(rv)

    return SyncPlan(
        apply_local=apply_local, apply_remote=apply_remote, conflicts=conflicts, in_sync=in_sync
    )
