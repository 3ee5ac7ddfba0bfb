"""Conflict detection: field diffs and conflict classification for record pairs.

Everything here is pure. Callers supply both record versions and the shadow
revision both sides last agreed on.
"""

from dataclasses import dataclass, field
from typing import Optional

from history.records import CONTENT_FIELDS, EmotionRecord
from shared_types import ConflictReason


@dataclass(frozen=True)
class FieldDiff:
    field: str
    local: object
    remote: object


@dataclass(frozen=True)
class DetectResult:
    diffs: list[FieldDiff] = field(default_factory=list)
    summary: str = "No conflict"

    @property
    def fields(self) -> list[str]:
        return [d.field for d in self.diffs]


@dataclass(frozen=True)
class Conflict:
    id: str
    base_rev: Optional[int]
    reason: ConflictReason
    local: EmotionRecord
    remote: EmotionRecord


def detect(local: EmotionRecord, remote: EmotionRecord) -> DetectResult:
    """Compare the synchronized content fields of two versions."""
    diffs = [
        FieldDiff(name, getattr(local, name), getattr(remote, name))
        for name in CONTENT_FIELDS
        if getattr(local, name) != getattr(remote, name)
    ]
    if not diffs:
        return DetectResult()
    return DetectResult(diffs=diffs, summary="Conflict in " + ", ".join(d.field for d in diffs))


def changed_since_base(record: Optional[EmotionRecord], base_rev: Optional[int]) -> bool:
    """True when ``record`` moved away from the shadow revision.

    An absent record has not changed. A present record with no shadow entry
    counts as changed from nothing.
    """
    if record is None:
        return False
    if base_rev is None:
        return True
    return record.rev != base_rev


def conflict_reason(local: EmotionRecord, remote: EmotionRecord) -> ConflictReason:
    if local.deleted and remote.deleted:
        return ConflictReason.BOTH_DELETED
    if local.deleted or remote.deleted:
        return ConflictReason.DELETE_EDIT
    if local.updated_at > remote.updated_at:
        return ConflictReason.NEWER_LOCAL
    if remote.updated_at > local.updated_at:
        return ConflictReason.NEWER_REMOTE
    return ConflictReason.SAME_UPDATED_AT_DIFF_CONTENT


def classify(
    local: Optional[EmotionRecord],
    remote: Optional[EmotionRecord],
    base_rev: Optional[int],
) -> Optional[Conflict]:
    """Return a Conflict when both sides changed since ``base_rev``, else None."""
    if not (changed_since_base(local, base_rev) and changed_since_base(remote, base_rev)):
        return None
    return Conflict(
        id=local.id,
        base_rev=base_rev,
        reason=conflict_reason(local, remote),
        local=local,
        remote=remote,
    )
