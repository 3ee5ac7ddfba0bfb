"""EmotionRecord model and the normalization step at the store/wire boundary."""

from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional

from shared_types import RecordSource

# Fields compared by conflict detection and fingerprinted by the push ledger
CONTENT_FIELDS = ("message", "emotion", "intensity", "deleted")


@dataclass(frozen=True)
class EmotionRecord:
    id: str
    message: str = ""
    emotion: str = "neutral"
    intensity: float = 0.0
    created_at: int = 0
    updated_at: int = 0
    rev: int = 0
    deleted: bool = False
    source: str = RecordSource.LOCAL.value
    session_id: Optional[str] = None
    message_id: Optional[str] = None

    def to_dict(self) -> dict:
        """Serialize to the camelCase wire/persisted shape."""
        data = {
            "id": self.id,
            "message": self.message,
            "emotion": self.emotion,
            "intensity": self.intensity,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "rev": self.rev,
            "deleted": self.deleted,
            "source": self.source,
        }
        if self.session_id is not None:
            data["sessionId"] = self.session_id
        if self.message_id is not None:
            data["messageId"] = self.message_id
        return data

    def evolve(self, **changes) -> "EmotionRecord":
        return replace(self, **changes)


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def _as_int(value: Any, field: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"{field} must be an integer timestamp, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field} must be an integer timestamp, got {value!r}")


def _as_flag(value: Any) -> bool:
    """Wire booleans: real bools, 0/1 and "true"/"false" strings; anything else is False."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return False


def coerce_intensity(value: Any) -> float:
    """Clamp intensity to 0..1; values above 1 are read as percentages."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        n = float(value)
    except (TypeError, ValueError):
        return 0.0
    if n != n:  # NaN
        return 0.0
    if n > 1:
        n = n / 100.0
    return max(0.0, min(1.0, n))


def normalize_record(raw: Mapping[str, Any] | EmotionRecord) -> EmotionRecord:
    """Build an EmotionRecord from a persisted or wire dict.

    Legacy payloads lack ``rev`` (treated as 0), may carry ``timestamp`` instead
    of ``updatedAt``, and may omit ``createdAt``. Raises ValueError when the
    record has no usable id.
    """
    if isinstance(raw, EmotionRecord):
        return raw
    if not isinstance(raw, Mapping):
        raise ValueError(f"Record must be an object, got {type(raw).__name__}")

    record_id = raw.get("id")
    if not isinstance(record_id, str) or not record_id.strip():
        raise ValueError("Record is missing an id")

    updated_at = _as_int(_first(raw, "updatedAt", "updated_at", "timestamp"), "updatedAt")
    created_at = _as_int(_first(raw, "createdAt", "created_at"), "createdAt")
    if created_at is None:
        created_at = updated_at if updated_at is not None else 0
    if updated_at is None:
        updated_at = created_at

    rev = _as_int(raw.get("rev"), "rev") or 0
    emotion = raw.get("emotion")
    message = raw.get("message")
    source = raw.get("source")

    return EmotionRecord(
        id=record_id,
        message=message if isinstance(message, str) else "",
        emotion=emotion if isinstance(emotion, str) and emotion else "neutral",
        intensity=coerce_intensity(raw.get("intensity")),
        created_at=created_at,
        updated_at=updated_at,
        rev=max(rev, 0),
        deleted=_as_flag(raw.get("deleted")),
        source=source if isinstance(source, str) and source else RecordSource.LOCAL.value,
        session_id=_first(raw, "sessionId", "session_id"),
        message_id=_first(raw, "messageId", "message_id"),
    )


def content_of(record: EmotionRecord) -> dict:
    return {field: getattr(record, field) for field in CONTENT_FIELDS}
