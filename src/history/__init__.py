"""Local emotion history: records, on-device store, analytics and export."""

from .records import EmotionRecord, normalize_record
from .store import RecordStore

__all__ = ["EmotionRecord", "RecordStore", "normalize_record"]
