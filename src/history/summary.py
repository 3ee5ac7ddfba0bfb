"""Aggregate statistics over emotion history."""

from dataclasses import dataclass, field
from typing import Iterable, Optional

from shared_types import CORE_EMOTIONS

from .records import EmotionRecord

MS_DAY = 24 * 60 * 60 * 1000


@dataclass
class EmotionSummary:
    total: int = 0
    avg_intensity: float = 0.0
    dominant_emotion: Optional[str] = None
    frequency: dict[str, int] = field(default_factory=dict)
    last7d_avg_intensity: float = 0.0
    last7d_series: list[float] = field(default_factory=lambda: [0.0] * 7)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "avgIntensity": self.avg_intensity,
            "dominantEmotion": self.dominant_emotion,
            "frequency": dict(self.frequency),
            "last7dAvgIntensity": self.last7d_avg_intensity,
            "last7dSeries": list(self.last7d_series),
        }


def _clamp01(n: float) -> float:
    return max(0.0, min(1.0, n))


def compute_emotion_summary(records: Iterable[EmotionRecord], now: int) -> EmotionSummary:
    """Compute totals, dominant emotion and a 7-day intensity series.

    Tombstoned records are ignored. Days are bucketed in UTC, oldest first,
    with the last bucket being the day containing ``now``. Records dated
    after that day fall outside the window.
    """
    frequency: dict[str, int] = {e: 0 for e in CORE_EMOTIONS}
    total = 0
    intensity_sum = 0.0

    end_day = now - (now % MS_DAY)
    start_day = end_day - 6 * MS_DAY
    day_sums = [0.0] * 7
    day_counts = [0] * 7
    recent_count = 0
    recent_sum = 0.0

    for rec in records:
        if rec.deleted:
            continue
        total += 1
        intensity_sum += rec.intensity
        frequency[rec.emotion] = frequency.get(rec.emotion, 0) + 1

        ts = rec.updated_at or rec.created_at
        if start_day <= ts < end_day + MS_DAY:
            recent_count += 1
            recent_sum += rec.intensity
            bucket = (ts - start_day) // MS_DAY
            day_sums[bucket] += rec.intensity
            day_counts[bucket] += 1

    dominant = None
    if total:
        # max() keeps the first of equal counts, so core emotion order breaks ties
        dominant = max(frequency, key=lambda e: frequency[e])

    return EmotionSummary(
        total=total,
        avg_intensity=_clamp01(intensity_sum / total) if total else 0.0,
        dominant_emotion=dominant,
        frequency=frequency,
        last7d_avg_intensity=_clamp01(recent_sum / recent_count) if recent_count else 0.0,
        last7d_series=[
            _clamp01(s / c) if c else 0.0 for s, c in zip(day_sums, day_counts)
        ],
    )
