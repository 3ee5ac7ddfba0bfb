"""Tests for emotion summary statistics."""

from history.records import EmotionRecord
from history.summary import MS_DAY, compute_emotion_summary

NOW = 20 * MS_DAY + 12 * 60 * 60 * 1000  # noon, UTC day 20


def _rec(i, emotion, intensity, ts, deleted=False):
    return EmotionRecord(id=f"r{i}", emotion=emotion, intensity=intensity, created_at=ts, updated_at=ts, deleted=deleted)


def test_empty_history():
    summary = compute_emotion_summary([], now=NOW)
    assert summary.total == 0
    assert summary.dominant_emotion is None
    assert summary.last7d_series == [0.0] * 7
    assert summary.frequency["joy"] == 0


def test_totals_and_dominant():
    records = [
        _rec(1, "joy", 0.2, NOW),
        _rec(2, "joy", 0.4, NOW),
        _rec(3, "anger", 0.9, NOW),
    ]
    summary = compute_emotion_summary(records, now=NOW)
    assert summary.total == 3
    assert summary.dominant_emotion == "joy"
    assert summary.frequency["joy"] == 2
    assert abs(summary.avg_intensity - 0.5) < 1e-9


def test_tie_breaks_by_core_order():
    records = [_rec(1, "sadness", 0.1, NOW), _rec(2, "joy", 0.1, NOW)]
    assert compute_emotion_summary(records, now=NOW).dominant_emotion == "joy"


def test_unknown_emotion_gets_own_key():
    summary = compute_emotion_summary([_rec(1, "awe", 0.3, NOW)], now=NOW)
    assert summary.frequency["awe"] == 1
    assert summary.dominant_emotion == "awe"


def test_tombstones_excluded():
    records = [_rec(1, "joy", 0.5, NOW), _rec(2, "fear", 0.5, NOW, deleted=True)]
    summary = compute_emotion_summary(records, now=NOW)
    assert summary.total == 1
    assert summary.frequency["fear"] == 0


def test_seven_day_series():
    records = [
        _rec(1, "joy", 0.6, NOW),
        _rec(2, "joy", 0.2, NOW - 1000),
        _rec(3, "sadness", 0.3, NOW - 6 * MS_DAY),
        _rec(4, "sadness", 1.0, NOW - 8 * MS_DAY),
    ]
    summary = compute_emotion_summary(records, now=NOW)
    assert len(summary.last7d_series) == 7
    assert abs(summary.last7d_series[-1] - 0.4) < 1e-9
    assert abs(summary.last7d_series[0] - 0.3) < 1e-9
    assert summary.last7d_series[1:6] == [0.0] * 5
    assert abs(summary.last7d_avg_intensity - (0.6 + 0.2 + 0.3) / 3) < 1e-9


def test_to_dict_uses_wire_names():
    data = compute_emotion_summary([_rec(1, "joy", 0.5, NOW)], now=NOW).to_dict()
    assert set(data) == {"total", "avgIntensity", "dominantEmotion", "frequency", "last7dAvgIntensity", "last7dSeries"}


def test_future_records_outside_window():
    records = [_rec(1, "joy", 0.2, NOW), _rec(2, "joy", 1.0, NOW + 2 * MS_DAY)]
    summary = compute_emotion_summary(records, now=NOW)
    assert summary.total == 2
    assert abs(summary.last7d_avg_intensity - 0.2) < 1e-9
    assert abs(summary.last7d_series[-1] - 0.2) < 1e-9
