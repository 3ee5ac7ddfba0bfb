"""Shared test fixtures for moodsync."""

import sys
from pathlib import Path

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from db import MemoryRepository  # noqa: E402
from history.records import EmotionRecord  # noqa: E402


class FakeClock:
    """Deterministic millisecond clock."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int = 1000) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def repo():
    return MemoryRepository()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_record():
    """Factory for EmotionRecords with sensible defaults."""

    def _make(record_id="r1", message="a", updated_at=100, rev=1, **kwargs):
        kwargs.setdefault("created_at", updated_at)
        return EmotionRecord(id=record_id, message=message, updated_at=updated_at, rev=rev, **kwargs)

    return _make
