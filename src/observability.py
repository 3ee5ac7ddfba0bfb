"""Observability: sync metrics collection and run summary logging."""

import time
from contextlib import contextmanager
from typing import Any

import structlog

logger = structlog.get_logger().bind(source="observability")


class Metrics:
    """Counters and timers for sync activity (pulls, pushes, conflicts)."""

    def __init__(self):
        self._counters: dict[str, int] = {}
        self._timers: dict[str, list[float]] = {}

    def counter(self, name: str, value: int = 1):
        self._counters[name] = self._counters.get(name, 0) + value

    def get(self, name: str) -> int:
        return self._counters.get(name, 0)

    @contextmanager
    def timer(self, name: str):
        """Time the wrapped block, recorded even if it raises."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self._timers.setdefault(name, []).append(time.perf_counter() - start)

    def summary(self) -> dict[str, Any]:
        timers = {
            name: {
                "count": len(durations),
                "avg_ms": round(1000 * sum(durations) / len(durations), 2),
                "max_ms": round(1000 * max(durations), 2),
            }
            for name, durations in self._timers.items()
            if durations
        }
        return {"counters": dict(sorted(self._counters.items())), "timers": timers}

    def reset(self):
        self._counters.clear()
        self._timers.clear()


metrics = Metrics()


def log_run_summary(m: Metrics = metrics):
    logger.info("sync.run_summary", **m.summary())
