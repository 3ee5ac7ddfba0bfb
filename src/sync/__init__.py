"""Offline-first sync engine for emotion history."""

from .errors import InvalidResponse, NetworkFailure, OfflineKnown, SyncError
from .orchestrator import PushReport, RetryReport, SyncOrchestrator, SyncStatus

__all__ = [
    "InvalidResponse",
    "NetworkFailure",
    "OfflineKnown",
    "PushReport",
    "RetryReport",
    "SyncError",
    "SyncOrchestrator",
    "SyncStatus",
]
