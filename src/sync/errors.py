"""Sync error taxonomy."""


class SyncError(Exception):
    """Base sync error."""


class NetworkFailure(SyncError):
    """Transport error talking to the remote side (includes timeouts)."""


class InvalidResponse(SyncError):
    """Remote answered with a payload we cannot interpret."""


class OfflineKnown(SyncError):
    """Connectivity is known to be down; no network attempt was made."""
