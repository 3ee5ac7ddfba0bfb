"""Shared enums and types for moodsync."""

from enum import StrEnum


class ConflictReason(StrEnum):
    NEWER_LOCAL = "newer-local"
    NEWER_REMOTE = "newer-remote"
    SAME_UPDATED_AT_DIFF_CONTENT = "same-updatedAt-diff-content"
    DELETE_EDIT = "delete-edit"
    BOTH_DELETED = "both-deleted"


class SyncPhase(StrEnum):
    IDLE = "idle"
    SYNCING = "syncing"
    SYNCED = "synced"
    ERROR = "error"
    OFFLINE = "offline"


class KeepSide(StrEnum):
    LOCAL = "local"
    REMOTE = "remote"


class ResolutionPolicy(StrEnum):
    PREFER_REMOTE = "prefer-remote"
    PREFER_LOCAL = "prefer-local"


class RecordSource(StrEnum):
    LOCAL = "local"
    REMOTE = "remote"
    MERGED = "merged"
    CHAT = "chat"


CORE_EMOTIONS = ("joy", "sadness", "anger", "fear", "disgust", "surprise", "neutral")
