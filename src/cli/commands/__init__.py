"""CLI command modules."""

from .conflicts import conflicts
from .history import history
from .sync import sync

__all__ = ["conflicts", "history", "sync"]
