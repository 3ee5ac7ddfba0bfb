"""Dependency injection for FastAPI routes."""

from functools import lru_cache

from fastapi import Request

from cli.config import load_config_model
from web.remote_store import RemoteHistoryStore


@lru_cache
def get_config():
    """Load shared config (./config.yaml or ~/.moodsync/config.yaml)."""
    return load_config_model()


def get_remote_store(request: Request) -> RemoteHistoryStore:
    return request.app.state.remote_store
