"""Shared CLI utilities."""

import asyncio
from datetime import datetime, timezone
from typing import Optional

import structlog
from rich.console import Console

console = Console()
logger = structlog.get_logger()


def get_components(config_path=None) -> dict:
    """Assemble the single process-wide set of stores, gateway and orchestrator."""
    from cli.config import load_config_model
    from db import SQLiteRepository
    from history.store import RecordStore
    from sync.gateway import HttpDeltaGateway
    from sync.ledger import PushLedger
    from sync.orchestrator import SyncOrchestrator
    from sync.queues import ConflictQueue, DecisionQueue
    from sync.state import SyncStateStore

    config = load_config_model(config_path)
    repository = SQLiteRepository(config.paths.data_db)

    records = RecordStore(repository)
    state_store = SyncStateStore(repository)
    conflicts = ConflictQueue(repository)
    decisions = DecisionQueue(repository)
    ledger = PushLedger(repository)
    gateway = HttpDeltaGateway(
        config.remote.base_url,
        timeout=config.remote.timeout_seconds,
        pull_limit=config.remote.pull_limit,
        api_token=config.remote.api_token,
    )
    orchestrator = SyncOrchestrator(
        records,
        state_store,
        conflicts,
        decisions,
        ledger,
        gateway,
        push_on_step=config.sync.push_on_step,
    )

    return {
        "config": config,
        "repository": repository,
        "records": records,
        "state_store": state_store,
        "conflicts": conflicts,
        "decisions": decisions,
        "ledger": ledger,
        "gateway": gateway,
        "orchestrator": orchestrator,
    }


def run_async(c: dict, operation):
    """Run ``operation(orchestrator)`` on a fresh event loop, closing the HTTP client after."""

    async def _runner():
        try:
            return await operation(c["orchestrator"])
        finally:
            await c["gateway"].close()

    return asyncio.run(_runner())


def format_ts(ms: Optional[int]) -> str:
    if not ms:
        return "-"
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")
