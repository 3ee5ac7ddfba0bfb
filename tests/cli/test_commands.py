"""CLI command tests using Click CliRunner.

Strategy: patch get_components at each command module's import point with a
real in-memory component set, so commands run end to end without touching
config files, SQLite or the network.
"""

import importlib
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from cli.config_models import AppConfig
from cli.main import cli
from db import MemoryRepository
from history.records import EmotionRecord
from history.store import RecordStore
from observability import Metrics
from shared_types import ConflictReason
from sync.conflicts import Conflict
from sync.errors import NetworkFailure
from sync.gateway import PullResult, PushResult
from sync.ledger import PushLedger
from sync.orchestrator import SyncOrchestrator
from sync.queues import ConflictQueue, DecisionQueue
from sync.state import SyncStateStore

COMMAND_MODULES = ("cli.commands.history", "cli.commands.sync", "cli.commands.conflicts")


class StubGateway:
    def __init__(self):
        self.delta = []
        self.pull_error = None
        self.pushed = []
        self.closed = False

    async def pull(self, cursor):
        if self.pull_error:
            raise self.pull_error
        records, self.delta = self.delta, []
        return PullResult(records=records, next_cursor="1")

    async def push(self, records):
        self.pushed.append([r.id for r in records])
        return PushResult(accepted_ids=[r.id for r in records])

    async def close(self):
        self.closed = True


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def components(clock):
    repository = MemoryRepository()
    records = RecordStore(repository, clock=clock)
    state_store = SyncStateStore(repository)
    conflicts = ConflictQueue(repository)
    decisions = DecisionQueue(repository)
    ledger = PushLedger(repository)
    gateway = StubGateway()
    orchestrator = SyncOrchestrator(
        records, state_store, conflicts, decisions, ledger, gateway,
        clock=clock, metrics=Metrics(),
    )
    return {
        "config": AppConfig(),
        "repository": repository,
        "records": records,
        "state_store": state_store,
        "conflicts": conflicts,
        "decisions": decisions,
        "ledger": ledger,
        "gateway": gateway,
        "orchestrator": orchestrator,
    }


@pytest.fixture
def invoke(runner, components):
    """Invoke the CLI with config loading, logging and components patched."""

    def _invoke(*args, **kwargs):
        patches = [
            patch.object(importlib.import_module(m), "get_components", return_value=components)
            for m in COMMAND_MODULES
        ]
        patches.append(patch("cli.main.load_config_model", return_value=AppConfig()))
        patches.append(patch("cli.main.setup_logging", MagicMock()))
        for p in patches:
            p.start()
        try:
            return runner.invoke(cli, list(args), **kwargs)
        finally:
            for p in patches:
                p.stop()

    return _invoke


class TestHistoryCommands:
    def test_add(self, invoke, components):
        result = invoke("history", "add", "walked the dog", "-e", "joy", "-i", "0.8")
        assert result.exit_code == 0
        assert "Added" in result.output
        [record] = components["records"].all()
        assert record.message == "walked the dog"
        assert record.emotion == "joy"
        assert record.rev == 1

    def test_list_empty(self, invoke):
        result = invoke("history", "list")
        assert result.exit_code == 0
        assert "No history yet" in result.output

    def test_list_hides_deleted(self, invoke, components):
        store = components["records"]
        store.create("kept")
        gone = store.create("gone")
        store.delete(gone.id)

        result = invoke("history", "list")
        assert "kept" in result.output
        assert "gone" not in result.output

        result = invoke("history", "list", "--all")
        assert "gone" in result.output

    def test_edit(self, invoke, components):
        record = components["records"].create("before")
        result = invoke("history", "edit", record.id, "-m", "after")
        assert result.exit_code == 0
        updated = components["records"].get(record.id)
        assert updated.message == "after"
        assert updated.rev == 2

    def test_edit_nothing(self, invoke):
        result = invoke("history", "edit", "any")
        assert result.exit_code == 0
        assert "Nothing to change" in result.output

    def test_edit_unknown(self, invoke):
        result = invoke("history", "edit", "missing", "-m", "x")
        assert result.exit_code == 1
        assert "Not found" in result.output

    def test_delete_tombstones(self, invoke, components):
        record = components["records"].create("bye")
        result = invoke("history", "delete", record.id, "-y")
        assert result.exit_code == 0
        assert components["records"].get(record.id).deleted is True

    def test_delete_declined(self, invoke, components):
        record = components["records"].create("stay")
        invoke("history", "delete", record.id, input="n\n")
        assert components["records"].get(record.id).deleted is False

    def test_summary(self, invoke, components):
        components["records"].create("a", emotion="joy", intensity=0.4)
        components["records"].create("b", emotion="joy", intensity=0.6)
        result = invoke("history", "summary")
        assert result.exit_code == 0
        assert "Dominant:" in result.output
        assert "joy" in result.output

    def test_export_json(self, invoke, components, tmp_path):
        components["records"].create("a")
        out = tmp_path / "out.json"
        result = invoke("history", "export", "json", "-o", str(out))
        assert result.exit_code == 0
        assert out.exists()
        assert "Exported" in result.output


class TestSyncCommands:
    def test_run_applies_remote(self, invoke, components):
        components["gateway"].delta = [EmotionRecord(id="r1", message="from server", created_at=5, updated_at=5, rev=1)]
        result = invoke("sync", "run")
        assert result.exit_code == 0
        assert "synced" in result.output
        assert components["records"].get("r1").message == "from server"
        assert components["gateway"].closed

    def test_run_network_failure(self, invoke, components):
        components["gateway"].pull_error = NetworkFailure("connection refused")
        result = invoke("sync", "run")
        assert result.exit_code == 1
        assert "Sync failed" in result.output

    def test_run_offline(self, invoke, components):
        components["orchestrator"].set_online(False)
        result = invoke("sync", "run")
        assert result.exit_code == 1

    def test_status(self, invoke, components):
        components["records"].create("pending one")
        result = invoke("sync", "status")
        assert result.exit_code == 0
        assert "Pending push" in result.output

    def test_push_nothing(self, invoke):
        result = invoke("sync", "push")
        assert result.exit_code == 0
        assert "Nothing to push" in result.output

    def test_push_pending(self, invoke, components):
        record = components["records"].create("new")
        result = invoke("sync", "push")
        assert result.exit_code == 0
        assert "1/1" in result.output
        assert components["gateway"].pushed == [[record.id]]
        assert components["orchestrator"].pending() == []

    def test_pending(self, invoke, components):
        result = invoke("sync", "pending")
        assert "Everything is pushed" in result.output
        components["records"].create("new", emotion="fear")
        result = invoke("sync", "pending")
        assert "fear" in result.output

    def test_reset_token(self, invoke, components):
        state_store = components["state_store"]
        state_store.save(state_store.advance(state_store.load(), [], sync_token="42"))
        result = invoke("sync", "reset-token")
        assert result.exit_code == 0
        assert state_store.load().sync_token is None

    def test_clear_ledger(self, invoke, components):
        record = components["records"].create("x")
        components["ledger"].acknowledge([record])
        result = invoke("sync", "clear-ledger", "-y")
        assert result.exit_code == 0
        assert components["ledger"].entries() == {}


@pytest.fixture
def queued(components):
    local = EmotionRecord(id="c1", message="mine", created_at=1, updated_at=10, rev=2)
    remote = EmotionRecord(id="c1", message="theirs", created_at=1, updated_at=20, rev=2)
    components["records"].upsert(local)
    components["conflicts"].enqueue(
        [Conflict(id="c1", base_rev=1, reason=ConflictReason.NEWER_REMOTE, local=local, remote=remote)],
        now=1,
    )
    return local, remote


class TestConflictCommands:
    def test_list_empty(self, invoke):
        result = invoke("conflicts", "list")
        assert "No conflicts" in result.output

    def test_list(self, invoke, queued):
        result = invoke("conflicts", "list")
        assert result.exit_code == 0
        assert "c1" in result.output
        assert "newer-remote" in result.output

    def test_show(self, invoke, queued):
        result = invoke("conflicts", "show", "c1")
        assert result.exit_code == 0
        assert "mine" in result.output
        assert "theirs" in result.output

    def test_show_unknown(self, invoke):
        result = invoke("conflicts", "show", "nope")
        assert result.exit_code == 1

    def test_resolve_keep_remote(self, invoke, components, queued):
        result = invoke("conflicts", "resolve", "c1", "--keep", "remote")
        assert result.exit_code == 0
        assert "Resolved" in result.output
        assert components["records"].get("c1").message == "theirs"
        assert len(components["conflicts"]) == 0
        assert len(components["decisions"]) == 0

    def test_resolve_unknown_id_fails_without_queueing(self, invoke, components):
        result = invoke("conflicts", "resolve", "typo", "--keep", "remote")
        assert result.exit_code == 1
        assert "Nothing to keep" in result.output
        assert len(components["decisions"]) == 0

    def test_resolve_requires_keep(self, invoke, queued):
        result = invoke("conflicts", "resolve", "c1")
        assert result.exit_code != 0

    def test_retry_with_policy(self, invoke, components, queued):
        result = invoke("conflicts", "retry", "--policy", "prefer-local")
        assert result.exit_code == 0
        assert "Applied 1" in result.output
        assert components["records"].get("c1").message == "mine"
        assert len(components["conflicts"]) == 0


def test_config_error_exits(runner):
    with patch("cli.main.load_config_model", side_effect=ValueError("bad yaml")):
        result = runner.invoke(cli, ["sync", "status"])
    assert result.exit_code == 1
    assert "Config error" in result.output
