"""Sync orchestrator: the single guarded entry point for sync work.

One step pulls the remote delta since the stored cursor, plans it against the
local records and shadow revisions, applies the safe remote changes, queues
conflicts and only then persists the new shadow and cursor. Those writes commit
together in one repository transaction, so a failed or aborted step leaves
every persisted store untouched and can simply be repeated.
"""

import asyncio
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field, replace
from typing import Callable, Iterable, Optional

import structlog

from history.records import EmotionRecord
from history.store import RecordStore, now_ms
from observability import Metrics
from observability import metrics as default_metrics
from shared_types import ConflictReason, KeepSide, ResolutionPolicy, SyncPhase

from .conflicts import Conflict, conflict_reason
from .errors import OfflineKnown, SyncError
from .gateway import RemoteGateway
from .ledger import PushLedger
from .planner import SyncPlan, build_plan
from .queues import ConflictDecision, ConflictQueue, DecisionQueue
from .state import SyncStateStore

logger = structlog.get_logger().bind(source="sync")


@dataclass
class SyncStatus:
    phase: SyncPhase = SyncPhase.IDLE
    last_error: Optional[str] = None
    last_synced_at: Optional[int] = None
    last_success_at: Optional[int] = None
    pulled: int = 0
    applied_remote: int = 0
    applied_local: int = 0
    conflicts: int = 0
    queued_conflicts: int = 0
    pending_decisions: int = 0
    pending_push: int = 0
    skipped: bool = False


@dataclass(frozen=True)
class PushReport:
    attempted: int = 0
    accepted_ids: list[str] = field(default_factory=list)
    rejected_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RetryReport:
    applied: int
    remaining: int


class SyncOrchestrator:
    """Coordinates record store, sync state, queues, ledger and gateway.

    At most one operation that writes sync state runs at a time. A sync step
    requested while anything is in flight is dropped; explicit pushes and
    resolutions wait their turn instead.
    """

    def __init__(
        self,
        records: RecordStore,
        state_store: SyncStateStore,
        conflict_queue: ConflictQueue,
        decision_queue: DecisionQueue,
        ledger: PushLedger,
        gateway: RemoteGateway,
        clock: Callable[[], int] = now_ms,
        metrics: Optional[Metrics] = None,
        push_on_step: bool = False,
    ):
        self.records = records
        self.state_store = state_store
        self.conflict_queue = conflict_queue
        self.decision_queue = decision_queue
        self.ledger = ledger
        self.gateway = gateway
        self.clock = clock
        self.metrics = metrics or default_metrics
        self.push_on_step = push_on_step

        self._lock = asyncio.Lock()
        self._online = True
        self._pull_task: Optional[asyncio.Future] = None
        self._abort_requested = False
        self._status = SyncStatus()

    # --- connectivity / cancellation ---

    @property
    def online(self) -> bool:
        return self._online

    @property
    def in_flight(self) -> bool:
        return self._lock.locked()

    def set_online(self, online: bool) -> None:
        self._online = online
        if not online:
            self._status.phase = SyncPhase.OFFLINE
        elif self._status.phase == SyncPhase.OFFLINE:
            self._status.phase = SyncPhase.IDLE
        logger.info("sync.connectivity", online=online)

    def abort(self) -> bool:
        """Cancel an in-flight pull. Returns True if there was one."""
        if self._pull_task is None or self._pull_task.done():
            return False
        self._abort_requested = True
        self._pull_task.cancel()
        return True

    def _repositories(self) -> list:
        repos: list = []
        for store in (self.records, self.state_store, self.conflict_queue, self.decision_queue, self.ledger):
            if not any(store.repository is r for r in repos):
                repos.append(store.repository)
        return repos

    @contextmanager
    def _transaction(self):
        """Buffer every store write and commit once when the block succeeds."""
        with ExitStack() as stack:
            for repository in self._repositories():
                stack.enter_context(repository.transaction())
            yield

    # --- sync step ---

    async def step(self, raise_errors: bool = False) -> SyncStatus:
        """Run one pull -> plan -> apply -> persist cycle.

        Failures are reported through the returned status. With
        ``raise_errors`` (manual trigger) the SyncError is re-raised as well.
        """
        if not self._online:
            self._status.phase = SyncPhase.OFFLINE
            logger.info("sync.step.offline")
            if raise_errors:
                raise OfflineKnown("Device is offline")
            return self.status()

        if self._lock.locked():
            self.metrics.counter("sync.step.skipped")
            logger.debug("sync.step.skipped", reason="in_flight")
            return self.status(skipped=True)

        async with self._lock:
            return await self._run_step(raise_errors)

    async def _run_step(self, raise_errors: bool) -> SyncStatus:
        self._status.phase = SyncPhase.SYNCING
        self._abort_requested = False
        state = self.state_store.load()

        try:
            with self.metrics.timer("sync.pull"):
                self._pull_task = asyncio.ensure_future(self.gateway.pull(state.sync_token))
                delta = await self._pull_task
        except asyncio.CancelledError:
            self._status.phase = SyncPhase.IDLE
            if not self._abort_requested:
                raise
            self.metrics.counter("sync.step.aborted")
            logger.info("sync.step.aborted")
            return self.status()
        except SyncError as e:
            self._fail(e)
            if raise_errors:
                raise
            return self.status()
        finally:
            self._pull_task = None
            self._abort_requested = False

        now = self.clock()
        try:
            with self._transaction():
                plan = self._hold_queued(build_plan(self.records.all(), delta.records, state))
                self.records.apply(plan.apply_remote)
                self.ledger.acknowledge([*plan.apply_remote, *plan.in_sync])
                if plan.in_sync:
                    self.conflict_queue.remove(r.id for r in plan.in_sync)
                if plan.conflicts:
                    self.conflict_queue.enqueue(plan.conflicts, now)
                self.state_store.save(
                    self.state_store.advance(
                        state,
                        [*plan.apply_remote, *plan.apply_local, *plan.in_sync],
                        sync_token=delta.next_cursor,
                        synced_at=now,
                    )
                )
        except Exception as e:
            self._fail(e, prefix="apply failed")
            if raise_errors:
                raise
            return self.status()

        self._status = replace(
            self._status,
            phase=SyncPhase.SYNCED,
            last_error=None,
            last_success_at=now,
            pulled=len(delta.records),
            applied_remote=len(plan.apply_remote),
            applied_local=len(plan.apply_local),
            conflicts=len(plan.conflicts),
        )
        self.metrics.counter("sync.step.completed")
        self.metrics.counter("sync.records.pulled", len(delta.records))
        self.metrics.counter("sync.conflicts.detected", len(plan.conflicts))
        logger.info(
            "sync.step.completed",
            pulled=len(delta.records),
            applied_remote=len(plan.apply_remote),
            applied_local=len(plan.apply_local),
            conflicts=len(plan.conflicts),
            cursor=delta.next_cursor,
        )

        if self.push_on_step:
            try:
                await self._push(self._pending())
            except SyncError as e:
                self._fail(e, prefix="push failed")
                if raise_errors:
                    raise
        return self.status()

    def _hold_queued(self, plan: SyncPlan) -> SyncPlan:
        """Keep ids with an unresolved queued conflict out of the safe applies.

        A later one-sided change to a held id refreshes its queue entry
        instead of being adopted over the pending user decision.
        """
        queued = {e.id: e for e in self.conflict_queue.all()}
        if not queued:
            return plan

        conflicts = list(plan.conflicts)
        apply_local, apply_remote = [], []
        for record in plan.apply_local:
            entry = queued.get(record.id)
            if entry is None:
                apply_local.append(record)
                continue
            conflicts.append(
                Conflict(record.id, entry.base_rev, conflict_reason(record, entry.remote), record, entry.remote)
            )
        for record in plan.apply_remote:
            entry = queued.get(record.id)
            if entry is None:
                apply_remote.append(record)
                continue
            conflicts.append(
                Conflict(record.id, entry.base_rev, conflict_reason(entry.local, record), entry.local, record)
            )
        conflicts.sort(key=lambda c: c.id)
        return SyncPlan(
            apply_local=apply_local, apply_remote=apply_remote, conflicts=conflicts, in_sync=plan.in_sync
        )

    def _fail(self, error: Exception, prefix: str = "") -> None:
        message = f"{prefix}: {error}" if prefix else str(error)
        self._status.phase = SyncPhase.ERROR
        self._status.last_error = message
        self.metrics.counter("sync.errors")
        logger.warning("sync.step.failed", error=message, kind=type(error).__name__)

    # --- push ---

    def _pending(self) -> list[EmotionRecord]:
        held = set(self.conflict_queue.ids())
        return [r for r in self.ledger.compute_pending(self.records.all()) if r.id not in held]

    def pending(self) -> list[EmotionRecord]:
        """Local records not yet acknowledged by the remote side."""
        return self._pending()

    async def push_pending(self) -> PushReport:
        async with self._lock:
            return await self._push(self._pending())

    async def push_all(self) -> PushReport:
        """Re-send every local record regardless of ledger state."""
        async with self._lock:
            held = set(self.conflict_queue.ids())
            return await self._push([r for r in self.records.all() if r.id not in held])

    async def _push(self, records: list[EmotionRecord]) -> PushReport:
        if not records:
            return PushReport()
        if not self._online:
            self._status.phase = SyncPhase.OFFLINE
            raise OfflineKnown("Device is offline")

        try:
            with self.metrics.timer("sync.push"):
                result = await self.gateway.push(records)
        except SyncError as e:
            self._fail(e)
            raise

        sent = {r.id for r in records}
        accepted = [i for i in dict.fromkeys(result.accepted_ids) if i in sent]
        accepted_set = set(accepted)
        acked = [r for r in records if r.id in accepted_set]

        with self._transaction():
            self.ledger.mark_pushed(accepted, records)
            state = self.state_store.load()
            self.state_store.save(self.state_store.advance(state, acked))

        rejected = [r.id for r in records if r.id not in accepted_set]
        self.metrics.counter("sync.push.accepted", len(accepted))
        self.metrics.counter("sync.push.rejected", len(rejected))
        logger.info("sync.push.completed", attempted=len(records), accepted=len(accepted), rejected=len(rejected))
        return PushReport(attempted=len(records), accepted_ids=accepted, rejected_ids=rejected)

    # --- conflict resolution ---

    async def apply_conflict_resolution(self, decisions: Iterable[ConflictDecision]) -> list[str]:
        """Apply user decisions and clear them from both queues.

        Returns the ids that were resolved. A decision with no record to keep
        stays queued.
        """
        async with self._lock:
            return self._apply_decisions(list(decisions))

    def _choose(self, decision: ConflictDecision) -> Optional[EmotionRecord]:
        """The record a decision keeps, or None when there is nothing to apply."""
        current = self.records.get(decision.id)
        queued = self.conflict_queue.get(decision.id)
        if decision.keep == KeepSide.LOCAL:
            chosen = decision.local or current or (queued.local if queued else None)
        else:
            chosen = decision.remote or (queued.remote if queued else None)
        if chosen is None or current is None:
            return chosen
        if chosen.rev < current.rev:
            chosen = chosen.evolve(rev=current.rev)
        if not chosen.updated_at:
            chosen = chosen.evolve(updated_at=current.updated_at)
        return chosen

    def _apply_decisions(self, decisions: list[ConflictDecision]) -> list[str]:
        kept_local: list[EmotionRecord] = []
        kept_remote: list[EmotionRecord] = []

        for decision in decisions:
            chosen = self._choose(decision)
            if chosen is None:
                logger.warning("sync.resolution.nothing_to_apply", id=decision.id)
                continue
            (kept_local if decision.keep == KeepSide.LOCAL else kept_remote).append(chosen)

        resolved = kept_local + kept_remote
        if not resolved:
            return []

        ids = [r.id for r in resolved]
        with self._transaction():
            self.records.apply(resolved)
            self.ledger.acknowledge(kept_remote)
            self.ledger.forget(r.id for r in kept_local)
            state = self.state_store.load()
            self.state_store.save(self.state_store.advance(state, resolved))
            self.conflict_queue.remove(ids)
            self.decision_queue.remove(ids)

        self.metrics.counter("sync.conflicts.resolved", len(ids))
        logger.info("sync.resolution.applied", kept_local=len(kept_local), kept_remote=len(kept_remote))
        return ids

    async def resolve(
        self,
        record_id: str,
        keep: KeepSide | str,
        local: Optional[EmotionRecord] = None,
        remote: Optional[EmotionRecord] = None,
    ) -> bool:
        """Record a user's choice durably, then apply it.

        Raises:
            KeyError: the choice has no record to keep (unknown id, or
                ``remote`` for an id with no queued conflict).
        """
        decision = ConflictDecision(id=record_id, keep=KeepSide(keep), local=local, remote=remote)
        async with self._lock:
            if self._choose(decision) is None:
                raise KeyError(record_id)
            self.decision_queue.enqueue(decision)
            return record_id in self._apply_decisions([decision])

    def _drop_inapplicable(self, decisions: list[ConflictDecision]) -> list[ConflictDecision]:
        stale = [d.id for d in decisions if self._choose(d) is None]
        if not stale:
            return decisions
        self.decision_queue.remove(stale)
        self.metrics.counter("sync.decisions.dropped", len(stale))
        logger.warning("sync.retry.dropped_decisions", ids=stale)
        return [d for d in decisions if d.id not in stale]

    async def retry_queued_conflicts(
        self, policy: ResolutionPolicy | str = ResolutionPolicy.PREFER_REMOTE
    ) -> RetryReport:
        """Apply pending user decisions, or else resolve the queue by policy.

        Decisions that can never apply are discarded first, so they cannot
        hold back the policy. Conflicts with identical timestamps and
        different content always need an explicit user decision and are left
        in the queue.
        """
        policy = ResolutionPolicy(policy)
        async with self._lock:
            decisions = self._drop_inapplicable(self.decision_queue.all())
            if not decisions:
                keep = KeepSide.LOCAL if policy == ResolutionPolicy.PREFER_LOCAL else KeepSide.REMOTE
                decisions = [
                    ConflictDecision(
                        id=entry.id,
                        keep=keep,
                        remote=entry.remote if keep == KeepSide.REMOTE else None,
                    )
                    for entry in self.conflict_queue.all()
                    if entry.reason != ConflictReason.SAME_UPDATED_AT_DIFF_CONTENT
                ]
            applied = self._apply_decisions(decisions)
            remaining = len(self.conflict_queue)
        logger.info("sync.retry.completed", policy=policy.value, applied=len(applied), remaining=remaining)
        return RetryReport(applied=len(applied), remaining=remaining)

    # --- maintenance / reporting ---

    def reset_sync_token(self) -> None:
        self.state_store.clear_token()

    def status(self, skipped: bool = False) -> SyncStatus:
        state = self.state_store.load()
        return replace(
            self._status,
            last_synced_at=state.last_synced_at,
            queued_conflicts=len(self.conflict_queue),
            pending_decisions=len(self.decision_queue),
            pending_push=len(self._pending()),
            skipped=skipped,
        )
