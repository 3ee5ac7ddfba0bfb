"""Scheduling wrapper: every sync trigger funnels into the guarded step."""

import asyncio
import uuid
from typing import Optional

import structlog
import structlog.contextvars
from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .orchestrator import SyncOrchestrator, SyncStatus

logger = structlog.get_logger().bind(source="scheduler")

SYNC_JOB_ID = "history_sync"


class SyncScheduler:
    """Runs sync steps on start, on a timer, on visibility/connectivity
    changes and on manual request.

    Scheduled and event-driven steps never raise; errors end up in the
    orchestrator status and the log. Only ``run_now`` propagates failures.
    """

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        interval_seconds: float = 60,
        visibility_delay_seconds: float = 3.0,
        run_on_start: bool = True,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.orchestrator = orchestrator
        self.interval_seconds = interval_seconds
        self.visibility_delay_seconds = visibility_delay_seconds
        self.run_on_start = run_on_start
        self.scheduler = scheduler or AsyncIOScheduler()
        self._tasks: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self) -> None:
        """Start the timer (unless the interval is 0) and fire the mount trigger."""
        if self.interval_seconds > 0:
            self.scheduler.add_job(
                self._timer_step,
                trigger=IntervalTrigger(seconds=self.interval_seconds),
                id=SYNC_JOB_ID,
                replace_existing=True,
                coalesce=True,
                max_instances=1,
            )
        self.scheduler.add_listener(self._default_error_handler, EVENT_JOB_ERROR)
        self.scheduler.start()
        logger.info("scheduler.started", interval_seconds=self.interval_seconds)
        if self.run_on_start:
            self.trigger("mount")

    async def shutdown(self) -> None:
        """Stop the timer, abort any in-flight pull and drop pending triggers."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        self.orchestrator.abort()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("scheduler.stopped")

    def _default_error_handler(self, event):
        logger.error("job_error", job_id=event.job_id, exception=str(event.exception))

    async def _timer_step(self) -> Optional[SyncStatus]:
        return await self._safe_step("timer")

    async def _safe_step(self, reason: str) -> Optional[SyncStatus]:
        structlog.contextvars.bind_contextvars(run_id=uuid.uuid4().hex[:8], trigger=reason)
        try:
            status = await self.orchestrator.step()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("scheduler.step_crashed", error=str(e))
            return None
        finally:
            structlog.contextvars.unbind_contextvars("run_id", "trigger")
        logger.debug("scheduler.step_done", trigger=reason, phase=status.phase.value, skipped=status.skipped)
        return status

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def trigger(self, reason: str) -> asyncio.Task:
        """Start a step in the background; dropped by the guard if one is running."""
        return self._spawn(self._safe_step(reason))

    async def _delayed_step(self, reason: str, delay: float) -> Optional[SyncStatus]:
        await asyncio.sleep(delay)
        return await self._safe_step(reason)

    def on_visibility_change(self, visible: bool) -> Optional[asyncio.Task]:
        if not visible:
            return None
        return self._spawn(self._delayed_step("visibility", self.visibility_delay_seconds))

    def on_online(self) -> asyncio.Task:
        self.orchestrator.set_online(True)
        return self.trigger("online")

    def on_offline(self) -> None:
        self.orchestrator.set_online(False)

    async def run_now(self) -> SyncStatus:
        """Manual trigger: failures propagate to the caller."""
        return await self.orchestrator.step(raise_errors=True)
