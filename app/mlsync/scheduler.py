from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from zoneinfo import ZoneInfo

from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from app.mlsync.constants import (
    HISTORY_COPY_CRON,
    HISTORY_COPY_JOB_ID,
    MORNING_SYNC_CRON,
    MORNING_SYNC_JOB_ID,
    SCHEDULER_TIMEZONE,
)
from app.mlsync.modules.reconciliation.errors import SchedulerStateError

logger = logging.getLogger(__name__)

JobFn = Callable[[], Awaitable[None]]


class SchedulerState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass(frozen=True)
class ScheduledJobs:
    morning_sync: JobFn
    history_copy: JobFn


class JobScheduler:
    """
    Weekday cron triggers for the morning reconciliation and the evening history copy.

    Executions are serialized through one lock, so an overrunning pass delays the next
    job instead of interleaving with it. ``stop()`` only cancels future firings; a job
    that is already running finishes on its own.
    """

    def __init__(self, *, timezone: str = SCHEDULER_TIMEZONE) -> None:
        self.timezone = ZoneInfo(timezone)
        self.state = SchedulerState.STOPPED
        self._scheduler: AsyncIOScheduler | None = None
        self._lock: asyncio.Lock | None = None
        self._inflight: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self.state is SchedulerState.RUNNING

    def start(self, jobs: ScheduledJobs) -> None:
        if self.running:
            raise SchedulerStateError("Scheduler already running.")
        self._lock = asyncio.Lock()
        scheduler = AsyncIOScheduler(timezone=self.timezone)
        for job_id, cron, fn in (
            (MORNING_SYNC_JOB_ID, MORNING_SYNC_CRON, jobs.morning_sync),
            (HISTORY_COPY_JOB_ID, HISTORY_COPY_CRON, jobs.history_copy),
        ):
            scheduler.add_job(
                self._guarded(job_id, fn),
                CronTrigger.from_crontab(cron, timezone=self.timezone),
                id=job_id,
                name=job_id,
                max_instances=1,
                coalesce=True,
            )
        scheduler.start()
        self._scheduler = scheduler
        self.state = SchedulerState.RUNNING
        logger.info(
            "Scheduler started: %s (%s), %s (%s) in %s",
            MORNING_SYNC_JOB_ID,
            MORNING_SYNC_CRON,
            HISTORY_COPY_JOB_ID,
            HISTORY_COPY_CRON,
            self.timezone.key,
        )

    def stop(self) -> None:
        if not self.running or self._scheduler is None:
            return
        self._scheduler.remove_all_jobs()
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        self.state = SchedulerState.STOPPED
        logger.info("Scheduler stopped (%d job(s) still finishing)", len(self._inflight))

    def registered_jobs(self) -> list[Job]:
        if self._scheduler is None:
            return []
        return self._scheduler.get_jobs()

    async def wait_idle(self) -> None:
        """Wait for executions that were already running when ``stop()`` was called."""
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    def _guarded(self, job_id: str, fn: JobFn) -> JobFn:
        async def _execute() -> None:
            assert self._lock is not None
            async with self._lock:
                logger.info("=== Job %s starting ===", job_id)
                try:
                    await fn()
                except Exception:
                    logger.exception("Job %s failed", job_id)
                else:
                    logger.info("=== Job %s finished ===", job_id)

        async def fire() -> None:
            if not self.running:
                logger.info("Job %s fired after stop; ignoring", job_id)
                return
            task = asyncio.ensure_future(_execute())
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            # shield: shutting the executor down must not cancel a running pass
            await asyncio.shield(task)

        fire.__name__ = f"run_{job_id}"
        return fire
