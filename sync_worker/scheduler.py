"""Cron-style scheduling of pull syncs.

One APScheduler job per active scheduled merchant; each tick opens its own
session and asks the executor for a ``scheduled`` run. A separate interval
job re-reads the configs so schedule changes take effect without a restart.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from sync_worker.configuration import SyncConfigStore
from sync_worker.errors import Conflict, SyncError
from sync_worker.pipeline import SyncExecutor
from sync_worker.schedules import DEFAULT_SCHEDULE, build_trigger

JOB_PREFIX = "sync:"
REFRESH_JOB_ID = "schedule-refresh"

logger = logging.getLogger(__name__)


def job_id(merchant_id: str) -> str:
    return f"{JOB_PREFIX}{merchant_id}"


class SyncScheduler:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        executor_factory: Callable[[Session], SyncExecutor] = SyncExecutor,
        scheduler: BackgroundScheduler | None = None,
        refresh_seconds: float = 60.0,
    ) -> None:
        self.session_factory = session_factory
        self.executor_factory = executor_factory
        self.scheduler = scheduler or BackgroundScheduler(timezone="UTC")
        self.refresh_seconds = max(1.0, refresh_seconds)

    def start(self) -> None:
        self.refresh()
        self.scheduler.add_job(
            self.refresh,
            trigger=IntervalTrigger(seconds=self.refresh_seconds),
            id=REFRESH_JOB_ID,
            name="Refresh catalog sync schedules",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(
            "Sync scheduler started with %s merchant jobs, refreshing every %ss",
            len(self.job_ids()),
            self.refresh_seconds,
        )

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Sync scheduler stopped")

    def refresh(self) -> list[str]:
        """Re-read configs: add or replace jobs for active scheduled merchants, drop the rest."""
        with self.session_factory() as db:
            configs = SyncConfigStore(db).list_scheduled()
            wanted = {config.merchant_id: config.schedule or DEFAULT_SCHEDULE for config in configs}

        for existing in self.job_ids():
            if existing[len(JOB_PREFIX) :] not in wanted:
                self.scheduler.remove_job(existing)

        for merchant_id, schedule in wanted.items():
            # A stopped scheduler queues add_job calls without deduplicating them.
            if self.scheduler.get_job(job_id(merchant_id)) is not None:
                self.scheduler.remove_job(job_id(merchant_id))
            self.scheduler.add_job(
                self.run_merchant,
                trigger=build_trigger(schedule),
                args=[merchant_id],
                id=job_id(merchant_id),
                name=f"Catalog sync for {merchant_id}",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
        return sorted(wanted)

    def job_ids(self) -> list[str]:
        return [job.id for job in self.scheduler.get_jobs() if job.id.startswith(JOB_PREFIX)]

    def run_merchant(self, merchant_id: str) -> None:
        with self.session_factory() as db:
            try:
                run = self.executor_factory(db).trigger(merchant_id, reason="scheduled")
            except Conflict:
                logger.warning("Skipping scheduled sync for merchant %s: a sync is already running", merchant_id)
                return
            except SyncError as exc:
                logger.warning("Scheduled sync for merchant %s was rejected: %s", merchant_id, exc)
                return
            logger.info("Scheduled sync %s for merchant %s finished with status %s", run.id, merchant_id, run.status)
