from datetime import timedelta

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import sessionmaker

from sync_worker.adapters.base import FetchResult, RawProductRecord, SourceAdapter
from sync_worker.models import SyncLock, SyncRun, utc_now
from sync_worker.pipeline import SyncExecutor
from sync_worker.scheduler import REFRESH_JOB_ID, SyncScheduler, job_id

from helpers import product


class OneProductAdapter(SourceAdapter):
    source_type = "static"

    def fetch(self) -> FetchResult:
        return FetchResult(records=[RawProductRecord(data=product("A1"))])


def _scheduler(session, settings, **kwargs) -> SyncScheduler:
    factory = sessionmaker(bind=session.get_bind(), autoflush=False, autocommit=False)
    return SyncScheduler(
        factory,
        executor_factory=lambda db: SyncExecutor(
            db, settings=settings, adapter_factory=lambda config, timeout: OneProductAdapter()
        ),
        scheduler=BackgroundScheduler(timezone="UTC"),
        **kwargs,
    )


def test_refresh_registers_one_job_per_scheduled_merchant(session, settings, configure):
    configure("m1", schedule="hourly")
    configure("m2", schedule="*/15 * * * *")
    configure("m3", sync_type="manual", source=None, schedule=None)
    scheduler = _scheduler(session, settings)

    assert scheduler.refresh() == ["m1", "m2"]
    assert sorted(scheduler.job_ids()) == [job_id("m1"), job_id("m2")]
    job = scheduler.scheduler.get_job(job_id("m1"))
    assert isinstance(job.trigger, CronTrigger)


def test_refresh_drops_disabled_merchants(session, settings, configure):
    configure("m1")
    configure("m2")
    scheduler = _scheduler(session, settings)
    scheduler.refresh()

    configure("m2", status="disabled")
    scheduler.refresh()

    assert scheduler.job_ids() == [job_id("m1")]


def test_tick_runs_scheduled_sync(session, settings, configure):
    configure("m1")
    _scheduler(session, settings).run_merchant("m1")

    run = session.query(SyncRun).one()
    assert run.trigger == "scheduled"
    assert run.status == "success"


def test_tick_skips_when_sync_in_progress(session, settings, configure):
    configure("m1")
    session.add(SyncLock(merchant_id="m1", sync_id="sync_busy", expires_at=utc_now() + timedelta(minutes=5)))
    session.commit()

    _scheduler(session, settings).run_merchant("m1")

    assert session.query(SyncRun).count() == 0


def test_start_registers_schedule_refresh_job(session, settings, configure):
    configure("m1")
    scheduler = _scheduler(session, settings, refresh_seconds=300)

    scheduler.start()
    try:
        refresh = scheduler.scheduler.get_job(REFRESH_JOB_ID)
        assert isinstance(refresh.trigger, IntervalTrigger)
        assert refresh.trigger.interval == timedelta(seconds=300)
        assert scheduler.job_ids() == [job_id("m1")]
    finally:
        scheduler.stop()
