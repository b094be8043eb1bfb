from datetime import timedelta

import pytest

from sync_worker.errors import NotFound
from sync_worker.history import HistoryTracker
from sync_worker.models import SyncLock, SyncRun, utc_now


def _run(session, sync_id: str, status: str, minutes_ago: int, merchant_id: str = "m1") -> SyncRun:
    started = utc_now() - timedelta(minutes=minutes_ago)
    run = SyncRun(
        id=sync_id,
        merchant_id=merchant_id,
        trigger="manual",
        status=status,
        started_at=started,
        completed_at=started + timedelta(seconds=5) if status != "running" else None,
    )
    session.add(run)
    session.commit()
    return run


def test_status_for_unknown_merchant(session):
    with pytest.raises(NotFound):
        HistoryTracker(session).get_status("nobody")


def test_idle_status_reports_last_run_and_next_fire(session, configure):
    configure("m1", schedule="hourly")
    _run(session, "sync_old", "failed", minutes_ago=30)
    _run(session, "sync_new", "success", minutes_ago=10)

    status = HistoryTracker(session).get_status("m1")

    assert status.status == "idle"
    assert status.is_running is False
    assert status.last_run.id == "sync_new"
    assert status.last_sync_at is not None
    assert status.next_sync_at is not None
    assert status.next_sync_at > utc_now()
    assert status.next_sync_at.minute == 0


def test_failed_last_run_is_error(session, configure):
    configure("m1")
    _run(session, "sync_a", "failed", minutes_ago=5)

    assert HistoryTracker(session).get_status("m1").status == "error"


def test_running_status_follows_lock(session, configure):
    configure("m1")
    _run(session, "sync_done", "success", minutes_ago=20)
    _run(session, "sync_live", "running", minutes_ago=1)
    session.add(SyncLock(merchant_id="m1", sync_id="sync_live", expires_at=utc_now() + timedelta(minutes=5)))
    session.commit()

    status = HistoryTracker(session).get_status("m1")

    assert status.status == "running"
    assert status.is_running is True
    assert status.active_sync_id == "sync_live"
    assert status.last_run.id == "sync_done"


def test_disabled_and_manual_have_no_next_fire(session, configure):
    configure("m1", sync_type="manual", source=None, schedule=None)
    configure("m2", status="disabled")
    tracker = HistoryTracker(session)

    assert tracker.get_status("m1").next_sync_at is None
    disabled = tracker.get_status("m2")
    assert disabled.status == "disabled"
    assert disabled.next_sync_at is None


def test_history_is_newest_first_and_bounded(session):
    for index in range(5):
        _run(session, f"sync_{index}", "success", minutes_ago=50 - index)
    _run(session, "sync_other", "success", minutes_ago=1, merchant_id="m2")
    tracker = HistoryTracker(session)

    assert [run.id for run in tracker.get_history("m1", limit=3)] == ["sync_4", "sync_3", "sync_2"]
    assert len(tracker.get_history("m1", limit=0)) == 1
    assert len(tracker.get_history("m1", limit=500)) == 5


def test_finalized_run_cannot_be_finalized_again(session):
    run = _run(session, "sync_a", "running", minutes_ago=1)
    tracker = HistoryTracker(session)
    tracker.finalize(run, "success")

    with pytest.raises(ValueError):
        tracker.finalize(run, "failed", error_summary="late")
    assert session.get(SyncRun, "sync_a").status == "success"


def test_start_run_rejects_unknown_trigger(session):
    with pytest.raises(ValueError):
        HistoryTracker(session).start_run("m1", "cron", "sync_x")
