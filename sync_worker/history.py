from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from sync_worker.errors import NotFound
from sync_worker.locks import MerchantLock
from sync_worker.models import RUN_TRIGGERS, TERMINAL_RUN_STATUSES, SyncConfig, SyncRun, as_utc, utc_now
from sync_worker.schedules import next_fire_time

MAX_HISTORY_LIMIT = 100

logger = logging.getLogger(__name__)


@dataclass
class SyncStatus:
    merchant_id: str
    status: str
    is_running: bool
    active_sync_id: str | None
    last_sync_at: datetime | None
    next_sync_at: datetime | None
    last_run: SyncRun | None


class HistoryTracker:
    def __init__(self, db: Session, retention: int = 100) -> None:
        self.db = db
        self.retention = retention

    def start_run(self, merchant_id: str, trigger: str, sync_id: str) -> SyncRun:
        if trigger not in RUN_TRIGGERS:
            raise ValueError(f"Unknown sync trigger {trigger}")
        run = SyncRun(id=sync_id, merchant_id=merchant_id, trigger=trigger, status="pending", started_at=utc_now())
        self.db.add(run)
        self.db.commit()
        return run

    def mark_running(self, run: SyncRun) -> None:
        run.status = "running"
        self.db.commit()
        logger.info("Sync %s running for merchant %s (%s)", run.id, run.merchant_id, run.trigger)

    def finalize(self, run: SyncRun, status: str, error_summary: str | None = None) -> SyncRun:
        if run.is_finalized:
            raise ValueError(f"Sync run {run.id} is already finalized as {run.status}")
        if status not in TERMINAL_RUN_STATUSES:
            raise ValueError(f"Cannot finalize sync run with status {status}")

        run.status = status
        run.error_summary = error_summary
        run.completed_at = utc_now()
        self._prune(run.merchant_id, keep_id=run.id)
        self.db.commit()
        logger.info(
            "Sync %s finished for merchant %s: status=%s total=%s created=%s updated=%s skipped=%s failed=%s",
            run.id,
            run.merchant_id,
            run.status,
            run.items_total,
            run.items_created,
            run.items_updated,
            run.items_skipped,
            run.items_failed,
        )
        return run

    def get_history(self, merchant_id: str, limit: int = 10) -> list[SyncRun]:
        limit = max(1, min(limit, MAX_HISTORY_LIMIT))
        return list(
            self.db.execute(
                select(SyncRun)
                .where(SyncRun.merchant_id == merchant_id)
                .order_by(SyncRun.started_at.desc())
                .limit(limit)
            ).scalars()
        )

    def last_finalized(self, merchant_id: str) -> SyncRun | None:
        return self.db.execute(
            select(SyncRun)
            .where(SyncRun.merchant_id == merchant_id, SyncRun.status.in_(TERMINAL_RUN_STATUSES))
            .order_by(SyncRun.started_at.desc())
            .limit(1)
        ).scalar_one_or_none()

    def get_status(self, merchant_id: str) -> SyncStatus:
        config = self.db.get(SyncConfig, merchant_id)
        if config is None:
            raise NotFound("Sync configuration not found", details={"merchant_id": merchant_id})

        lock = MerchantLock(self.db, ttl_seconds=0).holder(merchant_id)
        last_run = self.last_finalized(merchant_id)

        if lock is not None:
            status = "running"
        elif config.status == "disabled":
            status = "disabled"
        elif last_run is not None and last_run.status == "failed":
            status = "error"
        else:
            status = "idle"

        next_sync_at = None
        if config.sync_type == "scheduled" and config.status == "active" and config.schedule:
            next_sync_at = next_fire_time(config.schedule)

        return SyncStatus(
            merchant_id=merchant_id,
            status=status,
            is_running=lock is not None,
            active_sync_id=lock.sync_id if lock is not None else None,
            last_sync_at=as_utc(last_run.completed_at) if last_run is not None else None,
            next_sync_at=next_sync_at,
            last_run=last_run,
        )

    def _prune(self, merchant_id: str, keep_id: str) -> None:
        stale_ids = list(
            self.db.execute(
                select(SyncRun.id)
                .where(
                    SyncRun.merchant_id == merchant_id,
                    SyncRun.status.in_(TERMINAL_RUN_STATUSES),
                    SyncRun.id != keep_id,
                )
                .order_by(SyncRun.started_at.desc())
                .offset(max(self.retention - 1, 0))
            ).scalars()
        )
        if stale_ids:
            self.db.execute(delete(SyncRun).where(SyncRun.id.in_(stale_ids)))
            logger.debug("Pruned %s old sync runs for merchant %s", len(stale_ids), merchant_id)
