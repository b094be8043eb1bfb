from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sync_worker.errors import Conflict
from sync_worker.models import SyncLock, SyncRun, as_utc, utc_now

logger = logging.getLogger(__name__)


class MerchantLock:
    """One row per merchant in sync_locks; whoever holds it owns the merchant's snapshots.

    A lock outliving its expiry belongs to a run that died without cleaning up,
    so the next acquirer takes it over and fails that run as timed out.
    """

    def __init__(self, db: Session, ttl_seconds: float) -> None:
        self.db = db
        self.ttl = timedelta(seconds=ttl_seconds)

    def acquire(self, merchant_id: str, sync_id: str) -> SyncLock:
        now = utc_now()
        existing = self.db.get(SyncLock, merchant_id)
        if existing is not None:
            if as_utc(existing.expires_at) > now:
                raise Conflict(
                    "A sync is already running for this merchant",
                    details={"merchant_id": merchant_id, "sync_id": existing.sync_id},
                )
            self._reclaim(existing)

        lock = SyncLock(merchant_id=merchant_id, sync_id=sync_id, acquired_at=now, expires_at=now + self.ttl)
        self.db.add(lock)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise Conflict("A sync is already running for this merchant", details={"merchant_id": merchant_id}) from exc
        return lock

    def release(self, merchant_id: str, sync_id: str) -> None:
        self.db.execute(delete(SyncLock).where(SyncLock.merchant_id == merchant_id, SyncLock.sync_id == sync_id))
        self.db.commit()

    def holder(self, merchant_id: str) -> SyncLock | None:
        lock = self.db.get(SyncLock, merchant_id)
        if lock is None or as_utc(lock.expires_at) <= utc_now():
            return None
        return lock

    def _reclaim(self, stale: SyncLock) -> None:
        logger.warning("Reclaiming expired sync lock for merchant %s (sync %s)", stale.merchant_id, stale.sync_id)
        run = self.db.get(SyncRun, stale.sync_id)
        if run is not None and not run.is_finalized:
            run.status = "failed"
            run.error_summary = "sync_timeout"
            run.completed_at = utc_now()
        self.db.delete(stale)
        self.db.flush()
