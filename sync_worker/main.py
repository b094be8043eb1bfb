from __future__ import annotations

import argparse
import logging
import signal
import threading

from sync_worker.config import get_settings
from sync_worker.db import SessionLocal
from sync_worker.errors import SyncError
from sync_worker.pipeline import SyncExecutor
from sync_worker.scheduler import SyncScheduler

logger = logging.getLogger(__name__)


def run_once(merchant_id: str) -> int:
    with SessionLocal() as db:
        try:
            run = SyncExecutor(db).trigger(merchant_id, reason="manual")
        except SyncError as exc:
            print(f"error={exc.code} message={exc.message}")
            return 1
        counts = run.counts()
        print(
            f"run={run.id} status={run.status} total={counts['total']} created={counts['created']} "
            f"updated={counts['updated']} skipped={counts['skipped']} failed={counts['failed']} "
            f"deleted={counts['deleted']}"
        )
        return 0 if run.status != "failed" else 1


def run_scheduler(refresh_seconds: float) -> None:
    scheduler = SyncScheduler(SessionLocal, refresh_seconds=refresh_seconds)
    scheduler.start()

    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())
    try:
        stop.wait()
    finally:
        scheduler.stop()


def main() -> None:
    parser = argparse.ArgumentParser(description="Catalog sync worker")
    subcommands = parser.add_subparsers(dest="command", required=True)

    run_parser = subcommands.add_parser("run", help="Run one manual sync for a merchant")
    run_parser.add_argument("--merchant", required=True)

    schedule_parser = subcommands.add_parser("schedule", help="Run scheduled syncs until interrupted")
    schedule_parser.add_argument(
        "--refresh-seconds",
        type=float,
        default=60.0,
        help="How often to re-read merchant schedules",
    )

    args = parser.parse_args()
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "run":
        raise SystemExit(run_once(args.merchant))
    run_scheduler(max(1.0, args.refresh_seconds))


if __name__ == "__main__":
    main()
