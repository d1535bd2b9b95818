from __future__ import annotations

import json
import logging
import sys
from dataclasses import asdict
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import settings
from ..db.session import SessionLocal
from ..services.snapshot import SnapshotRefresher, session_loader


logger = logging.getLogger(__name__)

REFRESH_JOB_ID = "dashboard-snapshot-refresh"


def build_refresher(horizon_days: int | None = None) -> SnapshotRefresher:
    days = horizon_days or settings.snapshot.horizon_days
    return SnapshotRefresher(session_loader(SessionLocal), horizon=timedelta(days=days))


def run_refresh_job(refresher: SnapshotRefresher) -> None:
    outcome = refresher.refresh()
    if outcome.status == "failed":
        logger.warning("Snapshot refresh failed: %s", outcome.error)


def configure_scheduler(
    refresher: SnapshotRefresher,
    *,
    refresh_minutes: int | None = None,
    blocking: bool = False,
) -> BaseScheduler:
    scheduler: BaseScheduler = BlockingScheduler(timezone="UTC") if blocking else BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        run_refresh_job,
        IntervalTrigger(minutes=refresh_minutes or settings.snapshot.refresh_minutes),
        args=[refresher],
        id=REFRESH_JOB_ID,
        max_instances=1,
        coalesce=True,
        next_run_time=datetime.now(timezone.utc),
    )
    return scheduler


def run_once() -> None:
    outcome = build_refresher().refresh()
    logger.info("Snapshot refresh: %s", json.dumps(asdict(outcome)))


def main() -> None:
    logging.basicConfig(level=logging.INFO, handlers=[logging.StreamHandler(sys.stdout)])

    if len(sys.argv) > 1 and sys.argv[1] == "run-once":
        logger.info("Running snapshot refresh once")
        run_once()
        return

    scheduler = configure_scheduler(build_refresher(), blocking=True)
    logger.info("Starting snapshot refresh scheduler")
    scheduler.start()


if __name__ == "__main__":
    main()
