"""Escalation reconciler runner.

    python -m app.worker            # run forever, one pass every RECONCILE_INTERVAL_SECONDS
    python -m app.worker --once     # single pass, exit code 1 if any record failed
"""

from __future__ import annotations

import argparse
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.schedulers.base import BaseScheduler

from app.core.config import settings
from app.core.deps import build_dispatcher, build_store
from app.services.reconciler import FAILED, EscalationReconciler

logger = logging.getLogger(__name__)

JOB_ID = "escalation-reconciler"


def build_scheduler(
    reconciler: EscalationReconciler,
    interval_seconds: float,
    scheduler_class: type[BaseScheduler] = BackgroundScheduler,
) -> BaseScheduler:
    """Scheduler with one interval job running reconciler passes.

    A pass still running when the next one is due is not doubled up, and
    passes missed while the process was busy collapse into one.
    """
    scheduler = scheduler_class()
    scheduler.add_job(
        reconciler.run_once,
        "interval",
        seconds=interval_seconds,
        id=JOB_ID,
        max_instances=1,
        coalesce=True,
    )
    logger.info("Reconciler scheduled every %ss", interval_seconds)
    return scheduler


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="SafeWake escalation reconciler")
    parser.add_argument("--once", action="store_true", help="run a single pass and exit")
    parser.add_argument(
        "--interval",
        type=float,
        default=settings.reconcile_interval_seconds,
        help="seconds between passes",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    store = build_store()
    reconciler = EscalationReconciler(store, build_dispatcher(store))

    if args.once:
        report = reconciler.run_once()
        if report is None or report.load_error:
            return 1
        return 1 if report.count(FAILED) else 0

    scheduler = build_scheduler(reconciler, args.interval, BlockingScheduler)
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Reconciler stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
