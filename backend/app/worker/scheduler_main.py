"""Dedicated APScheduler worker process."""
from __future__ import annotations

import logging
import signal
import threading

from apscheduler.schedulers.background import BackgroundScheduler

from app.core.config import settings
from app.core.logging import configure_logging
from app.db.session import SessionLocal
from app.observability.metrics import log_metric
from app.services.progress_aggregator import reconcile_all_projects

logger = logging.getLogger(__name__)

RECONCILE_JOB_ID = "reconcile_project_progress"


def main() -> None:
    configure_logging(log_level=settings.log_level)
    logger.info("Scheduler worker starting (enabled=%s)", settings.scheduler_enabled)

    scheduler = BackgroundScheduler(timezone=settings.scheduler_timezone)

    if settings.scheduler_enabled:
        register_jobs(scheduler)
        scheduler.start()
        if settings.jobs_run_on_startup:
            logger.info("Running progress reconciliation once on startup")
            run_reconcile_job()
    else:
        logger.warning("Scheduler disabled via config; worker will idle")

    stop_event = threading.Event()

    def shutdown(signum, frame):  # pragma: no cover - signal handler
        logger.info("Scheduler worker shutting down (signal=%s)", signum)
        if scheduler.running:
            scheduler.shutdown(wait=False)
        stop_event.set()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        stop_event.wait()
    except KeyboardInterrupt:  # pragma: no cover - manual stop
        shutdown(signal.SIGINT, None)


def register_jobs(scheduler: BackgroundScheduler) -> None:
    scheduler.add_job(
        run_reconcile_job,
        trigger="interval",
        minutes=settings.reconcile_interval_minutes,
        id=RECONCILE_JOB_ID,
        replace_existing=True,
        coalesce=True,
        max_instances=1,
    )
    logger.info(
        "Registered progress reconciliation every %s minutes (%s)",
        settings.reconcile_interval_minutes,
        settings.scheduler_timezone,
    )


def run_reconcile_job(session_factory=SessionLocal) -> int:
    """Re-derive progress/status for every project with subtasks; returns how many changed."""
    session = session_factory()
    try:
        changed = reconcile_all_projects(session)
        logger.info("Progress reconciliation complete: projects_changed=%s", len(changed))
        log_metric("project.progress.reconciled", len(changed))
        return len(changed)
    except Exception:
        session.rollback()
        logger.exception("Progress reconciliation job failed")
        return 0
    finally:
        session.close()


if __name__ == "__main__":  # pragma: no cover - manual launch
    main()
