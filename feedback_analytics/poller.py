"""
Scheduled report poller.

Runs one dispatch batch per interval on an APScheduler BlockingScheduler.
A batch that raises (storage unavailable, builder misconfigured) is logged
and the next interval runs as usual. Overlapping runs are not started and
missed runs are collapsed into one.
"""

from datetime import datetime

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from feedback_analytics.services import get_report_service
from feedback_analytics.utils.logging import get_logger

logger = get_logger(__name__)

POLL_JOB_ID = "process_due_reports"


def run_once() -> int:
    """Run one dispatch batch over every organization. Returns the failure count."""
    result = get_report_service().process_scheduled_reports()
    for failure in result.failed:
        logger.warning("scheduled_report_failed", report_id=failure.id, error=failure.error)
    return len(result.failed)


def poll_job() -> None:
    """Scheduler job body; an error is logged so the following poll still runs."""
    try:
        run_once()
    except Exception as e:
        logger.error("scheduled_poll_failed", job_id=POLL_JOB_ID, error=str(e), exc_info=True)


def build_scheduler(interval_seconds: int) -> BlockingScheduler:
    """
    Create a scheduler that polls for due reports every ``interval_seconds``.

    The first poll runs immediately when the scheduler starts.
    """
    scheduler = BlockingScheduler()
    scheduler.add_job(
        poll_job,
        trigger=IntervalTrigger(seconds=interval_seconds),
        id=POLL_JOB_ID,
        name="Process due reports",
        max_instances=1,
        coalesce=True,
        next_run_time=datetime.now(),
    )
    return scheduler


def serve(interval_seconds: int) -> None:
    """Poll until interrupted."""
    scheduler = build_scheduler(interval_seconds)
    logger.info("report_poller_started", interval_seconds=interval_seconds)
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("report_poller_stopped")
