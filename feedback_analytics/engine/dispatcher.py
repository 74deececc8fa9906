"""
Report Generation Dispatcher: polls due reports and advances schedules.

One call to ``process_due`` is one batch:

1. Fetch active reports whose next_generation_at has arrived, optionally
   for a single organization
2. Compute each report's next fire-time, then build it through the
   report builder
3. On success, persist last_generated_at and the next fire-time together,
   provided the schedule is still the one the build started from, and
   record a generated event
4. On failure, record the error and leave the schedule untouched so the
   report is retried on the next poll

Failures are contained per report; one broken report never stops the rest
of the batch. The schedule is only advanced after a build has fully
succeeded, and the next fire-time is always strictly after the poll
instant, so back-to-back polls cannot fire the same report twice.

Generated events are returned to the caller rather than published here.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Optional

import structlog

from feedback_analytics.errors import GenerationError
from feedback_analytics.models.enums import ScheduleUpdateOutcome
from feedback_analytics.models.reports import (
    DispatchResult,
    FailedReport,
    ReportDefinition,
    ReportGeneratedEvent,
)
from feedback_analytics.storage.base import StorageBackend

from .clock import Clock, SystemClock
from .report_builder import ReportBuilder
from .schedule_calculator import next_fire_time

logger = structlog.get_logger()

_Outcome = tuple[Optional[ReportGeneratedEvent], Optional[FailedReport]]


class ReportGenerationDispatcher:
    """
    Generates every due report and moves its schedule forward.

    Attributes:
        storage: Report-definition store
        builder: Report builder invoked once per due report
        clock: Time source used when process_due is called without ``now``
        max_workers: Upper bound on concurrent builds within one batch

    Example:
        >>> dispatcher = ReportGenerationDispatcher(storage, builder)
        >>> result = dispatcher.process_due()
        >>> print(result.processed, [f.id for f in result.failed])
    """

    def __init__(
        self,
        storage: StorageBackend,
        builder: ReportBuilder,
        clock: Optional[Clock] = None,
        max_workers: int = 1,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.storage = storage
        self.builder = builder
        self.clock = clock or SystemClock()
        self.max_workers = max_workers
        self.logger = structlog.get_logger()

    def process_due(
        self,
        now: Optional[datetime] = None,
        organization_id: Optional[str] = None,
    ) -> DispatchResult:
        """
        Generate all reports due at ``now``.

        Args:
            now: Poll instant; defaults to the injected clock
            organization_id: Only generate this organization's reports;
                None processes every organization

        Returns:
            DispatchResult with the number of reports generated, the
            failures, and one event per generated report
        """
        now = now or self.clock.now()
        due = [
            r
            for r in self.storage.find_due_reports(now, organization_id=organization_id)
            if self._is_due(r, now, organization_id)
        ]

        self.logger.info(
            "report_dispatch_started",
            due_count=len(due),
            now=now.isoformat(),
            organization_id=organization_id,
        )

        if self.max_workers > 1 and len(due) > 1:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(due))) as pool:
                outcomes = list(pool.map(lambda r: self._process_one(r, now), due))
        else:
            outcomes = [self._process_one(report, now) for report in due]

        result = DispatchResult()
        for event, failure in outcomes:
            if event is not None:
                result.events.append(event)
                result.processed += 1
            if failure is not None:
                result.failed.append(failure)

        self.logger.info(
            "report_dispatch_complete",
            processed=result.processed,
            failed=len(result.failed),
        )
        return result

    def _is_due(
        self,
        report: ReportDefinition,
        now: datetime,
        organization_id: Optional[str],
    ) -> bool:
        return (
            report.is_active
            and report.next_generation_at is not None
            and report.next_generation_at <= now
            and (organization_id is None or report.organization_id == organization_id)
        )

    def _process_one(self, report: ReportDefinition, now: datetime) -> _Outcome:
        try:
            next_at = next_fire_time(now, report.schedule)
        except Exception as e:
            self.logger.error(
                "report_next_fire_time_failed",
                report_id=report.id,
                error=str(e),
            )
            return None, FailedReport(id=report.id, error=f"Next fire-time computation failed: {e}")

        try:
            self.builder.build(report.id)
        except Exception as e:
            error = GenerationError(report.id, e)
            self.logger.error(
                "report_generation_failed",
                report_id=report.id,
                error=str(error),
            )
            return None, FailedReport(id=report.id, error=str(e))

        try:
            outcome = self.storage.mark_generated(
                report.id,
                last_generated_at=now,
                next_generation_at=next_at,
                expected_next_generation_at=report.next_generation_at,
                expected_schedule=report.schedule,
            )
        except Exception as e:
            self.logger.error(
                "report_schedule_update_failed",
                report_id=report.id,
                error=str(e),
            )
            return None, FailedReport(id=report.id, error=f"Schedule update failed: {e}")

        if outcome == ScheduleUpdateOutcome.NOT_FOUND:
            self.logger.warning("report_vanished_during_dispatch", report_id=report.id)
            return None, FailedReport(id=report.id, error="Report no longer exists")

        if outcome == ScheduleUpdateOutcome.SUPERSEDED:
            self.logger.warning("report_schedule_superseded", report_id=report.id)
            return None, FailedReport(
                id=report.id, error="Report schedule changed during generation"
            )

        self.logger.info(
            "report_generated",
            report_id=report.id,
            generated_at=now.isoformat(),
            next_generation_at=next_at.isoformat() if next_at else None,
        )
        return ReportGeneratedEvent(
            report_id=report.id,
            generated_at=now,
            next_generation_at=next_at,
        ), None
