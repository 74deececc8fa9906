"""
Report Service: report definitions, manual generation and scheduled runs.

Validates report requests (including schedule descriptors) before anything
is stored, derives next_generation_at from the schedule whenever it changes,
and delegates scheduled runs to the ReportGenerationDispatcher.
"""

from datetime import datetime
from typing import Callable, Iterable, Optional

import structlog

from feedback_analytics.engine.clock import Clock, SystemClock
from feedback_analytics.engine.dispatcher import ReportGenerationDispatcher
from feedback_analytics.engine.report_builder import ReportBuilder
from feedback_analytics.engine.schedule_calculator import next_fire_time
from feedback_analytics.errors import GenerationError, ReportNotFoundError, ReportValidationError
from feedback_analytics.models.enums import (
    PeriodType,
    ReportFormat,
    ReportType,
    ScheduleUpdateOutcome,
)
from feedback_analytics.models.reports import (
    CreateReportRequest,
    DispatchResult,
    ReportDefinition,
    ReportGeneratedEvent,
    UpdateReportRequest,
)
from feedback_analytics.models.schedules import ScheduleDescriptor, validate_schedule
from feedback_analytics.storage.base import StorageBackend

logger = structlog.get_logger()

EventHandler = Callable[[ReportGeneratedEvent], None]


def _parse_enum(enum_cls, value: str, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise ReportValidationError(f"Invalid report {label}: {value}", field=label) from None


def validate_report_filters(filters: dict) -> None:
    """
    Validate the filters read by the report builder.

    ``periodType`` must name a period granularity and ``periods`` must be a
    positive integer. Other keys are passed through untouched.

    Raises:
        ReportValidationError: If either filter is malformed
    """
    period_type = filters.get("periodType")
    if period_type is not None:
        try:
            PeriodType(period_type)
        except (ValueError, TypeError):
            raise ReportValidationError(
                f"Invalid period type: {period_type}", field="filters.periodType"
            ) from None

    periods = filters.get("periods")
    if periods is not None and (
        isinstance(periods, bool) or not isinstance(periods, int) or periods < 1
    ):
        raise ReportValidationError(
            "Periods must be a positive integer", field="filters.periods"
        )


def validate_report_request(request: CreateReportRequest) -> Optional[ScheduleDescriptor]:
    """
    Validate a report creation request.

    Args:
        request: Incoming request payload

    Returns:
        The parsed schedule descriptor, or None when no schedule is given

    Raises:
        ReportValidationError: On the first invalid field
    """
    _parse_enum(ReportType, request.type, "type")
    _parse_enum(ReportFormat, request.format, "format")

    if not request.name or not request.name.strip():
        raise ReportValidationError("Report name is required", field="name")
    if not request.metrics:
        raise ReportValidationError("At least one metric is required", field="metrics")
    if not request.recipients:
        raise ReportValidationError("At least one recipient is required", field="recipients")
    validate_report_filters(request.filters)

    if request.schedule:
        return validate_schedule(request.schedule)
    return None


class ReportService:
    """
    Manages report definitions and their generation.

    Attributes:
        storage: Report-definition store
        builder: Report builder used for manual and scheduled generation
        clock: Time source for schedule derivation
        dispatcher: Dispatcher used for scheduled runs
        event_handlers: Callbacks receiving every generated event
    """

    def __init__(
        self,
        storage: StorageBackend,
        builder: ReportBuilder,
        clock: Optional[Clock] = None,
        max_workers: int = 1,
        event_handlers: Optional[Iterable[EventHandler]] = None,
    ):
        self.storage = storage
        self.builder = builder
        self.clock = clock or SystemClock()
        self.dispatcher = ReportGenerationDispatcher(
            storage=storage,
            builder=builder,
            clock=self.clock,
            max_workers=max_workers,
        )
        self.event_handlers = list(event_handlers or [])
        self.logger = structlog.get_logger()

    # =========================================================================
    # Definitions
    # =========================================================================

    def create_report(
        self,
        organization_id: str,
        request: CreateReportRequest,
        created_by: str,
    ) -> ReportDefinition:
        """
        Validate and store a new report definition.

        Raises:
            ReportValidationError: If the request or its schedule is malformed
        """
        schedule = validate_report_request(request)
        now = self.clock.now()

        report = ReportDefinition(
            organization_id=organization_id,
            name=request.name.strip(),
            description=request.description,
            type=ReportType(request.type),
            format=ReportFormat(request.format),
            schedule=schedule,
            filters=request.filters,
            metrics=request.metrics,
            recipients=request.recipients,
            is_active=True,
            next_generation_at=next_fire_time(now, schedule),
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        self.storage.write_report(report)

        self.logger.info(
            "report_created",
            report_id=report.id,
            organization_id=organization_id,
            created_by=created_by,
            next_generation_at=report.next_generation_at.isoformat()
            if report.next_generation_at
            else None,
        )
        return report

    def get_report(self, report_id: str) -> ReportDefinition:
        """
        Raises:
            ReportNotFoundError: If the report does not exist
        """
        report = self.storage.read_report(report_id)
        if report is None:
            raise ReportNotFoundError(report_id)
        return report

    def list_reports(
        self,
        organization_id: str,
        report_type: Optional[ReportType] = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict:
        """Paginated report definitions of an organization."""
        page = max(1, page)
        limit = max(1, min(100, limit))

        reports = self.storage.read_reports(organization_id, report_type=report_type)
        total = len(reports)
        offset = (page - 1) * limit

        return {
            "reports": reports[offset : offset + limit],
            "total": total,
            "page": page,
            "limit": limit,
            "has_next": page * limit < total,
            "has_prev": page > 1,
        }

    def update_report(
        self,
        report_id: str,
        updates: UpdateReportRequest,
        requesting_user_id: str,
    ) -> ReportDefinition:
        """
        Apply a partial update. A new schedule recomputes next_generation_at.

        Raises:
            ReportNotFoundError: If the report does not exist
            ReportValidationError: If an updated field is malformed
        """
        self.get_report(report_id)

        fields: dict = {}
        if updates.name is not None:
            if not updates.name.strip():
                raise ReportValidationError("Report name is required", field="name")
            fields["name"] = updates.name.strip()
        if updates.description is not None:
            fields["description"] = updates.description
        if updates.type is not None:
            fields["type"] = _parse_enum(ReportType, updates.type, "type")
        if updates.format is not None:
            fields["format"] = _parse_enum(ReportFormat, updates.format, "format")
        if updates.filters is not None:
            validate_report_filters(updates.filters)
            fields["filters"] = updates.filters
        if updates.metrics is not None:
            if not updates.metrics:
                raise ReportValidationError("At least one metric is required", field="metrics")
            fields["metrics"] = updates.metrics
        if updates.recipients is not None:
            if not updates.recipients:
                raise ReportValidationError("At least one recipient is required", field="recipients")
            fields["recipients"] = updates.recipients
        if updates.schedule is not None:
            schedule = validate_schedule(updates.schedule)
            fields["schedule"] = schedule
            fields["next_generation_at"] = next_fire_time(self.clock.now(), schedule)

        if fields:
            fields["updated_at"] = self.clock.now()
            self.storage.update_report(report_id, **fields)

        self.logger.info(
            "report_updated",
            report_id=report_id,
            updated_by=requesting_user_id,
            fields=sorted(fields),
        )
        return self.get_report(report_id)

    def activate_report(self, report_id: str, requesting_user_id: str) -> ReportDefinition:
        return self._set_active(report_id, True, requesting_user_id)

    def deactivate_report(self, report_id: str, requesting_user_id: str) -> ReportDefinition:
        return self._set_active(report_id, False, requesting_user_id)

    def _set_active(self, report_id: str, active: bool, requesting_user_id: str) -> ReportDefinition:
        if not self.storage.update_report(
            report_id, is_active=active, updated_at=self.clock.now()
        ):
            raise ReportNotFoundError(report_id)
        self.logger.info(
            "report_activated" if active else "report_deactivated",
            report_id=report_id,
            changed_by=requesting_user_id,
        )
        return self.get_report(report_id)

    def delete_report(self, report_id: str, requesting_user_id: str) -> None:
        if not self.storage.delete_report(report_id):
            raise ReportNotFoundError(report_id)
        self.logger.info("report_deleted", report_id=report_id, deleted_by=requesting_user_id)

    # =========================================================================
    # Generation
    # =========================================================================

    def generate_report(self, report_id: str, requesting_user_id: str) -> ReportGeneratedEvent:
        """
        Generate a report on demand, whether or not it is due.

        The schedule is advanced from the generation instant only after the
        build succeeds. If the schedule was edited while the report was
        building, the edit wins: only last_generated_at is recorded.

        Raises:
            ReportNotFoundError: If the report does not exist
            GenerationError: If the next fire-time or the build fails
        """
        report = self.get_report(report_id)
        now = self.clock.now()

        try:
            next_at = next_fire_time(now, report.schedule)
            self.builder.build(report.id)
        except Exception as e:
            self.logger.error(
                "report_generation_failed",
                report_id=report.id,
                generated_by=requesting_user_id,
                error=str(e),
            )
            raise GenerationError(report.id, e) from e

        outcome = self.storage.mark_generated(
            report.id,
            last_generated_at=now,
            next_generation_at=next_at,
            expected_next_generation_at=report.next_generation_at,
            expected_schedule=report.schedule,
        )
        if outcome == ScheduleUpdateOutcome.NOT_FOUND:
            raise ReportNotFoundError(report.id)
        if outcome == ScheduleUpdateOutcome.SUPERSEDED:
            self.logger.warning("report_schedule_superseded", report_id=report.id)
            self.storage.update_report(report.id, last_generated_at=now, updated_at=now)
            next_at = self.get_report(report.id).next_generation_at

        event = ReportGeneratedEvent(report_id=report.id, generated_at=now, next_generation_at=next_at)
        self.logger.info(
            "report_generated",
            report_id=report.id,
            generated_by=requesting_user_id,
            generated_at=now.isoformat(),
        )
        self._publish([event])
        return event

    def process_scheduled_reports(
        self,
        now: Optional[datetime] = None,
        organization_id: Optional[str] = None,
    ) -> DispatchResult:
        """
        Generate every due report and publish the resulting events.

        Args:
            now: Poll instant; defaults to the service clock
            organization_id: Only process this organization's reports;
                None processes every organization
        """
        result = self.dispatcher.process_due(now, organization_id=organization_id)
        self._publish(result.events)

        self.logger.info(
            "scheduled_reports_processed",
            organization_id=organization_id,
            processed=result.processed,
            failed=[f.id for f in result.failed],
        )
        return result

    def _publish(self, events: list[ReportGeneratedEvent]) -> None:
        for event in events:
            for handler in self.event_handlers:
                try:
                    handler(event)
                except Exception as e:
                    self.logger.error(
                        "report_event_handler_failed",
                        report_id=event.report_id,
                        error=str(e),
                    )
