"""
Abstract storage interface for the analytics and report services.

Defines the two collaborator contracts the engine depends on:

- Report-definition store: CRUD on report definitions plus the due-report
  query and the atomic schedule update used by the dispatcher
- Metric store: metric snapshots queried by name and period, listed,
  fetched and deleted by id
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from feedback_analytics.models.enums import (
    MetricCategory,
    PeriodType,
    ReportType,
    ScheduleUpdateOutcome,
)
from feedback_analytics.models.metrics import MetricSnapshot
from feedback_analytics.models.reports import ReportDefinition
from feedback_analytics.models.schedules import ScheduleDescriptor


class StorageBackend(ABC):
    """
    Abstract base class for all storage implementations.

    Implementations should ensure:
    - Thread safety for concurrent access
    - mark_generated is one atomic compare-and-set write
    - find_snapshots returns rows ascending by period_start
    """

    # =========================================================================
    # Report Definitions
    # =========================================================================

    @abstractmethod
    def write_report(self, report: ReportDefinition) -> str:
        """
        Insert a new report definition.

        Args:
            report: Report definition to persist

        Returns:
            ID of the stored report

        Raises:
            StorageError: If write operation fails
        """
        pass

    @abstractmethod
    def read_report(self, report_id: str) -> Optional[ReportDefinition]:
        """
        Read a single report definition.

        Args:
            report_id: ID of the report

        Returns:
            ReportDefinition if found, None otherwise
        """
        pass

    @abstractmethod
    def read_reports(
        self,
        organization_id: str,
        report_type: Optional[ReportType] = None,
    ) -> list[ReportDefinition]:
        """
        Read all report definitions of an organization, newest first.

        Args:
            organization_id: Owning organization
            report_type: Optional filter by report type

        Returns:
            List of report definitions
        """
        pass

    @abstractmethod
    def update_report(self, report_id: str, **fields: Any) -> bool:
        """
        Update whitelisted fields of a report definition.

        ``updated_at`` is only changed when the caller passes it.

        Args:
            report_id: ID of the report
            **fields: Column values to set (schedule given as a descriptor)

        Returns:
            True if the report exists and was updated

        Raises:
            ValueError: If a field is not updatable
            StorageError: If the update fails
        """
        pass

    @abstractmethod
    def delete_report(self, report_id: str) -> bool:
        """
        Delete a report definition.

        Returns:
            True if a report was deleted
        """
        pass

    @abstractmethod
    def find_due_reports(
        self,
        now: datetime,
        organization_id: Optional[str] = None,
    ) -> list[ReportDefinition]:
        """
        Find active reports whose next_generation_at is at or before now.

        Args:
            now: Poll instant
            organization_id: Restrict to one organization; None for all

        Returns:
            Due report definitions ordered by next_generation_at
        """
        pass

    @abstractmethod
    def mark_generated(
        self,
        report_id: str,
        last_generated_at: datetime,
        next_generation_at: Optional[datetime],
        expected_next_generation_at: Optional[datetime],
        expected_schedule: Optional[ScheduleDescriptor],
    ) -> ScheduleUpdateOutcome:
        """
        Record a successful generation and the next fire-time.

        Compare-and-set: the write only happens while the stored schedule and
        next_generation_at still equal the values the caller generated from.
        last_generated_at, next_generation_at and updated_at are written
        together or not at all; updated_at takes last_generated_at.

        Args:
            report_id: ID of the generated report
            last_generated_at: Instant of the generation
            next_generation_at: Next fire-time, None for manual schedules
            expected_next_generation_at: next_generation_at observed before building
            expected_schedule: Schedule observed before building

        Returns:
            UPDATED, NOT_FOUND if the report is gone, or SUPERSEDED if its
            schedule changed in the meantime
        """
        pass

    # =========================================================================
    # Metric Snapshots
    # =========================================================================

    @abstractmethod
    def write_metric_snapshots(self, snapshots: list[MetricSnapshot]) -> int:
        """
        Append metric snapshots.

        Returns:
            Count of snapshots written
        """
        pass

    @abstractmethod
    def read_metric(self, metric_id: str) -> Optional[MetricSnapshot]:
        """
        Read a single metric snapshot.

        Returns:
            MetricSnapshot if found, None otherwise
        """
        pass

    @abstractmethod
    def list_metrics(
        self,
        organization_id: str,
        name: Optional[str] = None,
        category: Optional[MetricCategory] = None,
        period_type: Optional[PeriodType] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[MetricSnapshot]:
        """
        Read metric snapshots of an organization, most recent period first.

        Args:
            organization_id: Owning organization
            name: Optional filter by metric name
            category: Optional filter by category
            period_type: Optional filter by granularity
            start: Keep snapshots whose period starts at or after start
            end: Keep snapshots whose period starts at or before end

        Returns:
            Snapshots descending by period_start, then calculated_at
        """
        pass

    @abstractmethod
    def delete_metric(self, metric_id: str) -> bool:
        """
        Delete a metric snapshot.

        Returns:
            True if a snapshot was deleted
        """
        pass

    @abstractmethod
    def find_snapshots(
        self,
        organization_id: str,
        metric_name: str,
        period_type: PeriodType,
        limit: Optional[int] = None,
    ) -> list[MetricSnapshot]:
        """
        Read snapshots of one metric at one granularity.

        Args:
            organization_id: Owning organization
            metric_name: Metric name
            period_type: Period granularity
            limit: Keep only the most recent N periods

        Returns:
            Snapshots ascending by period_start
        """
        pass

    @abstractmethod
    def find_snapshot_in_period(
        self,
        organization_id: str,
        metric_name: str,
        start: datetime,
        end: datetime,
    ) -> Optional[MetricSnapshot]:
        """
        Find the latest snapshot of a metric whose period starts in [start, end].

        Returns:
            Most recently calculated matching snapshot, or None
        """
        pass
