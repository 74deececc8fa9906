"""
Analytics Service: metric recording, trends and period comparisons.

Reads metric snapshots from the metric store and hands them to the pure
trend and comparison functions of the engine. Missing data yields empty
trends or zero deltas, never an error. Snapshots can also be listed,
fetched and deleted individually.
"""

from datetime import datetime
from typing import Any, Optional

import structlog

from feedback_analytics.engine.comparison import compare
from feedback_analytics.engine.trend_builder import build_trend
from feedback_analytics.models.enums import MetricCategory, MetricType, PeriodType
from feedback_analytics.errors import MetricNotFoundError
from feedback_analytics.models.metrics import (
    ComparisonResult,
    MetricFilters,
    MetricSnapshot,
    TrendPoint,
)
from feedback_analytics.storage.base import StorageBackend

logger = structlog.get_logger()

Period = tuple[datetime, datetime]


class AnalyticsService:
    """
    Metric trends and comparisons for one storage backend.

    Attributes:
        storage: Metric store
        default_periods: Trend length when the caller does not specify one
    """

    def __init__(self, storage: StorageBackend, default_periods: int = 12):
        self.storage = storage
        self.default_periods = default_periods
        self.logger = structlog.get_logger()

    def record_metric(
        self,
        organization_id: str,
        name: str,
        value: float,
        period_type: PeriodType,
        period_start: datetime,
        period_end: datetime,
        category: MetricCategory = MetricCategory.SYSTEM,
        metric_type: MetricType = MetricType.COUNT,
        unit: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> MetricSnapshot:
        """Store one metric snapshot."""
        snapshot = MetricSnapshot(
            organization_id=organization_id,
            name=name,
            value=value,
            period_type=period_type,
            period_start=period_start,
            period_end=period_end,
            category=category,
            metric_type=metric_type,
            unit=unit,
            description=description,
            metadata=metadata or {},
        )
        self.storage.write_metric_snapshots([snapshot])
        self.logger.info(
            "metric_recorded",
            organization_id=organization_id,
            metric_name=name,
            period_type=snapshot.period_type.value,
        )
        return snapshot

    def list_metrics(
        self,
        organization_id: str,
        filters: Optional[MetricFilters] = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict:
        """Paginated metric snapshots of an organization, most recent period first."""
        filters = filters or MetricFilters()
        page = max(1, page)
        limit = max(1, min(100, limit))

        metrics = self.storage.list_metrics(
            organization_id,
            name=filters.name,
            category=filters.category,
            period_type=filters.period_type,
            start=filters.start,
            end=filters.end,
        )
        total = len(metrics)
        offset = (page - 1) * limit

        return {
            "metrics": metrics[offset : offset + limit],
            "total": total,
            "page": page,
            "limit": limit,
            "has_next": page * limit < total,
            "has_prev": page > 1,
        }

    def get_metric(self, metric_id: str) -> MetricSnapshot:
        """
        Raises:
            MetricNotFoundError: If the snapshot does not exist
        """
        metric = self.storage.read_metric(metric_id)
        if metric is None:
            raise MetricNotFoundError(metric_id)
        return metric

    def delete_metric(self, metric_id: str) -> None:
        """
        Raises:
            MetricNotFoundError: If the snapshot does not exist
        """
        if not self.storage.delete_metric(metric_id):
            raise MetricNotFoundError(metric_id)
        self.logger.info("metric_deleted", metric_id=metric_id)

    def get_metric_trends(
        self,
        organization_id: str,
        metric_name: str,
        period_type: PeriodType,
        periods: Optional[int] = None,
    ) -> list[TrendPoint]:
        """
        Trend of a metric over its most recent periods.

        Args:
            organization_id: Owning organization
            metric_name: Metric to trend
            period_type: Period granularity
            periods: Number of most recent periods (default_periods if omitted)

        Returns:
            Trend points ascending by period
        """
        snapshots = self.storage.find_snapshots(
            organization_id=organization_id,
            metric_name=metric_name,
            period_type=PeriodType(period_type),
            limit=periods or self.default_periods,
        )
        trend = build_trend(snapshots, sort=True)

        self.logger.info(
            "metric_trend_computed",
            organization_id=organization_id,
            metric_name=metric_name,
            period_type=PeriodType(period_type).value,
            points=len(trend),
        )
        return trend

    def get_metric_comparison(
        self,
        organization_id: str,
        metric_name: str,
        current_period: Period,
        previous_period: Period,
    ) -> ComparisonResult:
        """
        Compare a metric between two periods.

        Args:
            organization_id: Owning organization
            metric_name: Metric to compare
            current_period: (start, end) of the current period
            previous_period: (start, end) of the previous period

        Returns:
            ComparisonResult; zero deltas when either period has no snapshot
        """
        current = self.storage.find_snapshot_in_period(
            organization_id, metric_name, *current_period
        )
        previous = self.storage.find_snapshot_in_period(
            organization_id, metric_name, *previous_period
        )
        result = compare(current, previous)

        self.logger.info(
            "metric_comparison_computed",
            organization_id=organization_id,
            metric_name=metric_name,
            has_current=current is not None,
            has_previous=previous is not None,
            change_pct=round(result.change_percentage, 2),
        )
        return result
