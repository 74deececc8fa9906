"""Report and analytics services composing the engine with storage."""

from functools import lru_cache

from feedback_analytics.config import get_settings
from feedback_analytics.engine.report_builder import MetricsReportBuilder
from feedback_analytics.storage import get_storage

from .analytics_service import AnalyticsService
from .report_service import ReportService, validate_report_request


@lru_cache
def get_report_service() -> ReportService:
    """Report service wired to the configured storage and builder."""
    settings = get_settings()
    storage = get_storage()
    builder = MetricsReportBuilder(
        storage=storage,
        output_dir=settings.report_output_dir,
        default_periods=settings.default_trend_periods,
    )
    return ReportService(
        storage=storage,
        builder=builder,
        max_workers=settings.report_dispatch_max_workers,
    )


@lru_cache
def get_analytics_service() -> AnalyticsService:
    """Analytics service wired to the configured storage."""
    settings = get_settings()
    return AnalyticsService(storage=get_storage(), default_periods=settings.default_trend_periods)


__all__ = [
    "AnalyticsService",
    "ReportService",
    "get_analytics_service",
    "get_report_service",
    "validate_report_request",
]
