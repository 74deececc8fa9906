"""
Pydantic v2 data models for the analytics and report services.

Model Organization:
    - enums: Enumeration types for frequencies, periods and report kinds
    - schedules: Tagged-union schedule descriptors and their validation
    - metrics: Metric snapshots, listing filters, trend points and comparison results
    - reports: Report definitions and dispatch results
"""

from .enums import (
    MetricCategory,
    MetricType,
    PeriodType,
    ReportFormat,
    ReportType,
    ScheduleFrequency,
    ScheduleUpdateOutcome,
)
from .metrics import ComparisonResult, MetricFilters, MetricSnapshot, TrendPoint
from .reports import (
    CreateReportRequest,
    DispatchResult,
    FailedReport,
    ReportDefinition,
    ReportGeneratedEvent,
    UpdateReportRequest,
)
from .schedules import (
    DailySchedule,
    ManualSchedule,
    MonthlySchedule,
    QuarterlySchedule,
    ScheduleDescriptor,
    WeeklySchedule,
    YearlySchedule,
    schedule_to_dict,
    validate_schedule,
)

__all__ = [
    "MetricCategory",
    "MetricType",
    "PeriodType",
    "ReportFormat",
    "ReportType",
    "ScheduleFrequency",
    "ScheduleUpdateOutcome",
    "ComparisonResult",
    "MetricFilters",
    "MetricSnapshot",
    "TrendPoint",
    "CreateReportRequest",
    "DispatchResult",
    "FailedReport",
    "ReportDefinition",
    "ReportGeneratedEvent",
    "UpdateReportRequest",
    "DailySchedule",
    "ManualSchedule",
    "MonthlySchedule",
    "QuarterlySchedule",
    "ScheduleDescriptor",
    "WeeklySchedule",
    "YearlySchedule",
    "schedule_to_dict",
    "validate_schedule",
]
