"""
Enumeration types for the analytics and report services.

All enums inherit from str to ensure JSON serialization compatibility
and to allow plain string values from storage or request payloads.
"""

from enum import Enum


class ScheduleFrequency(str, Enum):
    """Recurrence class of a scheduled report."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    MANUAL = "manual"


class PeriodType(str, Enum):
    """Aggregation granularity of a metric snapshot."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class ReportType(str, Enum):
    """Kind of report content."""

    CYCLE_SUMMARY = "cycle_summary"
    FEEDBACK_ANALYSIS = "feedback_analysis"
    USER_ENGAGEMENT = "user_engagement"
    NOTIFICATION_EFFECTIVENESS = "notification_effectiveness"
    CUSTOM = "custom"


class ReportFormat(str, Enum):
    """Output format requested for a report."""

    PDF = "pdf"
    EXCEL = "excel"
    CSV = "csv"
    JSON = "json"


class MetricCategory(str, Enum):
    """Functional area a metric belongs to."""

    CYCLE = "cycle"
    FEEDBACK = "feedback"
    NOTIFICATION = "notification"
    USER = "user"
    SYSTEM = "system"


class MetricType(str, Enum):
    """How a metric value was aggregated."""

    COUNT = "count"
    PERCENTAGE = "percentage"
    AVERAGE = "average"
    SUM = "sum"
    RATE = "rate"
    TREND = "trend"


class ScheduleUpdateOutcome(str, Enum):
    """Result of recording a generation against a report's schedule."""

    UPDATED = "updated"
    NOT_FOUND = "not_found"
    SUPERSEDED = "superseded"
