"""
Report scheduling and metric analytics engine.

This package contains the pure calculation core used by the report and
analytics services:

- Period formatting: display labels per period granularity
- Trend building: period-over-period deltas for a metric series
- Comparison: delta and percentage change between two values
- Schedule calculation: next fire-time for a recurring report
- Dispatch: generating due reports and advancing their schedules

The formatting, trend, comparison and schedule functions are pure and hold
no state; the dispatcher is the only component that touches storage.
"""

__all__ = [
    "Clock",
    "FixedClock",
    "SystemClock",
    "MetricsReportBuilder",
    "ReportBuilder",
    "ReportGenerationDispatcher",
    "build_trend",
    "compare",
    "label",
    "next_fire_time",
]

from feedback_analytics.engine.clock import Clock, FixedClock, SystemClock
from feedback_analytics.engine.comparison import compare
from feedback_analytics.engine.dispatcher import ReportGenerationDispatcher
from feedback_analytics.engine.period_formatter import label
from feedback_analytics.engine.report_builder import MetricsReportBuilder, ReportBuilder
from feedback_analytics.engine.schedule_calculator import next_fire_time
from feedback_analytics.engine.trend_builder import build_trend
