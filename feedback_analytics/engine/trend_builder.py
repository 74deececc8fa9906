"""
Metric Trend Builder: period-over-period deltas for a metric series.

Turns an ascending sequence of metric snapshots into trend points of the
same length and order. The first point always has a zero delta; every later
point carries the absolute and percentage change from its predecessor.
"""

from typing import Iterable

import structlog

from feedback_analytics.models.metrics import MetricSnapshot, TrendPoint

from .comparison import percentage_change
from .period_formatter import label

logger = structlog.get_logger()


def build_trend(snapshots: Iterable[MetricSnapshot], sort: bool = False) -> list[TrendPoint]:
    """
    Build a trend series from metric snapshots.

    Args:
        snapshots: Snapshots ordered ascending by period_start
        sort: Sort by period_start first, for callers that cannot
            guarantee ordering

    Returns:
        One TrendPoint per snapshot, in input order
    """
    series = list(snapshots)
    if sort:
        series.sort(key=lambda s: s.period_start)

    points: list[TrendPoint] = []
    previous_value = None
    for snapshot in series:
        if previous_value is None:
            change = 0.0
            change_pct = 0.0
        else:
            change = snapshot.value - previous_value
            change_pct = percentage_change(change, previous_value)

        points.append(
            TrendPoint(
                period=label(snapshot.period_start, snapshot.period_type),
                value=snapshot.value,
                change=change,
                change_percentage=change_pct,
            )
        )
        previous_value = snapshot.value

    logger.debug("trend_built", points=len(points))
    return points
