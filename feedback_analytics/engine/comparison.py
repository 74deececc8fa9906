"""
Metric Comparison Calculator: delta between two metric values.

Total over its inputs: a missing side or a zero previous value yields a
zero change instead of an error or an undefined percentage.
"""

from typing import Optional, Union

from feedback_analytics.models.metrics import ComparisonResult, MetricSnapshot

MetricInput = Union[MetricSnapshot, int, float, None]


def percentage_change(change: float, previous: float) -> float:
    """Change relative to previous, in percent; 0 when previous is 0."""
    if previous == 0:
        return 0.0
    return (change / previous) * 100


def _value_of(metric: MetricInput) -> Optional[float]:
    if metric is None:
        return None
    if isinstance(metric, MetricSnapshot):
        return metric.value
    return float(metric)


def compare(current: MetricInput = None, previous: MetricInput = None) -> ComparisonResult:
    """
    Compare a current metric value against a previous one.

    Args:
        current: Current snapshot or raw value (optional)
        previous: Previous snapshot or raw value (optional)

    Returns:
        ComparisonResult carrying whichever inputs were present. change and
        change_percentage are 0 unless both values are present.

    Example:
        >>> compare(20, 15).change
        5.0
    """
    current_value = _value_of(current)
    previous_value = _value_of(previous)

    change = 0.0
    change_pct = 0.0
    if current_value is not None and previous_value is not None:
        change = current_value - previous_value
        change_pct = percentage_change(change, previous_value)

    return ComparisonResult(
        current=current if isinstance(current, MetricSnapshot) else None,
        previous=previous if isinstance(previous, MetricSnapshot) else None,
        current_value=current_value,
        previous_value=previous_value,
        change=change,
        change_percentage=change_pct,
    )
