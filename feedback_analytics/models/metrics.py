"""
Metric snapshot, trend and comparison models.

Snapshots are immutable once produced. Trend points and comparison results
are derived values and are never persisted by the analytics engine.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .enums import MetricCategory, MetricType, PeriodType


class MetricSnapshot(BaseModel):
    """
    A metric value aggregated over one period.

    Attributes:
        id: Unique identifier for this snapshot
        organization_id: Tenant that owns the metric
        name: Metric name (e.g., "feedback_completion_rate")
        value: Aggregated numeric value
        period_type: Aggregation granularity
        period_start: Start of the aggregated period
        period_end: End of the aggregated period
        calculated_at: When the value was computed
        category: Functional area of the metric
        metric_type: How the value was aggregated
        unit: Optional display unit
        description: Optional human-readable description
        metadata: Free-form context (cycle, department, source)
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"metric_{uuid4().hex[:12]}")
    organization_id: Optional[str] = Field(default=None, description="Owning organization")
    name: str = Field(description="Metric name")
    value: float = Field(description="Aggregated metric value")
    period_type: PeriodType = Field(description="Aggregation granularity")
    period_start: datetime = Field(description="Start of the aggregated period")
    period_end: datetime = Field(description="End of the aggregated period")
    calculated_at: datetime = Field(
        default_factory=datetime.utcnow, description="When the value was computed"
    )
    category: MetricCategory = Field(default=MetricCategory.SYSTEM)
    metric_type: MetricType = Field(default=MetricType.COUNT)
    unit: Optional[str] = None
    description: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def validate_name_not_empty(cls, v: str) -> str:
        """Ensure metric name is not empty."""
        if not v or not v.strip():
            raise ValueError("Metric name must not be empty")
        return v.strip()

    @model_validator(mode="after")
    def validate_period_bounds(self) -> "MetricSnapshot":
        """Ensure the period does not end before it starts."""
        if self.period_end < self.period_start:
            raise ValueError("period_end must not be before period_start")
        return self


class TrendPoint(BaseModel):
    """One period's value and its delta from the preceding period."""

    period: str = Field(description="Display label for the period")
    value: float
    change: float = 0.0
    change_percentage: float = 0.0


class ComparisonResult(BaseModel):
    """
    Delta between a current and a previous metric value.

    ``change`` and ``change_percentage`` are always numbers; they are 0 when
    either side is missing or the previous value is zero.
    """

    current: Optional[MetricSnapshot] = None
    previous: Optional[MetricSnapshot] = None
    current_value: Optional[float] = None
    previous_value: Optional[float] = None
    change: float = 0.0
    change_percentage: float = 0.0


class MetricFilters(BaseModel):
    """Optional narrowing of a metric listing. Unset fields do not filter."""

    name: Optional[str] = None
    category: Optional[MetricCategory] = None
    period_type: Optional[PeriodType] = None
    start: Optional[datetime] = Field(default=None, description="Earliest period_start")
    end: Optional[datetime] = Field(default=None, description="Latest period_start")
