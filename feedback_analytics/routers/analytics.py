"""
Metric analytics router.

Wired to:
- AnalyticsService for metric recording, listing, trends and period comparisons
"""

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from feedback_analytics.auth.dependencies import get_current_organization_id
from feedback_analytics.errors import MetricNotFoundError
from feedback_analytics.models.enums import MetricCategory, MetricType, PeriodType
from feedback_analytics.models.metrics import MetricFilters, MetricSnapshot
from feedback_analytics.services import get_analytics_service
from feedback_analytics.services.analytics_service import AnalyticsService
from feedback_analytics.utils.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


class RecordMetricRequest(BaseModel):
    """Record metric request."""

    name: str = Field(..., min_length=1)
    value: float
    period_type: PeriodType
    period_start: datetime
    period_end: datetime
    category: MetricCategory = MetricCategory.SYSTEM
    metric_type: MetricType = MetricType.COUNT
    unit: Optional[str] = None
    description: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


def _owned_metric(service: AnalyticsService, metric_id: str, organization_id: str) -> MetricSnapshot:
    try:
        metric = service.get_metric(metric_id)
    except MetricNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    if metric.organization_id != organization_id:
        raise HTTPException(status_code=404, detail=f"Metric {metric_id} not found")
    return metric


@router.post("/metrics")
async def record_metric(
    request: RecordMetricRequest,
    organization_id: str = Depends(get_current_organization_id),
    service: AnalyticsService = Depends(get_analytics_service),
):
    try:
        snapshot = service.record_metric(organization_id=organization_id, **request.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return {"success": True, "data": snapshot.model_dump(mode="json")}


@router.get("/metrics/{metric_name}/trends")
async def get_metric_trends(
    metric_name: str,
    period_type: PeriodType = PeriodType.MONTHLY,
    periods: Optional[int] = Query(default=None, ge=1, le=120),
    organization_id: str = Depends(get_current_organization_id),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Period-over-period trend of a metric."""
    trend = service.get_metric_trends(organization_id, metric_name, period_type, periods)
    return {"success": True, "data": [p.model_dump(mode="json") for p in trend]}


@router.get("/metrics/{metric_name}/comparison")
async def get_metric_comparison(
    metric_name: str,
    current_start: datetime,
    current_end: datetime,
    previous_start: datetime,
    previous_end: datetime,
    organization_id: str = Depends(get_current_organization_id),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Compare a metric between two periods."""
    if current_end < current_start or previous_end < previous_start:
        raise HTTPException(status_code=422, detail="Period end must not precede its start")

    result = service.get_metric_comparison(
        organization_id,
        metric_name,
        current_period=(current_start, current_end),
        previous_period=(previous_start, previous_end),
    )
    return {"success": True, "data": result.model_dump(mode="json")}


@router.get("/metrics")
async def list_metrics(
    name: Optional[str] = None,
    category: Optional[MetricCategory] = None,
    period_type: Optional[PeriodType] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    page: int = 1,
    limit: int = 20,
    organization_id: str = Depends(get_current_organization_id),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """List metric snapshots of the caller's organization."""
    filters = MetricFilters(
        name=name, category=category, period_type=period_type, start=start, end=end
    )
    listing = service.list_metrics(organization_id, filters, page=page, limit=limit)
    return {
        "success": True,
        "data": [m.model_dump(mode="json") for m in listing["metrics"]],
        "pagination": {
            "page": listing["page"],
            "limit": listing["limit"],
            "total_count": listing["total"],
            "has_next": listing["has_next"],
            "has_prev": listing["has_prev"],
        },
    }


@router.get("/metrics/{metric_id}")
async def get_metric(
    metric_id: str,
    organization_id: str = Depends(get_current_organization_id),
    service: AnalyticsService = Depends(get_analytics_service),
):
    metric = _owned_metric(service, metric_id, organization_id)
    return {"success": True, "data": metric.model_dump(mode="json")}


@router.delete("/metrics/{metric_id}")
async def delete_metric(
    metric_id: str,
    organization_id: str = Depends(get_current_organization_id),
    service: AnalyticsService = Depends(get_analytics_service),
):
    logger.info("metric_delete", organization_id=organization_id, metric_id=metric_id)
    _owned_metric(service, metric_id, organization_id)
    service.delete_metric(metric_id)
    return {"success": True, "data": {"id": metric_id, "deleted": True}}
