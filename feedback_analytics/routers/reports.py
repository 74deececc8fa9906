"""
Report definitions and generation router.

Wired to:
- ReportService for report CRUD and validation
- ReportGenerationDispatcher (through the service) for scheduled runs
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from feedback_analytics.auth.dependencies import get_current_organization_id, get_current_user_id
from feedback_analytics.errors import GenerationError, ReportNotFoundError, ReportValidationError
from feedback_analytics.models.enums import ReportType
from feedback_analytics.models.reports import (
    CreateReportRequest,
    ReportDefinition,
    UpdateReportRequest,
)
from feedback_analytics.services import get_report_service
from feedback_analytics.services.report_service import ReportService
from feedback_analytics.utils.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()


def _validation_error(e: ReportValidationError) -> HTTPException:
    return HTTPException(status_code=422, detail={"message": e.message, "field": e.field})


def _owned_report(service: ReportService, report_id: str, organization_id: str) -> ReportDefinition:
    try:
        report = service.get_report(report_id)
    except ReportNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    if report.organization_id != organization_id:
        raise HTTPException(status_code=404, detail=f"Report {report_id} not found")
    return report


@router.get("/")
async def list_reports(
    organization_id: str = Depends(get_current_organization_id),
    report_type: Optional[ReportType] = Query(default=None, alias="type"),
    page: int = 1,
    limit: int = 20,
    service: ReportService = Depends(get_report_service),
):
    """List report definitions of the caller's organization."""
    logger.info("reports_list", organization_id=organization_id, page=page)

    listing = service.list_reports(organization_id, report_type=report_type, page=page, limit=limit)
    return {
        "success": True,
        "data": [r.model_dump(mode="json") for r in listing["reports"]],
        "pagination": {
            "page": listing["page"],
            "limit": listing["limit"],
            "total_count": listing["total"],
            "has_next": listing["has_next"],
            "has_prev": listing["has_prev"],
        },
    }


@router.post("/")
async def create_report(
    request: CreateReportRequest,
    organization_id: str = Depends(get_current_organization_id),
    user_id: str = Depends(get_current_user_id),
    service: ReportService = Depends(get_report_service),
):
    """Define a new report. Malformed schedules are rejected with 422."""
    logger.info("report_create", organization_id=organization_id, name=request.name)

    try:
        report = service.create_report(organization_id, request, created_by=user_id)
    except ReportValidationError as e:
        raise _validation_error(e)

    return {"success": True, "data": report.model_dump(mode="json")}


@router.post("/process-due")
async def process_due_reports(
    organization_id: str = Depends(get_current_organization_id),
    service: ReportService = Depends(get_report_service),
):
    """Run one scheduled-report batch now for the caller's organization."""
    logger.info("reports_process_due", organization_id=organization_id)

    result = service.process_scheduled_reports(organization_id=organization_id)
    return {"success": True, "data": result.model_dump(mode="json")}


@router.get("/{report_id}")
async def get_report(
    report_id: str,
    organization_id: str = Depends(get_current_organization_id),
    service: ReportService = Depends(get_report_service),
):
    report = _owned_report(service, report_id, organization_id)
    return {"success": True, "data": report.model_dump(mode="json")}


@router.patch("/{report_id}")
async def update_report(
    report_id: str,
    request: UpdateReportRequest,
    organization_id: str = Depends(get_current_organization_id),
    user_id: str = Depends(get_current_user_id),
    service: ReportService = Depends(get_report_service),
):
    """Update a report; a new schedule recomputes the next generation."""
    _owned_report(service, report_id, organization_id)

    try:
        report = service.update_report(report_id, request, requesting_user_id=user_id)
    except ReportValidationError as e:
        raise _validation_error(e)

    return {"success": True, "data": report.model_dump(mode="json")}


@router.delete("/{report_id}")
async def delete_report(
    report_id: str,
    organization_id: str = Depends(get_current_organization_id),
    user_id: str = Depends(get_current_user_id),
    service: ReportService = Depends(get_report_service),
):
    _owned_report(service, report_id, organization_id)
    service.delete_report(report_id, requesting_user_id=user_id)
    return {"success": True, "data": {"id": report_id, "deleted": True}}


@router.post("/{report_id}/activate")
async def activate_report(
    report_id: str,
    organization_id: str = Depends(get_current_organization_id),
    user_id: str = Depends(get_current_user_id),
    service: ReportService = Depends(get_report_service),
):
    _owned_report(service, report_id, organization_id)
    report = service.activate_report(report_id, requesting_user_id=user_id)
    return {"success": True, "data": report.model_dump(mode="json")}


@router.post("/{report_id}/deactivate")
async def deactivate_report(
    report_id: str,
    organization_id: str = Depends(get_current_organization_id),
    user_id: str = Depends(get_current_user_id),
    service: ReportService = Depends(get_report_service),
):
    _owned_report(service, report_id, organization_id)
    report = service.deactivate_report(report_id, requesting_user_id=user_id)
    return {"success": True, "data": report.model_dump(mode="json")}


@router.post("/{report_id}/generate")
async def generate_report(
    report_id: str,
    organization_id: str = Depends(get_current_organization_id),
    user_id: str = Depends(get_current_user_id),
    service: ReportService = Depends(get_report_service),
):
    """Generate a report immediately, regardless of its schedule."""
    _owned_report(service, report_id, organization_id)

    try:
        event = service.generate_report(report_id, requesting_user_id=user_id)
    except GenerationError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except ReportNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return {"success": True, "data": event.model_dump(mode="json")}
