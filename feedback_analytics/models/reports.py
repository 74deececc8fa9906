"""
Report definition and dispatch models.

A report definition is owned by the storage backend; the scheduler only
reads it and derives ``next_generation_at`` from its schedule.
"""

from datetime import datetime
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from .enums import ReportFormat, ReportType
from .schedules import ScheduleDescriptor, validate_schedule


class ReportDefinition(BaseModel):
    """
    A configured (optionally recurring) report.

    Attributes:
        id: Unique identifier for this report
        organization_id: Tenant that owns the report
        name: Display name
        description: Optional longer description
        type: Kind of report content
        format: Requested output format
        schedule: Recurrence descriptor, absent for ad-hoc reports
        filters: Free-form filters applied when building
        metrics: Metric names included in the report
        recipients: Delivery addresses
        is_active: Inactive reports are never due
        last_generated_at: Instant of the last successful generation
        next_generation_at: Instant at which the report becomes due
        created_by: User who defined the report
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    organization_id: str = Field(description="Owning organization")
    name: str = Field(description="Report name")
    description: Optional[str] = None
    type: ReportType = Field(default=ReportType.CUSTOM)
    format: ReportFormat = Field(default=ReportFormat.JSON)
    schedule: Optional[ScheduleDescriptor] = None
    filters: dict[str, Any] = Field(default_factory=dict)
    metrics: list[str] = Field(default_factory=list)
    recipients: list[str] = Field(default_factory=list)
    is_active: bool = True
    last_generated_at: Optional[datetime] = None
    next_generation_at: Optional[datetime] = None
    created_by: str = Field(default="system")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("schedule", mode="before")
    @classmethod
    def parse_schedule(cls, v: Any) -> Any:
        """Accept raw schedule mappings from storage."""
        if v is None or v == {}:
            return None
        return validate_schedule(v)


class CreateReportRequest(BaseModel):
    """Payload for defining a new report. Validated by the report service."""

    name: str = ""
    description: Optional[str] = None
    type: str = ReportType.CUSTOM.value
    format: str = ReportFormat.JSON.value
    schedule: Optional[dict[str, Any]] = None
    filters: dict[str, Any] = Field(default_factory=dict)
    metrics: list[str] = Field(default_factory=list)
    recipients: list[str] = Field(default_factory=list)


class UpdateReportRequest(BaseModel):
    """Partial update of a report definition; unset fields are left unchanged."""

    name: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    format: Optional[str] = None
    schedule: Optional[dict[str, Any]] = None
    filters: Optional[dict[str, Any]] = None
    metrics: Optional[list[str]] = None
    recipients: Optional[list[str]] = None


class ReportGeneratedEvent(BaseModel):
    """Emitted for every report generated by a dispatch batch."""

    report_id: str
    generated_at: datetime
    next_generation_at: Optional[datetime] = None


class FailedReport(BaseModel):
    """A report whose generation failed during a dispatch batch."""

    id: str
    error: str


class DispatchResult(BaseModel):
    """Outcome of one ``process_due`` batch."""

    processed: int = 0
    failed: list[FailedReport] = Field(default_factory=list)
    events: list[ReportGeneratedEvent] = Field(default_factory=list)
