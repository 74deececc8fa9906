"""
Schedule descriptor models for recurring reports.

A schedule is a tagged union keyed by ``frequency``. Each variant only
carries the fields its recurrence rule needs, so a daily schedule cannot
hold a day-of-month and a weekly schedule always has a day-of-week.

Payloads from clients and storage use camelCase keys (``dayOfWeek``,
``dayOfMonth``); snake_case names are accepted as well.

The optional ``timezone`` is kept for display only. All arithmetic on
schedules is timezone-naive.
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from feedback_analytics.errors import ReportValidationError

TIME_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"


class _ScheduleBase(BaseModel):
    """Fields shared by every schedule variant."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )

    timezone: Optional[str] = Field(
        default=None, description="IANA timezone name (stored, not applied)"
    )


class _TimedSchedule(_ScheduleBase):
    """A schedule that fires at a wall-clock time."""

    time: str = Field(pattern=TIME_PATTERN, description="Fire time, HH:mm 24h")

    @property
    def hour_minute(self) -> tuple[int, int]:
        hours, minutes = self.time.split(":")
        return int(hours), int(minutes)


class DailySchedule(_TimedSchedule):
    frequency: Literal["daily"] = "daily"


class WeeklySchedule(_TimedSchedule):
    frequency: Literal["weekly"] = "weekly"
    day_of_week: int = Field(default=0, ge=0, le=6, description="0=Sunday .. 6=Saturday")


class MonthlySchedule(_TimedSchedule):
    frequency: Literal["monthly"] = "monthly"
    day_of_month: int = Field(default=1, ge=1, le=31, description="Day of month, 1..31")


class QuarterlySchedule(_TimedSchedule):
    frequency: Literal["quarterly"] = "quarterly"


class YearlySchedule(_TimedSchedule):
    frequency: Literal["yearly"] = "yearly"


class ManualSchedule(_ScheduleBase):
    frequency: Literal["manual"] = "manual"
    time: Optional[str] = Field(default=None, description="Ignored for manual reports")


ScheduleDescriptor = Annotated[
    Union[
        DailySchedule,
        WeeklySchedule,
        MonthlySchedule,
        QuarterlySchedule,
        YearlySchedule,
        ManualSchedule,
    ],
    Field(discriminator="frequency"),
]

_schedule_adapter: TypeAdapter = TypeAdapter(ScheduleDescriptor)

_FIELD_MESSAGES = {
    "time": "Valid time (HH:mm) is required for scheduled reports",
    "day_of_week": "Valid day of week (0-6) is required for weekly reports",
    "dayOfWeek": "Valid day of week (0-6) is required for weekly reports",
    "day_of_month": "Valid day of month (1-31) is required for monthly reports",
    "dayOfMonth": "Valid day of month (1-31) is required for monthly reports",
}


def validate_schedule(payload: Any) -> ScheduleDescriptor:
    """
    Parse and validate a raw schedule payload.

    Args:
        payload: Schedule descriptor instance or mapping with a ``frequency`` key

    Returns:
        The matching schedule variant

    Raises:
        ReportValidationError: If the frequency is unknown or a field is
            missing or out of range for that frequency
    """
    if isinstance(payload, _ScheduleBase):
        return payload

    if not isinstance(payload, dict):
        raise ReportValidationError("Schedule must be an object", field="schedule")

    frequency = payload.get("frequency")
    if isinstance(frequency, str):
        payload = {**payload, "frequency": frequency.lower()}

    try:
        return _schedule_adapter.validate_python(payload)
    except PydanticValidationError as e:
        error = e.errors()[0]
        loc = [str(part) for part in error.get("loc", ())]
        if error.get("type") in ("union_tag_invalid", "union_tag_not_found"):
            raise ReportValidationError(
                f"Invalid schedule frequency: {frequency}", field="frequency"
            ) from e
        field = loc[-1] if loc else "schedule"
        message = _FIELD_MESSAGES.get(field, f"Invalid schedule: {error.get('msg')}")
        raise ReportValidationError(message, field=field) from e


def schedule_to_dict(schedule: Optional[ScheduleDescriptor]) -> Optional[dict]:
    """Serialize a schedule for storage or API responses (camelCase keys)."""
    if schedule is None:
        return None
    return schedule.model_dump(mode="json", by_alias=True, exclude_none=True)
