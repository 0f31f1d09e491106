"""
Scheduling API routes - quick picks, date validation and quiet hours.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from reviewflow.api.dependencies import get_now
from reviewflow.lib.quiet_hours import (
    QuietHoursReason,
    as_utc,
    check_quiet_hours,
    hours_until_quiet_hours,
)
from reviewflow.lib.schedule_presets import (
    SCHEDULE_PRESETS,
    SchedulePresetId,
    format_schedule_date,
    resolve_preset,
    validate_schedule_date,
)


router = APIRouter(tags=["schedule"])


class SchedulePresetResponse(BaseModel):
    """A quick pick resolved against the current instant."""
    id: SchedulePresetId
    label: str
    scheduled_for: Optional[datetime] = Field(
        default=None,
        description="Resolved instant; null for 'now' and 'custom'",
    )
    display: Optional[str] = None


class ScheduleValidationRequest(BaseModel):
    """A user-picked send time."""
    scheduled_for: datetime

    class Config:
        json_schema_extra = {
            "example": {"scheduled_for": "2024-06-10T14:30:00Z"}
        }


class ScheduleValidationResponse(BaseModel):
    """Outcome of validating a send time."""
    valid: bool
    message: Optional[str] = None


class NextWindowResponse(BaseModel):
    """Quiet hours state for a customer timezone."""
    timezone: Optional[str] = None
    can_send: bool
    next_send_time: datetime
    reason: Optional[QuietHoursReason] = None
    hours_until_quiet_hours: int


@router.get("/schedule/presets", response_model=List[SchedulePresetResponse])
def list_schedule_presets(now: datetime = Depends(get_now)) -> List[SchedulePresetResponse]:
    """List the schedule quick picks with their resolved send times."""
    presets = []
    for preset in SCHEDULE_PRESETS:
        scheduled_for = resolve_preset(preset.id, now)
        presets.append(
            SchedulePresetResponse(
                id=preset.id,
                label=preset.label,
                scheduled_for=scheduled_for,
                display=format_schedule_date(scheduled_for) if scheduled_for else None,
            )
        )
    return presets


@router.post("/schedule/validate", response_model=ScheduleValidationResponse)
def validate_schedule(
    request: ScheduleValidationRequest,
    now: datetime = Depends(get_now),
) -> ScheduleValidationResponse:
    """Check that a custom send time is far enough in the future."""
    message = validate_schedule_date(as_utc(request.scheduled_for), as_utc(now))
    return ScheduleValidationResponse(valid=message is None, message=message)


@router.get("/quiet-hours/next-window", response_model=NextWindowResponse)
def get_next_window(
    timezone: Optional[str] = Query(None, description="Customer IANA timezone"),
    now: datetime = Depends(get_now),
) -> NextWindowResponse:
    """
    Report whether a message could go out now and when the next window opens.

    Unknown or missing timezones fall back to the default timezone.
    """
    check = check_quiet_hours(timezone, now)
    return NextWindowResponse(
        timezone=timezone,
        can_send=check.can_send,
        next_send_time=now if check.can_send else check.next_send_time,
        reason=check.reason,
        hours_until_quiet_hours=hours_until_quiet_hours(timezone, now),
    )
