"""
Schedule presets for one-off review request sends.

Maps the scheduler's quick picks ("In 1 hour", "Next morning", ...) to
concrete instants and validates user-picked dates. The "next morning"
preset works on the clock of the `now` it is given (the scheduler's
clock), not on the customer's timezone; per-customer timing is handled by
quiet hours deflection.
"""
import enum
from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel

from reviewflow.lib.settings import settings


class SchedulePresetId(str, enum.Enum):
    """Stable identifiers of the schedule quick picks."""
    NOW = "now"
    ONE_HOUR = "1hour"
    MORNING = "morning"
    TWENTY_FOUR_HOURS = "24hours"
    CUSTOM = "custom"


class SchedulePreset(BaseModel):
    """A schedule quick pick shown to the user."""
    id: SchedulePresetId
    label: str


SCHEDULE_PRESETS: list[SchedulePreset] = [
    SchedulePreset(id=SchedulePresetId.NOW, label="Send now"),
    SchedulePreset(id=SchedulePresetId.ONE_HOUR, label="In 1 hour"),
    SchedulePreset(id=SchedulePresetId.MORNING, label="Next morning"),
    SchedulePreset(id=SchedulePresetId.TWENTY_FOUR_HOURS, label="In 24 hours"),
    SchedulePreset(id=SchedulePresetId.CUSTOM, label="Custom"),
]

SCHEDULE_DATE_ERROR = "Scheduled time must be at least 1 minute in the future"


def next_morning(now: datetime, hour: Optional[int] = None) -> datetime:
    """
    Get the next morning send time.

    Returns today at `hour`:00:00 on now's clock, or tomorrow if that moment
    has already passed.
    """
    hour = settings.morning_send_hour if hour is None else hour
    morning = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if morning < now:
        morning += timedelta(days=1)
    return morning


def resolve_preset(preset_id: SchedulePresetId, now: datetime) -> Optional[datetime]:
    """
    Resolve a preset to a candidate send instant.

    Args:
        preset_id: Preset to resolve
        now: Current instant on the scheduler's clock

    Returns:
        Candidate instant, or None for "now" and "custom" where the caller
        supplies the instant
    """
    preset_id = SchedulePresetId(preset_id)

    if preset_id == SchedulePresetId.ONE_HOUR:
        return now + timedelta(hours=1)
    if preset_id == SchedulePresetId.MORNING:
        return next_morning(now)
    if preset_id == SchedulePresetId.TWENTY_FOUR_HOURS:
        return now + timedelta(hours=24)
    return None


def is_valid_schedule_date(scheduled_for: datetime, now: datetime) -> bool:
    """True if scheduled_for is at least the minimum lead time after now."""
    return scheduled_for >= now + timedelta(seconds=settings.min_schedule_lead_seconds)


def validate_schedule_date(scheduled_for: datetime, now: datetime) -> Optional[str]:
    """
    Validate a user-picked schedule date.

    Returns:
        A message suitable for the form, or None when the date is acceptable
    """
    if is_valid_schedule_date(scheduled_for, now):
        return None
    return SCHEDULE_DATE_ERROR


def format_for_datetime_input(value: datetime) -> str:
    """Format a datetime for an HTML datetime-local input."""
    return value.strftime("%Y-%m-%dT%H:%M")


def format_schedule_date(value: datetime) -> str:
    """Format a schedule date for display, e.g. 'Jan 5, 9:00 AM'."""
    hour = value.hour % 12 or 12
    return f"{value.strftime('%b')} {value.day}, {hour}:{value.minute:02d} {value.strftime('%p')}"
