"""
Quiet hours evaluation and deflection.

Outbound review requests must not land between 9pm and 8am in the
customer's local time (window configurable via config_flags). This module
answers two questions for a UTC instant and an IANA timezone:

1. Is the instant inside quiet hours?
2. If so, what is the next permissible instant?

Unknown timezones fail open: the instant is treated as sendable and
deflection leaves it unchanged.

All functions take the current instant as a parameter; nothing here reads
the clock.
"""
import enum
from datetime import datetime, time, timedelta, timezone as dt_timezone
from typing import NamedTuple, Optional

import pytz
from pydantic import BaseModel

from reviewflow.lib.config_flags import QuietHoursWindow, get_quiet_hours
from reviewflow.lib.logging import get_logger
from reviewflow.lib.settings import settings


logger = get_logger(__name__)


class LocalTime(NamedTuple):
    """Outcome of converting a UTC instant to a customer's civil time."""
    ok: bool
    local: Optional[datetime] = None
    tz: Optional[pytz.BaseTzInfo] = None
    error: Optional[str] = None


def as_utc(instant: datetime) -> datetime:
    # Naive datetimes are UTC by convention throughout the scheduler
    if instant.tzinfo is None:
        return instant.replace(tzinfo=dt_timezone.utc)
    return instant


def to_local_time(instant: datetime, tz_name: Optional[str]) -> LocalTime:
    """Convert an instant to local civil time in tz_name, capturing failures."""
    try:
        tz = pytz.timezone(tz_name)
    except (pytz.UnknownTimeZoneError, AttributeError) as e:
        return LocalTime(ok=False, error=f"Unknown timezone {tz_name!r}: {e}")

    try:
        local = as_utc(instant).astimezone(tz)
    except (OverflowError, ValueError) as e:
        return LocalTime(ok=False, error=f"Cannot convert {instant!r} to {tz_name}: {e}")

    return LocalTime(ok=True, local=local, tz=tz)


def is_in_quiet_hours(
    instant: datetime,
    timezone: Optional[str] = None,
    window: Optional[QuietHoursWindow] = None,
) -> bool:
    """
    Check whether an instant falls inside quiet hours in a timezone.

    Args:
        instant: UTC instant (naive values are read as UTC)
        timezone: Customer IANA timezone (defaults to settings.default_timezone)
        window: Quiet hours window (defaults to configured window)

    Returns:
        True if the local hour is in the quiet window. False on an
        unrecognized timezone.
    """
    window = window or get_quiet_hours()
    converted = to_local_time(instant, timezone or settings.default_timezone)
    if not converted.ok:
        logger.warning(
            f"Quiet hours check failed open: {converted.error}",
            extra={"timezone": timezone},
        )
        return False
    return window.contains_hour(converted.local.hour)


def adjust_for_quiet_hours(
    instant: datetime,
    timezone: Optional[str] = None,
    window: Optional[QuietHoursWindow] = None,
) -> datetime:
    """
    Deflect an instant out of quiet hours.

    Instants outside quiet hours are returned unchanged. Otherwise the
    result is end_hour:00:00 local time: the same day for early-morning
    instants (2am -> 8am today), the next day for evening instants
    (11pm -> 8am tomorrow).

    Args:
        instant: UTC instant the touch was originally scheduled for
        timezone: Customer IANA timezone (defaults to settings.default_timezone)
        window: Quiet hours window (defaults to configured window)

    Returns:
        Adjusted UTC instant, or the input on any conversion failure
    """
    window = window or get_quiet_hours()
    tz_name = timezone or settings.default_timezone

    if not is_in_quiet_hours(instant, tz_name, window):
        return instant

    converted = to_local_time(instant, tz_name)
    if not converted.ok:
        return instant

    local = converted.local
    target_date = local.date()
    if local.hour >= window.start_hour:
        target_date += timedelta(days=1)

    try:
        next_window = converted.tz.localize(datetime.combine(target_date, time(window.end_hour)))
        adjusted = next_window.astimezone(pytz.utc)
    except (OverflowError, ValueError) as e:
        logger.warning(
            f"Quiet hours deflection failed, keeping original time: {e}",
            extra={"timezone": tz_name},
        )
        return instant

    logger.debug(
        f"Deflected {instant.isoformat()} to {adjusted.isoformat()} ({tz_name})"
    )
    return adjusted


def get_next_send_window(
    timezone: Optional[str],
    now: datetime,
    window: Optional[QuietHoursWindow] = None,
) -> datetime:
    """
    Get the next instant a message may be sent to a customer.

    Useful for display ("Will send at 8am tomorrow").
    """
    if not is_in_quiet_hours(now, timezone, window):
        return now
    return adjust_for_quiet_hours(now, timezone, window)


# ============================================================================
# Pre-send gate (SMS)
# ============================================================================


class QuietHoursReason(str, enum.Enum):
    """Which side of the quiet window an instant falls on."""
    TOO_EARLY = "too_early"
    TOO_LATE = "too_late"


class QuietHoursCheck(BaseModel):
    """Result of a quiet hours check right before sending."""
    can_send: bool
    next_send_time: Optional[datetime] = None
    reason: Optional[QuietHoursReason] = None


def _resolve_or_default(customer_timezone: Optional[str]) -> str:
    if not customer_timezone:
        return settings.default_timezone
    try:
        pytz.timezone(customer_timezone)
        return customer_timezone
    except pytz.UnknownTimeZoneError:
        logger.warning(
            f"Invalid timezone {customer_timezone!r}, using default: {settings.default_timezone}"
        )
        return settings.default_timezone


def check_quiet_hours(
    customer_timezone: Optional[str],
    now: datetime,
    window: Optional[QuietHoursWindow] = None,
) -> QuietHoursCheck:
    """
    Check whether a message can go out right now.

    Unlike deflection, an invalid or missing timezone falls back to the
    default timezone instead of failing open.

    Args:
        customer_timezone: IANA timezone string
        now: Current instant

    Returns:
        QuietHoursCheck with can_send and, when blocked, the next UTC send
        time and whether it is too early or too late locally.
    """
    window = window or get_quiet_hours()
    tz_name = _resolve_or_default(customer_timezone)

    local = to_local_time(now, tz_name).local
    if not window.contains_hour(local.hour):
        return QuietHoursCheck(can_send=True)

    return QuietHoursCheck(
        can_send=False,
        next_send_time=adjust_for_quiet_hours(now, tz_name, window),
        reason=QuietHoursReason.TOO_LATE if local.hour >= window.start_hour else QuietHoursReason.TOO_EARLY,
    )


def hours_until_quiet_hours(
    customer_timezone: Optional[str],
    now: datetime,
    window: Optional[QuietHoursWindow] = None,
) -> int:
    """Whole hours left before quiet hours start; 0 when already quiet."""
    window = window or get_quiet_hours()
    local = to_local_time(now, _resolve_or_default(customer_timezone)).local

    if window.contains_hour(local.hour):
        return 0
    return window.start_hour - local.hour
