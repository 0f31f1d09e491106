"""
Unit tests for quiet hours evaluation and deflection.

Tests validate:
- Window boundaries (21:00 inclusive, 08:00 exclusive)
- Deflection to the same morning vs the next morning
- Idempotence of deflection
- Fail-open behaviour for unknown timezones
- Pre-send check with default timezone fallback
"""
import logging
from datetime import datetime, timedelta, timezone

import pytest

from reviewflow.lib.config_flags import QuietHoursWindow, reset_all_configs
from reviewflow.lib.quiet_hours import (
    QuietHoursReason,
    adjust_for_quiet_hours,
    as_utc,
    check_quiet_hours,
    get_next_send_window,
    hours_until_quiet_hours,
    is_in_quiet_hours,
    to_local_time,
)


NEW_YORK = "America/New_York"


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def default_window():
    reset_all_configs()
    yield
    reset_all_configs()


@pytest.mark.unit
def test_as_utc_treats_naive_as_utc():
    naive = datetime(2024, 6, 10, 12, 0)
    assert as_utc(naive) == utc(2024, 6, 10, 12, 0)

    aware = utc(2024, 6, 10, 12, 0)
    assert as_utc(aware) is aware


@pytest.mark.unit
def test_to_local_time_reports_unknown_timezone():
    result = to_local_time(utc(2024, 6, 10, 12, 0), "Mars/Olympus_Mons")

    assert result.ok is False
    assert result.local is None
    assert "Mars/Olympus_Mons" in result.error


@pytest.mark.unit
def test_quiet_hours_boundaries_new_york():
    """21:00 local is quiet, 20:59 and 08:00 are not (June, EDT = UTC-4)."""
    assert is_in_quiet_hours(utc(2024, 6, 11, 0, 59), NEW_YORK) is False   # 20:59
    assert is_in_quiet_hours(utc(2024, 6, 11, 1, 0), NEW_YORK) is True     # 21:00
    assert is_in_quiet_hours(utc(2024, 6, 10, 11, 59), NEW_YORK) is True   # 07:59
    assert is_in_quiet_hours(utc(2024, 6, 10, 12, 0), NEW_YORK) is False   # 08:00


@pytest.mark.unit
def test_late_evening_deflects_to_next_morning():
    """23:30 local deflects to 08:00 the next day."""
    late_evening = utc(2024, 6, 11, 3, 30)  # 2024-06-10 23:30 EDT

    adjusted = adjust_for_quiet_hours(late_evening, NEW_YORK)

    assert adjusted == utc(2024, 6, 11, 12, 0)  # 2024-06-11 08:00 EDT


@pytest.mark.unit
def test_early_morning_deflects_to_same_morning():
    """02:00 local deflects to 08:00 the same day."""
    early_morning = utc(2024, 6, 10, 6, 0)  # 2024-06-10 02:00 EDT

    adjusted = adjust_for_quiet_hours(early_morning, NEW_YORK)

    assert adjusted == utc(2024, 6, 10, 12, 0)  # 2024-06-10 08:00 EDT


@pytest.mark.unit
def test_deflection_is_identity_outside_quiet_hours():
    for hour in range(12, 25):  # 08:00 through 20:00 EDT
        instant = utc(2024, 6, 10) + timedelta(hours=hour)
        assert adjust_for_quiet_hours(instant, NEW_YORK) == instant


@pytest.mark.unit
def test_deflection_is_idempotent():
    start = utc(2024, 6, 10, 0, 0)
    for step in range(48):
        instant = start + timedelta(minutes=30 * step)
        once = adjust_for_quiet_hours(instant, NEW_YORK)
        assert adjust_for_quiet_hours(once, NEW_YORK) == once
        assert is_in_quiet_hours(once, NEW_YORK) is False


@pytest.mark.unit
def test_deflected_time_has_zero_minutes_and_seconds():
    adjusted = adjust_for_quiet_hours(utc(2024, 6, 11, 3, 47, 12, 500), NEW_YORK)

    assert (adjusted.minute, adjusted.second, adjusted.microsecond) == (0, 0, 0)


@pytest.mark.unit
def test_deflection_across_spring_forward():
    """03:30 EDT on the DST change day still lands on 08:00 EDT."""
    instant = utc(2024, 3, 10, 7, 30)

    assert adjust_for_quiet_hours(instant, NEW_YORK) == utc(2024, 3, 10, 12, 0)


@pytest.mark.unit
def test_deflection_across_fall_back():
    """01:30 EDT on the fall-back day lands on 08:00 EST (UTC-5)."""
    instant = utc(2024, 11, 3, 5, 30)

    assert adjust_for_quiet_hours(instant, NEW_YORK) == utc(2024, 11, 3, 13, 0)


@pytest.mark.unit
def test_deflection_east_of_utc():
    """22:00 in Tokyo (UTC+9) moves to 08:00 the next local day."""
    instant = utc(2024, 6, 10, 13, 0)

    assert adjust_for_quiet_hours(instant, "Asia/Tokyo") == utc(2024, 6, 10, 23, 0)


@pytest.mark.unit
def test_unknown_timezone_fails_open():
    instant = utc(2024, 6, 11, 3, 30)

    assert is_in_quiet_hours(instant, "Not/A_Zone") is False
    assert adjust_for_quiet_hours(instant, "Not/A_Zone") == instant


@pytest.mark.unit
def test_missing_timezone_uses_default():
    instant = utc(2024, 6, 11, 3, 30)  # 23:30 in the default New York zone

    assert is_in_quiet_hours(instant, None) is True


@pytest.mark.unit
def test_custom_window():
    window = QuietHoursWindow(start_hour=22, end_hour=7)

    assert is_in_quiet_hours(utc(2024, 6, 11, 1, 30), NEW_YORK, window) is False  # 21:30
    assert adjust_for_quiet_hours(utc(2024, 6, 11, 3, 0), NEW_YORK, window) == utc(2024, 6, 11, 11, 0)


@pytest.mark.unit
def test_get_next_send_window():
    daytime = utc(2024, 6, 10, 16, 0)
    assert get_next_send_window(NEW_YORK, daytime) == daytime

    night = utc(2024, 6, 11, 3, 30)
    assert get_next_send_window(NEW_YORK, night) == utc(2024, 6, 11, 12, 0)


@pytest.mark.unit
def test_check_quiet_hours_allows_daytime():
    check = check_quiet_hours(NEW_YORK, utc(2024, 6, 10, 16, 0))

    assert check.can_send is True
    assert check.next_send_time is None
    assert check.reason is None


@pytest.mark.unit
def test_check_quiet_hours_too_late():
    check = check_quiet_hours(NEW_YORK, utc(2024, 6, 11, 3, 30))

    assert check.can_send is False
    assert check.reason == QuietHoursReason.TOO_LATE
    assert check.next_send_time == utc(2024, 6, 11, 12, 0)


@pytest.mark.unit
def test_check_quiet_hours_too_early():
    check = check_quiet_hours(NEW_YORK, utc(2024, 6, 10, 6, 0))

    assert check.can_send is False
    assert check.reason == QuietHoursReason.TOO_EARLY
    assert check.next_send_time == utc(2024, 6, 10, 12, 0)


@pytest.mark.unit
def test_check_quiet_hours_invalid_timezone_falls_back_to_default():
    """Unlike deflection, the pre-send check does not fail open."""
    check = check_quiet_hours("Not/A_Zone", utc(2024, 6, 11, 3, 30))

    assert check.can_send is False
    assert check.next_send_time == utc(2024, 6, 11, 12, 0)


@pytest.mark.unit
def test_check_quiet_hours_missing_timezone_uses_default_quietly(caplog):
    with caplog.at_level(logging.WARNING, logger="reviewflow.lib.quiet_hours"):
        check = check_quiet_hours(None, utc(2024, 6, 11, 3, 30))

    assert check.can_send is False
    assert check.next_send_time == utc(2024, 6, 11, 12, 0)
    assert not [r for r in caplog.records if r.levelno >= logging.WARNING]


@pytest.mark.unit
def test_check_quiet_hours_invalid_timezone_warns(caplog):
    with caplog.at_level(logging.WARNING, logger="reviewflow.lib.quiet_hours"):
        check_quiet_hours("Not/A_Zone", utc(2024, 6, 10, 16, 0))

    assert any("Not/A_Zone" in r.getMessage() for r in caplog.records)


@pytest.mark.unit
def test_hours_until_quiet_hours():
    assert hours_until_quiet_hours(NEW_YORK, utc(2024, 6, 10, 16, 0)) == 9   # noon local
    assert hours_until_quiet_hours(NEW_YORK, utc(2024, 6, 11, 0, 30)) == 1   # 20:30 local
    assert hours_until_quiet_hours(NEW_YORK, utc(2024, 6, 11, 3, 30)) == 0   # 23:30 local
