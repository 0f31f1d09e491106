"""
Unit tests for the campaign touch planner.

Tests validate:
- Delays compound from the previous touch's scheduled time
- Planned instants never decrease
- A deflected touch pushes later touches back
- Input ordering and serialization
"""
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from reviewflow.lib.campaign_validation import CampaignDefinition, TouchDefinition
from reviewflow.lib.config_flags import reset_all_configs
from reviewflow.lib.quiet_hours import is_in_quiet_hours
from reviewflow.models.campaigns import Campaign, CampaignTouch, MessageChannel
from reviewflow.services.touch_planner import plan_touches


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def campaign_with_delays(*delays: int, channel: MessageChannel = MessageChannel.EMAIL) -> CampaignDefinition:
    return CampaignDefinition(
        name="Test Campaign",
        touches=[
            TouchDefinition(touch_number=i, channel=channel, delay_hours=d)
            for i, d in enumerate(delays, start=1)
        ],
    )


@pytest.fixture(autouse=True)
def default_window():
    reset_all_configs()
    yield
    reset_all_configs()


@pytest.mark.unit
def test_delays_compound_from_previous_touch():
    """Touch 2 fires 48h after touch 1, not 48h after the anchor."""
    anchor = utc(2024, 1, 1, 0, 0)

    # 00:00 UTC is 09:00 in Tokyo, clear of quiet hours for every touch
    planned = plan_touches(campaign_with_delays(24, 48), anchor, "Asia/Tokyo")

    assert planned[0].scheduled_at == anchor + timedelta(hours=24)
    assert planned[1].scheduled_at == anchor + timedelta(hours=72)
    assert not any(p.deflected for p in planned)


@pytest.mark.unit
def test_planned_instants_are_monotonic():
    anchor = utc(2024, 6, 10, 22, 0)  # 18:00 EDT

    planned = plan_touches(campaign_with_delays(1, 3, 5, 11), anchor, "America/New_York")

    instants = [p.scheduled_at for p in planned]
    assert instants == sorted(instants)
    assert planned[0].scheduled_at >= anchor + timedelta(hours=1)
    for touch in planned:
        assert is_in_quiet_hours(touch.scheduled_at, "America/New_York") is False


@pytest.mark.unit
def test_deflected_touch_pushes_later_touches():
    anchor = utc(2024, 6, 10, 22, 0)  # 18:00 EDT

    planned = plan_touches(campaign_with_delays(4, 24), anchor, "America/New_York")

    # 22:00 EDT deflects to 08:00 EDT the next day
    assert planned[0].scheduled_at == utc(2024, 6, 11, 12, 0)
    assert planned[0].deflected is True
    # The second delay counts from the deflected instant
    assert planned[1].scheduled_at == utc(2024, 6, 12, 12, 0)
    assert planned[1].deflected is False


@pytest.mark.unit
def test_unsorted_touches_are_planned_in_order():
    campaign = CampaignDefinition(
        name="Unsorted",
        touches=[
            TouchDefinition(touch_number=2, channel=MessageChannel.SMS, delay_hours=48),
            TouchDefinition(touch_number=1, channel=MessageChannel.EMAIL, delay_hours=24),
        ],
    )
    anchor = utc(2024, 1, 1, 0, 0)

    planned = plan_touches(campaign, anchor, "Asia/Tokyo")

    assert [p.touch_number for p in planned] == [1, 2]
    assert [p.channel for p in planned] == [MessageChannel.EMAIL, MessageChannel.SMS]
    assert planned[1].scheduled_at == anchor + timedelta(hours=72)


@pytest.mark.unit
def test_plans_orm_campaigns():
    template_id = uuid4()
    campaign = Campaign(
        id=uuid4(),
        business_id=uuid4(),
        name="ORM Campaign",
        touches=[
            CampaignTouch(touch_number=1, channel=MessageChannel.SMS, delay_hours=2, template_id=template_id),
        ],
    )

    planned = plan_touches(campaign, utc(2024, 1, 1, 0, 0), "Asia/Tokyo")

    assert len(planned) == 1
    assert planned[0].template_id == template_id
    assert planned[0].scheduled_at == utc(2024, 1, 1, 2, 0)


@pytest.mark.unit
def test_naive_anchor_is_treated_as_utc():
    planned = plan_touches(campaign_with_delays(24), datetime(2024, 1, 1, 0, 0), "Asia/Tokyo")

    assert planned[0].scheduled_at == utc(2024, 1, 2, 0, 0)


@pytest.mark.unit
def test_to_record_serializes_instant_and_null_template():
    planned = plan_touches(campaign_with_delays(24), utc(2024, 1, 1, 0, 0), "Asia/Tokyo")

    record = planned[0].to_record()

    assert record == {
        "touch_number": 1,
        "channel": "email",
        "scheduled_at": "2024-01-02T00:00:00+00:00",
        "template_id": None,
    }


@pytest.mark.unit
def test_unknown_timezone_plans_raw_instants():
    """Touches that would be quiet in New York go out unchanged for an unrecognized zone."""
    anchor = utc(2024, 6, 10, 22, 0)

    planned = plan_touches(campaign_with_delays(4, 24), anchor, "Not/A_Zone")

    assert [p.scheduled_at for p in planned] == [utc(2024, 6, 11, 2, 0), utc(2024, 6, 12, 2, 0)]
    assert not any(p.deflected for p in planned)
