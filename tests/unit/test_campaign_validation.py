"""
Unit tests for campaign definition validation.
"""
import pytest

from reviewflow.lib.campaign_validation import (
    CampaignDefinition,
    DelayBasis,
    EnrollmentStopRequest,
    TouchDefinition,
)
from reviewflow.models.campaigns import CampaignStatus, MessageChannel
from reviewflow.models.enrollments import StopReason


def touch(number, delay=24, channel=MessageChannel.EMAIL):
    return {"touch_number": number, "channel": channel, "delay_hours": delay}


@pytest.mark.unit
def test_touch_defaults():
    t = TouchDefinition(**touch(1))

    assert t.template_id is None
    assert t.delay_basis == DelayBasis.PREVIOUS_TOUCH


@pytest.mark.unit
def test_touch_delay_minimum():
    with pytest.raises(ValueError, match="Minimum 1 hour delay"):
        TouchDefinition(**touch(1, delay=0))


@pytest.mark.unit
def test_touch_delay_maximum():
    assert TouchDefinition(**touch(1, delay=720)).delay_hours == 720

    with pytest.raises(ValueError, match="Maximum 30 days"):
        TouchDefinition(**touch(1, delay=721))


@pytest.mark.unit
def test_touch_number_range():
    with pytest.raises(ValueError):
        TouchDefinition(**touch(0))

    with pytest.raises(ValueError):
        TouchDefinition(**touch(5))


@pytest.mark.unit
def test_campaign_defaults():
    campaign = CampaignDefinition(name="Follow-Up", touches=[touch(1)])

    assert campaign.service_type is None
    assert campaign.status == CampaignStatus.ACTIVE
    assert campaign.personalization_enabled is True


@pytest.mark.unit
def test_campaign_requires_sequential_touches():
    with pytest.raises(ValueError, match="Touch numbers must be sequential"):
        CampaignDefinition(name="Gappy", touches=[touch(1), touch(3)])

    with pytest.raises(ValueError, match="Touch numbers must be sequential"):
        CampaignDefinition(name="Duplicate", touches=[touch(1), touch(1)])


@pytest.mark.unit
def test_campaign_touch_count_limits():
    with pytest.raises(ValueError):
        CampaignDefinition(name="Empty", touches=[])

    with pytest.raises(ValueError):
        CampaignDefinition(name="Too Many", touches=[touch(i) for i in range(1, 6)])

    full = CampaignDefinition(name="Full", touches=[touch(i) for i in range(1, 5)])
    assert len(full.touches) == 4


@pytest.mark.unit
def test_campaign_name_length():
    with pytest.raises(ValueError):
        CampaignDefinition(name="", touches=[touch(1)])

    with pytest.raises(ValueError):
        CampaignDefinition(name="x" * 101, touches=[touch(1)])


@pytest.mark.unit
def test_stop_request_defaults_to_owner_stopped():
    assert EnrollmentStopRequest().stop_reason == StopReason.OWNER_STOPPED
    assert EnrollmentStopRequest(stop_reason="review_clicked").stop_reason == StopReason.REVIEW_CLICKED
