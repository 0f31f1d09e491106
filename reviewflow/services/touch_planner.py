"""
Touch planner - expands a campaign into absolute send times.

Delays chain: each touch fires delay_hours after the previous touch's
*scheduled* (post-deflection) time, touch 1 after the enrollment anchor.
A quiet hours deflection on an early touch therefore pushes every later
touch back as well, and the planned instants never decrease.

The planner expects validated campaigns (see lib.campaign_validation) and
works with anything exposing `touches` whose items have touch_number,
channel, delay_hours and template_id: ORM campaigns and campaign
definitions alike.
"""
from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel

from reviewflow.lib.config_flags import QuietHoursWindow
from reviewflow.lib.logging import get_logger
from reviewflow.lib.quiet_hours import adjust_for_quiet_hours, as_utc
from reviewflow.lib.settings import settings
from reviewflow.models.campaigns import MessageChannel


logger = get_logger(__name__)


class PlannedTouch(BaseModel):
    """One touch of an enrollment, placed at an absolute UTC instant."""
    touch_number: int
    channel: MessageChannel
    scheduled_at: datetime
    template_id: Optional[UUID] = None
    delay_hours: int
    deflected: bool = False

    def to_record(self) -> dict:
        """Serialize for persistence/transport with an ISO-8601 instant."""
        return {
            "touch_number": self.touch_number,
            "channel": self.channel.value,
            "scheduled_at": self.scheduled_at.isoformat(),
            "template_id": str(self.template_id) if self.template_id else None,
        }


def plan_touches(
    campaign: Any,
    anchor_time: datetime,
    customer_timezone: Optional[str] = None,
    window: Optional[QuietHoursWindow] = None,
) -> list[PlannedTouch]:
    """
    Compute the scheduled instant of every touch in a campaign.

    Args:
        campaign: Campaign with a `touches` collection
        anchor_time: Enrollment anchor (job completion), UTC
        customer_timezone: Customer IANA timezone (defaults to settings.default_timezone)
        window: Quiet hours window (defaults to configured window)

    Returns:
        Planned touches ordered by touch_number
    """
    tz_name = customer_timezone or settings.default_timezone
    touches = sorted(campaign.touches, key=lambda t: t.touch_number)

    planned: list[PlannedTouch] = []
    cursor = as_utc(anchor_time)

    for touch in touches:
        raw = cursor + timedelta(hours=touch.delay_hours)
        scheduled_at = adjust_for_quiet_hours(raw, tz_name, window)

        planned.append(
            PlannedTouch(
                touch_number=touch.touch_number,
                channel=MessageChannel(touch.channel),
                scheduled_at=scheduled_at,
                template_id=touch.template_id,
                delay_hours=touch.delay_hours,
                deflected=scheduled_at != raw,
            )
        )
        cursor = scheduled_at

    logger.debug(
        f"Planned {len(planned)} touches from anchor {anchor_time.isoformat()} "
        f"({tz_name}, {sum(p.deflected for p in planned)} deflected)"
    )
    return planned
