"""
Campaign matcher - picks the campaign(s) a completed job can enroll in.

A campaign applies to a job when it is active and either targets the job's
service type exactly or is a catch-all (NULL service type). Exact matches
rank ahead of catch-alls; within each group the input order is kept. The
first ranked match is the recommended one.
"""
import enum
from typing import Any, Iterable, Optional
from uuid import UUID

from pydantic import BaseModel

from reviewflow.lib.logging import get_logger
from reviewflow.models.campaigns import CampaignStatus


logger = get_logger(__name__)


DEFAULT_FIRST_TOUCH_DELAY_HOURS = 24


class CampaignMatch(BaseModel):
    """A campaign applicable to a job, ranked for display."""
    campaign_id: Optional[UUID] = None
    name: Optional[str] = None
    service_type: Optional[str] = None
    touch_count: int
    first_touch_delay_hours: int
    is_exact_match: bool
    is_recommended: bool = False
    campaign: Any = None


def _value(field: Any) -> Any:
    return field.value if isinstance(field, enum.Enum) else field


def match_campaigns(active_campaigns: Iterable[Any], service_type: Any) -> list[CampaignMatch]:
    """
    Rank the campaigns that apply to a service type.

    Args:
        active_campaigns: Campaigns of one business, in storage order
        service_type: Service type of the completed job

    Returns:
        Matches with exact service type matches first; the first is
        flagged is_recommended. Empty when nothing applies.
    """
    wanted = _value(service_type)
    exact: list[CampaignMatch] = []
    catch_all: list[CampaignMatch] = []

    for campaign in active_campaigns:
        if _value(campaign.status) != CampaignStatus.ACTIVE.value:
            continue

        campaign_type = _value(campaign.service_type)
        if campaign_type is not None and campaign_type != wanted:
            continue

        touches = sorted(campaign.touches, key=lambda t: t.touch_number)
        match = CampaignMatch(
            campaign_id=getattr(campaign, "id", None),
            name=getattr(campaign, "name", None),
            service_type=campaign_type,
            touch_count=len(touches),
            first_touch_delay_hours=touches[0].delay_hours if touches else DEFAULT_FIRST_TOUCH_DELAY_HOURS,
            is_exact_match=campaign_type is not None,
            campaign=campaign,
        )
        (exact if match.is_exact_match else catch_all).append(match)

    ranked = exact + catch_all
    if ranked:
        ranked[0].is_recommended = True

    logger.debug(
        f"Matched {len(ranked)} campaigns for service type {wanted!r} "
        f"({len(exact)} exact, {len(catch_all)} catch-all)"
    )
    return ranked


def recommended_campaign(active_campaigns: Iterable[Any], service_type: Any) -> Optional[Any]:
    """Return the recommended campaign for a service type, or None."""
    matches = match_campaigns(active_campaigns, service_type)
    return matches[0].campaign if matches else None
