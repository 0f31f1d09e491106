"""
Campaign API routes.

Preset library, schedule previews for a campaign definition, and the
campaigns a completed job can be enrolled in.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from reviewflow.api.dependencies import get_enrollment_service
from reviewflow.lib.campaign_validation import CampaignDefinition, TouchDefinition
from reviewflow.lib.config_flags import CAMPAIGN_PRESETS, preset_for_service_type
from reviewflow.models.campaigns import ServiceType
from reviewflow.services.campaign_matcher import match_campaigns
from reviewflow.services.enrollment_service import EnrollmentService
from reviewflow.services.touch_planner import PlannedTouch, plan_touches


router = APIRouter(tags=["campaigns"])


# Pydantic schemas
class CampaignPresetResponse(BaseModel):
    """Campaign preset as offered in the campaign editor."""
    id: str
    name: str
    description: str
    touches: List[TouchDefinition]
    recommended_for: List[ServiceType]
    is_suggested: bool = False


class PlanRequest(BaseModel):
    """Preview the send times of a campaign for one enrollment."""
    campaign: CampaignDefinition
    anchor_time: datetime = Field(..., description="Job completion instant (UTC)")
    customer_timezone: Optional[str] = Field(default=None, description="Customer IANA timezone")

    class Config:
        json_schema_extra = {
            "example": {
                "campaign": {
                    "name": "Standard Follow-Up",
                    "touches": [
                        {"touch_number": 1, "channel": "email", "delay_hours": 24},
                        {"touch_number": 2, "channel": "email", "delay_hours": 72},
                    ],
                },
                "anchor_time": "2024-06-10T18:00:00Z",
                "customer_timezone": "America/New_York",
            }
        }


class CampaignMatchResponse(BaseModel):
    """A campaign available for a job, ranked."""
    campaign_id: Optional[UUID] = None
    name: Optional[str] = None
    service_type: Optional[str] = None
    touch_count: int
    first_touch_delay_hours: int
    is_exact_match: bool
    is_recommended: bool


@router.get("/campaigns/presets", response_model=List[CampaignPresetResponse])
def list_campaign_presets(
    service_type: Optional[ServiceType] = Query(None, description="Flag the preset suggested for this service type"),
) -> List[CampaignPresetResponse]:
    """
    List the campaign preset library.

    Query parameters:
    - service_type: When given, the preset recommended for it is flagged
      is_suggested (standard when none lists the service type)
    """
    suggested = preset_for_service_type(service_type).id if service_type else None
    return [
        CampaignPresetResponse(**preset.model_dump(), is_suggested=preset.id == suggested)
        for preset in CAMPAIGN_PRESETS
    ]


@router.post("/campaigns/plan", response_model=List[PlannedTouch])
def plan_campaign(request: PlanRequest) -> List[PlannedTouch]:
    """
    Compute when every touch of a campaign would be sent.

    Touches chain from the anchor and are deflected out of the customer's
    quiet hours.
    """
    return plan_touches(request.campaign, request.anchor_time, request.customer_timezone)


@router.get("/businesses/{business_id}/campaigns/available", response_model=List[CampaignMatchResponse])
def list_available_campaigns(
    business_id: UUID,
    service_type: ServiceType = Query(..., description="Service type of the completed job"),
    service: EnrollmentService = Depends(get_enrollment_service),
) -> List[CampaignMatchResponse]:
    """
    List the active campaigns a job of this service type can enroll in.

    Exact service type matches come first, then catch-all campaigns. The
    first entry is flagged is_recommended. Empty when nothing applies.
    """
    matches = match_campaigns(service.list_active_campaigns(business_id), service_type)
    return [
        CampaignMatchResponse(**m.model_dump(exclude={"campaign"}))
        for m in matches
    ]
