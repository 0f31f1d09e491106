"""
Validation schemas for campaign definitions.

Campaigns are validated here, before they ever reach the touch planner:
- Touch numbers 1..4, contiguous from 1
- Delays between 1 hour and 30 days
- At most 4 touches per campaign
"""
import enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from reviewflow.models.campaigns import (
    CampaignStatus,
    MessageChannel,
    ServiceType,
    MAX_TOUCHES,
    MIN_DELAY_HOURS,
    MAX_DELAY_HOURS,
)
from reviewflow.models.enrollments import StopReason


class DelayBasis(str, enum.Enum):
    """What a touch's delay_hours is measured from."""
    PREVIOUS_TOUCH = "previous_touch"


class TouchDefinition(BaseModel):
    """Single touch configuration."""

    touch_number: int = Field(..., ge=1, le=MAX_TOUCHES)
    channel: MessageChannel
    delay_hours: int = Field(..., description="Hours after the previous touch (or the anchor for touch 1)")
    template_id: Optional[UUID] = None
    delay_basis: DelayBasis = Field(
        default=DelayBasis.PREVIOUS_TOUCH,
        description="Delays chain: touch N fires delay_hours after touch N-1 was scheduled",
    )

    @field_validator("delay_hours")
    @classmethod
    def check_delay_range(cls, value: int) -> int:
        if value < MIN_DELAY_HOURS:
            raise ValueError("Minimum 1 hour delay")
        if value > MAX_DELAY_HOURS:
            raise ValueError("Maximum 30 days")
        return value

    class Config:
        json_schema_extra = {
            "example": {
                "touch_number": 1,
                "channel": "email",
                "delay_hours": 24,
                "template_id": None,
            }
        }


class CampaignDefinition(BaseModel):
    """Campaign with its touches, as submitted from the campaign editor."""

    id: Optional[UUID] = None
    name: str = Field(..., min_length=1, max_length=100)
    service_type: Optional[ServiceType] = Field(
        default=None,
        description="NULL = all services",
    )
    status: CampaignStatus = CampaignStatus.ACTIVE
    personalization_enabled: bool = True
    touches: list[TouchDefinition] = Field(..., min_length=1, max_length=MAX_TOUCHES)

    @model_validator(mode="after")
    def check_touch_sequence(self) -> "CampaignDefinition":
        numbers = sorted(t.touch_number for t in self.touches)
        if numbers != list(range(1, len(numbers) + 1)):
            raise ValueError("Touch numbers must be sequential (1, 2, 3, 4)")
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Standard Follow-Up",
                "service_type": "hvac",
                "status": "active",
                "personalization_enabled": True,
                "touches": [
                    {"touch_number": 1, "channel": "email", "delay_hours": 24},
                    {"touch_number": 2, "channel": "email", "delay_hours": 72},
                    {"touch_number": 3, "channel": "sms", "delay_hours": 168},
                ],
            }
        }


class EnrollmentStopRequest(BaseModel):
    """Request to stop an enrollment."""
    stop_reason: StopReason = StopReason.OWNER_STOPPED
