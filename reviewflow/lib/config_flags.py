"""
Runtime configuration for review campaign scheduling.

Provides centralized configuration for:
- Quiet hours window (do-not-disturb, local customer time)
- Enrollment policy (review cooldown, conflict handling)
- Campaign presets (conservative, standard, aggressive)
"""
from typing import Optional
from pydantic import BaseModel, Field, model_validator

from reviewflow.lib.campaign_validation import CampaignDefinition, TouchDefinition
from reviewflow.lib.logging import get_logger
from reviewflow.lib.settings import settings
from reviewflow.models.campaigns import MessageChannel, ServiceType


logger = get_logger(__name__)


class QuietHoursWindow(BaseModel):
    """
    Do-not-disturb window in the customer's local time.

    The window wraps midnight: local hours >= start_hour or < end_hour are
    quiet, so 21 -> 8 blocks 9pm through 7:59am.
    """

    start_hour: int = Field(default=21, ge=0, le=23, description="Quiet hours begin (inclusive)")
    end_hour: int = Field(default=8, ge=0, le=23, description="Quiet hours end (exclusive)")

    @model_validator(mode="after")
    def check_wraps_midnight(self) -> "QuietHoursWindow":
        if self.start_hour <= self.end_hour:
            raise ValueError("Quiet hours must wrap midnight (start_hour > end_hour)")
        return self

    def contains_hour(self, hour: int) -> bool:
        return hour >= self.start_hour or hour < self.end_hour

    class Config:
        json_schema_extra = {
            "example": {"start_hour": 21, "end_hour": 8}
        }


class EnrollmentPolicy(BaseModel):
    """Rules applied when a completed job is about to be enrolled."""

    cooldown_days: int = Field(
        default=30,
        ge=7,
        le=90,
        description="Suppress re-enrollment this many days after a review or feedback"
    )
    queue_after_gap_days: int = Field(
        default=7,
        ge=0,
        le=90,
        description="Days to wait after a sequence ends before auto-enrolling a queued job"
    )
    conflict_auto_resolve_hours: int = Field(
        default=24,
        ge=1,
        le=168,
        description="Hours before a stale enrollment conflict is resolved by replacement"
    )


class CampaignPreset(BaseModel):
    """Ready-made touch sequence offered when creating a campaign."""

    id: str
    name: str
    description: str
    touches: list[TouchDefinition]
    recommended_for: list[ServiceType] = Field(default_factory=list)

    def to_campaign(
        self,
        name: Optional[str] = None,
        service_type: Optional[ServiceType] = None,
    ) -> CampaignDefinition:
        """Build a campaign definition seeded from this preset."""
        return CampaignDefinition(
            name=name or self.name,
            service_type=service_type,
            touches=[t.model_copy() for t in self.touches],
        )


def _touch(number: int, channel: MessageChannel, delay_hours: int) -> TouchDefinition:
    return TouchDefinition(touch_number=number, channel=channel, delay_hours=delay_hours)


CAMPAIGN_PRESETS: list[CampaignPreset] = [
    CampaignPreset(
        id="conservative",
        name="Gentle Follow-Up",
        description="Two emails over 3 days. Good for established relationships or high-ticket services.",
        touches=[
            _touch(1, MessageChannel.EMAIL, 24),
            _touch(2, MessageChannel.EMAIL, 72),
        ],
        recommended_for=[ServiceType.HVAC, ServiceType.PLUMBING, ServiceType.ELECTRICAL, ServiceType.ROOFING],
    ),
    CampaignPreset(
        id="standard",
        name="Standard Follow-Up",
        description="Two emails and a text message over 7 days. Works well for most businesses.",
        touches=[
            _touch(1, MessageChannel.EMAIL, 24),
            _touch(2, MessageChannel.EMAIL, 72),
            _touch(3, MessageChannel.SMS, 168),
        ],
        recommended_for=[ServiceType.PAINTING, ServiceType.HANDYMAN, ServiceType.OTHER],
    ),
    CampaignPreset(
        id="aggressive",
        name="Aggressive Follow-Up",
        description=(
            "A text within hours, then email and SMS reminders. "
            "Best for quick-turnaround services like cleaning."
        ),
        touches=[
            _touch(1, MessageChannel.SMS, 4),
            _touch(2, MessageChannel.EMAIL, 24),
            _touch(3, MessageChannel.SMS, 72),
            _touch(4, MessageChannel.EMAIL, 168),
        ],
        recommended_for=[ServiceType.CLEANING],
    ),
]


def get_campaign_preset(preset_id: str) -> Optional[CampaignPreset]:
    """Look up a campaign preset by id."""
    return next((p for p in CAMPAIGN_PRESETS if p.id == preset_id), None)


def preset_for_service_type(service_type: Optional[ServiceType]) -> CampaignPreset:
    """
    Suggest a campaign preset for a service type.

    Falls back to the standard preset for catch-all campaigns or service
    types no preset lists.
    """
    if service_type is not None:
        for preset in CAMPAIGN_PRESETS:
            if service_type in preset.recommended_for:
                return preset
    return get_campaign_preset("standard")


# Global configuration instances (can be overridden)
_quiet_hours: Optional[QuietHoursWindow] = None
_enrollment_policy: Optional[EnrollmentPolicy] = None


def get_quiet_hours() -> QuietHoursWindow:
    """
    Get quiet hours configuration.

    Returns:
        QuietHoursWindow seeded from settings on first use
    """
    global _quiet_hours
    if _quiet_hours is None:
        _quiet_hours = QuietHoursWindow(
            start_hour=settings.quiet_hours_start,
            end_hour=settings.quiet_hours_end,
        )
        logger.info("Initialized default quiet hours configuration")
    return _quiet_hours


def set_quiet_hours(window: QuietHoursWindow) -> None:
    """Override quiet hours configuration."""
    global _quiet_hours
    _quiet_hours = window
    logger.info("Updated quiet hours configuration", extra={
        "start_hour": window.start_hour,
        "end_hour": window.end_hour,
    })


def get_enrollment_policy() -> EnrollmentPolicy:
    """Get enrollment policy configuration."""
    global _enrollment_policy
    if _enrollment_policy is None:
        _enrollment_policy = EnrollmentPolicy(cooldown_days=settings.enrollment_cooldown_days)
        logger.info("Initialized default enrollment policy")
    return _enrollment_policy


def set_enrollment_policy(policy: EnrollmentPolicy) -> None:
    """Override enrollment policy configuration."""
    global _enrollment_policy
    _enrollment_policy = policy
    logger.info("Updated enrollment policy")


def reset_all_configs() -> None:
    """Reset all configurations to defaults (useful for testing)."""
    global _quiet_hours, _enrollment_policy
    _quiet_hours = None
    _enrollment_policy = None
    logger.info("Reset all configurations to defaults")
