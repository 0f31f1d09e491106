"""
SQLAlchemy models package.
Import all models here to ensure they're registered with Base.metadata.
"""
from reviewflow.models.campaigns import Campaign, CampaignTouch
from reviewflow.models.enrollments import CampaignEnrollment, ScheduledSend

__all__ = [
    "Campaign",
    "CampaignTouch",
    "CampaignEnrollment",
    "ScheduledSend",
]
