"""
Campaign models - multi-touch review request sequences and their touches.
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import (
    String,
    Integer,
    Boolean,
    DateTime,
    ForeignKey,
    CheckConstraint,
    UniqueConstraint,
    Enum as SQLEnum,
)
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from reviewflow.lib.db import Base


class ServiceType(str, enum.Enum):
    """Service types a business can perform for a job."""
    HVAC = "hvac"
    PLUMBING = "plumbing"
    ELECTRICAL = "electrical"
    CLEANING = "cleaning"
    ROOFING = "roofing"
    PAINTING = "painting"
    HANDYMAN = "handyman"
    OTHER = "other"


class CampaignStatus(str, enum.Enum):
    """Campaign availability for new enrollments."""
    ACTIVE = "active"
    PAUSED = "paused"


class MessageChannel(str, enum.Enum):
    """Delivery channel of a touch."""
    EMAIL = "email"
    SMS = "sms"


MAX_TOUCHES = 4
MIN_DELAY_HOURS = 1
MAX_DELAY_HOURS = 720  # 30 days


class Campaign(Base):
    """
    Campaign entity - an ordered sequence of review request touches.

    A NULL service_type makes the campaign a catch-all for every service type.
    """
    __tablename__ = "campaigns"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    business_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    service_type: Mapped[Optional[ServiceType]] = mapped_column(
        SQLEnum(ServiceType, name="service_type", values_callable=lambda e: [m.value for m in e]),
        nullable=True,
        index=True,
        comment="NULL = applies to all service types",
    )
    status: Mapped[CampaignStatus] = mapped_column(
        SQLEnum(CampaignStatus, name="campaign_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=CampaignStatus.ACTIVE,
        index=True,
    )
    personalization_enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )

    touches: Mapped[list["CampaignTouch"]] = relationship(
        back_populates="campaign",
        cascade="all, delete-orphan",
        order_by="CampaignTouch.touch_number",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Campaign(id={self.id}, service_type={self.service_type}, status={self.status})>"


class CampaignTouch(Base):
    """
    One step of a campaign sequence.

    delay_hours counts from the previous touch's send time, or from the
    enrollment anchor for touch 1.
    """
    __tablename__ = "campaign_touches"
    __table_args__ = (
        UniqueConstraint("campaign_id", "touch_number", name="uq_campaign_touch_number"),
        CheckConstraint(f"touch_number BETWEEN 1 AND {MAX_TOUCHES}", name="ck_touch_number_range"),
        CheckConstraint(
            f"delay_hours BETWEEN {MIN_DELAY_HOURS} AND {MAX_DELAY_HOURS}",
            name="ck_touch_delay_range",
        ),
    )

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    campaign_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("campaigns.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    touch_number: Mapped[int] = mapped_column(Integer, nullable=False)
    channel: Mapped[MessageChannel] = mapped_column(
        SQLEnum(MessageChannel, name="message_channel", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    delay_hours: Mapped[int] = mapped_column(Integer, nullable=False)

    # Weak reference: templates can be deleted without touching campaigns
    template_id: Mapped[Optional[UUID]] = mapped_column(
        PGUUID(as_uuid=True),
        nullable=True,
    )

    campaign: Mapped[Campaign] = relationship(back_populates="touches")

    def __repr__(self) -> str:
        return (
            f"<CampaignTouch(campaign_id={self.campaign_id}, touch={self.touch_number}, "
            f"channel={self.channel}, delay_hours={self.delay_hours})>"
        )
