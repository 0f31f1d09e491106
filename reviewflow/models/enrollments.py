"""
Enrollment models - a job's run through a campaign and its materialized sends.
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4, UUID
import enum

from sqlalchemy import String, Integer, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from reviewflow.lib.db import Base
from reviewflow.models.campaigns import MessageChannel


class EnrollmentStatus(str, enum.Enum):
    """Enrollment lifecycle state."""
    PENDING = "pending"
    ACTIVE = "active"
    ADVANCING = "advancing"
    STOPPED = "stopped"
    COMPLETED = "completed"


OPEN_ENROLLMENT_STATUSES = (
    EnrollmentStatus.PENDING,
    EnrollmentStatus.ACTIVE,
    EnrollmentStatus.ADVANCING,
)


class StopReason(str, enum.Enum):
    """Why an enrollment was stopped before exhausting its touches."""
    REVIEW_CLICKED = "review_clicked"
    FEEDBACK_SUBMITTED = "feedback_submitted"
    OPTED_OUT_SMS = "opted_out_sms"
    OPTED_OUT_EMAIL = "opted_out_email"
    OWNER_STOPPED = "owner_stopped"
    CAMPAIGN_PAUSED = "campaign_paused"
    CAMPAIGN_DELETED = "campaign_deleted"
    REPEAT_JOB = "repeat_job"


# Stops that mean the customer already engaged with the review flow
REVIEW_STOP_REASONS = (StopReason.REVIEW_CLICKED, StopReason.FEEDBACK_SUBMITTED)

STOP_REASON_LABELS = {
    StopReason.REVIEW_CLICKED: "Customer clicked review link",
    StopReason.FEEDBACK_SUBMITTED: "Customer submitted feedback",
    StopReason.OPTED_OUT_SMS: "Opted out of SMS",
    StopReason.OPTED_OUT_EMAIL: "Opted out of email",
    StopReason.OWNER_STOPPED: "Manually stopped",
    StopReason.CAMPAIGN_PAUSED: "Campaign paused",
    StopReason.CAMPAIGN_DELETED: "Campaign deleted",
    StopReason.REPEAT_JOB: "New job enrolled (restart)",
}


class SendStatus(str, enum.Enum):
    """Delivery state of a scheduled send."""
    PENDING = "pending"
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"
    CANCELLED = "cancelled"


class CampaignEnrollment(Base):
    """
    Enrollment entity - binds a completed job's customer to a campaign run.
    """
    __tablename__ = "campaign_enrollments"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    business_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, index=True)
    campaign_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("campaigns.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    job_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, index=True)
    customer_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, index=True)

    status: Mapped[EnrollmentStatus] = mapped_column(
        SQLEnum(EnrollmentStatus, name="enrollment_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=EnrollmentStatus.PENDING,
        index=True,
    )
    current_touch: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        comment="Touch number of the first unsent touch",
    )

    anchor_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Job completion instant; touch 1 delay counts from here",
    )
    customer_timezone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    stop_reason: Mapped[Optional[StopReason]] = mapped_column(
        SQLEnum(StopReason, name="enrollment_stop_reason", values_callable=lambda e: [m.value for m in e]),
        nullable=True,
    )
    stopped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    scheduled_sends: Mapped[list["ScheduledSend"]] = relationship(
        back_populates="enrollment",
        cascade="all, delete-orphan",
        order_by="ScheduledSend.touch_number",
    )

    enrolled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
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
        return (
            f"<CampaignEnrollment(id={self.id}, status={self.status}, "
            f"current_touch={self.current_touch})>"
        )


class ScheduledSend(Base):
    """
    One planned touch of an enrollment at an absolute UTC instant.

    The dispatcher marks rows sent/skipped/failed; the scheduling core only
    creates rows and cancels pending ones when an enrollment stops.
    """
    __tablename__ = "scheduled_sends"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    enrollment_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("campaign_enrollments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    touch_number: Mapped[int] = mapped_column(Integer, nullable=False)
    channel: Mapped[MessageChannel] = mapped_column(
        SQLEnum(MessageChannel, name="message_channel", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    template_id: Mapped[Optional[UUID]] = mapped_column(PGUUID(as_uuid=True), nullable=True)

    scheduled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    status: Mapped[SendStatus] = mapped_column(
        SQLEnum(SendStatus, name="send_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=SendStatus.PENDING,
        index=True,
    )
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    enrollment: Mapped[CampaignEnrollment] = relationship(back_populates="scheduled_sends")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return (
            f"<ScheduledSend(enrollment_id={self.enrollment_id}, touch={self.touch_number}, "
            f"scheduled_at={self.scheduled_at}, status={self.status})>"
        )
