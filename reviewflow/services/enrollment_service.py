"""
Enrollment service - persists campaign enrollments for completed jobs.

Wraps the pure scheduling core (matcher, planner, lifecycle) with database
access. Each public operation runs in a single transaction: the enrollment
row and all of its scheduled sends are committed together or not at all.

Stop signals (review clicked, feedback submitted, opt-outs, campaign
paused/deleted) arrive from outside; this service only applies them.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field
from sqlalchemy import select, and_, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reviewflow.lib.config_flags import get_enrollment_policy
from reviewflow.lib.logging import get_logger, log_with_context
from reviewflow.models.campaigns import Campaign, CampaignStatus, ServiceType
from reviewflow.models.enrollments import (
    CampaignEnrollment,
    EnrollmentStatus,
    OPEN_ENROLLMENT_STATUSES,
    REVIEW_STOP_REASONS,
    ScheduledSend,
    SendStatus,
    StopReason,
)
from reviewflow.services.campaign_matcher import recommended_campaign
from reviewflow.services.enrollment_lifecycle import (
    TERMINAL_STATUSES,
    ConflictCase,
    ConflictCheck,
    QueueDecision,
    advance_cursor,
    classify_conflict,
    conflict_is_stale,
    decide_queued_job,
    materialize_schedule,
    stop_enrollment as stop_enrollment_state,
)
from reviewflow.services.touch_planner import PlannedTouch, plan_touches


logger = get_logger(__name__)


NO_CAMPAIGN_REASON = "No active campaign for this service type"


class EnrollmentNotFoundError(LookupError):
    """Raised when an enrollment id does not exist."""


class CampaignNotFoundError(LookupError):
    """Raised when a campaign id does not exist."""


class EnrollmentResult(BaseModel):
    """Outcome of enrolling a completed job."""
    success: bool
    enrollment_id: Optional[UUID] = None
    campaign_id: Optional[UUID] = None
    skipped: bool = False
    skip_reason: Optional[str] = None
    error: Optional[str] = None
    conflict: Optional[ConflictCheck] = None
    scheduled: list[PlannedTouch] = Field(default_factory=list)


class QueuedJobOutcome(BaseModel):
    """What happened to a queued job on one pass."""
    decision: QueueDecision
    result: Optional[EnrollmentResult] = None


class EnrollmentService:
    """Service for enrolling jobs in review campaigns and stopping them."""

    def __init__(self, db_session: Session):
        self.db = db_session

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_enrollment(self, enrollment_id: UUID) -> CampaignEnrollment:
        """Load an enrollment or raise EnrollmentNotFoundError."""
        enrollment = self.db.get(CampaignEnrollment, enrollment_id)
        if enrollment is None:
            raise EnrollmentNotFoundError(f"Enrollment {enrollment_id} not found")
        return enrollment

    def get_campaign(self, campaign_id: UUID, business_id: Optional[UUID] = None) -> Campaign:
        """
        Load a campaign or raise CampaignNotFoundError.

        When business_id is given, another business's campaign is reported
        as not found.
        """
        campaign = self.db.get(Campaign, campaign_id)
        if campaign is None or (business_id is not None and campaign.business_id != business_id):
            raise CampaignNotFoundError(f"Campaign {campaign_id} not found")
        return campaign

    def list_active_campaigns(self, business_id: UUID) -> list[Campaign]:
        """Active campaigns of a business in creation order."""
        stmt = (
            select(Campaign)
            .where(
                and_(
                    Campaign.business_id == business_id,
                    Campaign.status == CampaignStatus.ACTIVE,
                )
            )
            .order_by(Campaign.created_at)
        )
        return list(self.db.execute(stmt).scalars().all())

    def _open_enrollments(self, *criteria) -> list[CampaignEnrollment]:
        stmt = select(CampaignEnrollment).where(
            and_(CampaignEnrollment.status.in_(OPEN_ENROLLMENT_STATUSES), *criteria)
        )
        return list(self.db.execute(stmt).scalars().all())

    def check_enrollment_conflict(
        self,
        customer_id: UUID,
        business_id: UUID,
        now: datetime,
        cooldown_days: Optional[int] = None,
    ) -> ConflictCheck:
        """
        Check whether a customer can be enrolled again.

        Args:
            customer_id: Customer about to be enrolled
            business_id: Owning business
            now: Current instant
            cooldown_days: Review cooldown (defaults to the enrollment policy)

        Returns:
            ConflictCheck with case clear, active_sequence or recent_review
        """
        if cooldown_days is None:
            cooldown_days = get_enrollment_policy().cooldown_days

        active_stmt = (
            select(CampaignEnrollment)
            .where(
                and_(
                    CampaignEnrollment.customer_id == customer_id,
                    CampaignEnrollment.business_id == business_id,
                    CampaignEnrollment.status.in_(OPEN_ENROLLMENT_STATUSES),
                )
            )
            .order_by(CampaignEnrollment.enrolled_at.desc())
            .limit(1)
        )
        active = self.db.execute(active_stmt).scalars().first()

        review_stmt = select(func.max(CampaignEnrollment.stopped_at)).where(
            and_(
                CampaignEnrollment.customer_id == customer_id,
                CampaignEnrollment.business_id == business_id,
                CampaignEnrollment.stop_reason.in_(REVIEW_STOP_REASONS),
            )
        )
        last_review_at = self.db.execute(review_stmt).scalar()

        return classify_conflict(active, last_review_at, now, cooldown_days)

    # ------------------------------------------------------------------
    # Enrollment
    # ------------------------------------------------------------------

    def enroll_job(
        self,
        job_id: UUID,
        business_id: UUID,
        customer_id: UUID,
        service_type: ServiceType,
        completed_at: Optional[datetime],
        now: datetime,
        customer_timezone: Optional[str] = None,
        campaign_id: Optional[UUID] = None,
        force: bool = False,
        replace_active: bool = False,
    ) -> EnrollmentResult:
        """
        Enroll a completed job's customer in a review campaign.

        Steps:
        1. Use the given campaign, or the recommended active campaign for
           the job's service type
        2. Unless forced or replacing, check for conflicts: a recent review
           suppresses the enrollment, an open sequence flags a conflict
        3. When replacing, stop the customer's open enrollments (repeat_job)
        4. Plan every touch from the job completion time and persist the
           enrollment with its scheduled sends in one commit

        Args:
            job_id: Completed job
            business_id: Owning business
            customer_id: Customer to contact
            service_type: Service type of the job
            completed_at: Job completion instant, the schedule anchor
                (falls back to now)
            now: Current instant
            customer_timezone: Customer IANA timezone for quiet hours
            campaign_id: Explicit campaign, bypassing the matcher
            force: Skip the conflict check
            replace_active: Stop open enrollments and enroll anyway

        Returns:
            EnrollmentResult; skipped results carry a skip_reason

        Raises:
            CampaignNotFoundError: If campaign_id does not exist or belongs
                to another business
            SQLAlchemyError: If persisting fails (the transaction is rolled back)
        """
        if campaign_id is not None:
            campaign = self.get_campaign(campaign_id, business_id)
            if CampaignStatus(campaign.status) != CampaignStatus.ACTIVE:
                campaign = None
        else:
            campaign = recommended_campaign(self.list_active_campaigns(business_id), service_type)

        if campaign is None:
            logger.info(f"No campaign for job {job_id}, skipping enrollment")
            return EnrollmentResult(success=False, skipped=True, skip_reason=NO_CAMPAIGN_REASON)

        if not force and not replace_active:
            conflict = self.check_enrollment_conflict(customer_id, business_id, now)

            if conflict.case == ConflictCase.RECENT_REVIEW:
                return EnrollmentResult(
                    success=False,
                    skipped=True,
                    skip_reason=(
                        f"Customer reviewed recently ({conflict.last_reviewed_at.isoformat()}). Suppressed."
                    ),
                    conflict=conflict,
                )

            if conflict.case == ConflictCase.ACTIVE_SEQUENCE:
                active_campaign = self.db.get(Campaign, conflict.active_campaign_id)
                campaign_name = active_campaign.name if active_campaign is not None else "Unknown"
                return EnrollmentResult(
                    success=False,
                    skipped=True,
                    skip_reason=f"Customer has active sequence: {campaign_name}",
                    conflict=conflict,
                )

        if not campaign.touches:
            return EnrollmentResult(
                success=False,
                campaign_id=campaign.id,
                error="Campaign has no touches configured",
            )

        anchor = completed_at or now
        planned = plan_touches(campaign, anchor, customer_timezone)

        try:
            if replace_active:
                for existing in self._open_enrollments(
                    CampaignEnrollment.customer_id == customer_id,
                    CampaignEnrollment.business_id == business_id,
                ):
                    stop_enrollment_state(existing, StopReason.REPEAT_JOB, now)

            enrollment = CampaignEnrollment(
                id=uuid4(),
                business_id=business_id,
                campaign_id=campaign.id,
                job_id=job_id,
                customer_id=customer_id,
                status=EnrollmentStatus.PENDING,
                current_touch=1,
                anchor_at=anchor,
                customer_timezone=customer_timezone,
                enrolled_at=now,
            )
            self.db.add(enrollment)
            materialize_schedule(enrollment, planned)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to enroll job {job_id}: {e}", exc_info=True)
            raise

        log_with_context(
            logger,
            "info",
            "Job enrolled in campaign",
            job_id=str(job_id),
            enrollment_id=str(enrollment.id),
            campaign_id=str(campaign.id),
            touches=len(planned),
        )

        return EnrollmentResult(
            success=True,
            enrollment_id=enrollment.id,
            campaign_id=campaign.id,
            scheduled=planned,
        )

    # ------------------------------------------------------------------
    # Stop signals
    # ------------------------------------------------------------------

    def _stop_all(self, enrollments: list[CampaignEnrollment], reason: StopReason, now: datetime) -> int:
        try:
            for enrollment in enrollments:
                stop_enrollment_state(enrollment, reason, now)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return len(enrollments)

    def stop_enrollment(self, enrollment_id: UUID, reason: StopReason, now: datetime) -> CampaignEnrollment:
        """
        Stop a single enrollment and cancel its pending sends.

        Raises:
            EnrollmentNotFoundError: If the enrollment does not exist
            EnrollmentTransitionError: If the enrollment already ended
        """
        enrollment = self.get_enrollment(enrollment_id)
        self._stop_all([enrollment], reason, now)
        return enrollment

    def stop_customer_enrollments(
        self,
        customer_id: UUID,
        business_id: UUID,
        reason: StopReason,
        now: datetime,
    ) -> int:
        """Stop every open enrollment of a customer. Returns the number stopped."""
        enrollments = self._open_enrollments(
            CampaignEnrollment.customer_id == customer_id,
            CampaignEnrollment.business_id == business_id,
        )
        return self._stop_all(enrollments, reason, now)

    def stop_job_enrollments(self, job_id: UUID, reason: StopReason, now: datetime) -> int:
        """Stop every open enrollment created for a job. Returns the number stopped."""
        enrollments = self._open_enrollments(CampaignEnrollment.job_id == job_id)
        return self._stop_all(enrollments, reason, now)

    def stop_campaign_enrollments(self, campaign_id: UUID, reason: StopReason, now: datetime) -> int:
        """Stop every open enrollment of a campaign (paused or deleted)."""
        enrollments = self._open_enrollments(CampaignEnrollment.campaign_id == campaign_id)
        stopped = self._stop_all(enrollments, reason, now)
        logger.info(f"Stopped {stopped} enrollments for campaign {campaign_id} ({reason.value})")
        return stopped

    # ------------------------------------------------------------------
    # Deferred enrollments
    # ------------------------------------------------------------------

    def _last_ended_enrollment(self, customer_id: UUID, business_id: UUID) -> Optional[CampaignEnrollment]:
        stmt = (
            select(CampaignEnrollment)
            .where(
                and_(
                    CampaignEnrollment.customer_id == customer_id,
                    CampaignEnrollment.business_id == business_id,
                    CampaignEnrollment.status.in_(TERMINAL_STATUSES),
                )
            )
            .order_by(CampaignEnrollment.updated_at.desc())
            .limit(1)
        )
        return self.db.execute(stmt).scalars().first()

    def resolve_stale_conflict(
        self,
        job_id: UUID,
        business_id: UUID,
        customer_id: UUID,
        service_type: ServiceType,
        conflict_detected_at: datetime,
        now: datetime,
        customer_timezone: Optional[str] = None,
        campaign_id: Optional[UUID] = None,
    ) -> Optional[EnrollmentResult]:
        """
        Enroll a job whose conflict has gone unresolved for too long.

        Once conflict_auto_resolve_hours have passed since the conflict was
        detected, the customer's open enrollments are stopped (repeat_job)
        and the job is enrolled with its schedule anchored on now.

        Returns:
            The enrollment result, or None while the conflict is still fresh
        """
        policy = get_enrollment_policy()
        if not conflict_is_stale(conflict_detected_at, now, policy.conflict_auto_resolve_hours):
            return None

        logger.info(f"Auto-resolving enrollment conflict for job {job_id}")
        return self.enroll_job(
            job_id=job_id,
            business_id=business_id,
            customer_id=customer_id,
            service_type=service_type,
            completed_at=None,
            now=now,
            customer_timezone=customer_timezone,
            campaign_id=campaign_id,
            replace_active=True,
        )

    def process_queued_job(
        self,
        job_id: UUID,
        business_id: UUID,
        customer_id: UUID,
        service_type: ServiceType,
        now: datetime,
        customer_timezone: Optional[str] = None,
        campaign_id: Optional[UUID] = None,
    ) -> QueuedJobOutcome:
        """
        Enroll a job queued behind the customer's previous sequence.

        The job waits while the customer has an open enrollment or the last
        one ended less than queue_after_gap_days ago. It is suppressed when
        that enrollment stopped on a review or feedback.
        """
        policy = get_enrollment_policy()
        open_enrollments = self._open_enrollments(
            CampaignEnrollment.customer_id == customer_id,
            CampaignEnrollment.business_id == business_id,
        )
        decision = decide_queued_job(
            open_enrollments[0] if open_enrollments else None,
            self._last_ended_enrollment(customer_id, business_id),
            now,
            policy.queue_after_gap_days,
        )

        if decision != QueueDecision.ENROLL:
            logger.info(f"Queued job {job_id}: {decision.value}")
            return QueuedJobOutcome(decision=decision)

        result = self.enroll_job(
            job_id=job_id,
            business_id=business_id,
            customer_id=customer_id,
            service_type=service_type,
            completed_at=None,
            now=now,
            customer_timezone=customer_timezone,
            campaign_id=campaign_id,
            force=True,
        )
        return QueuedJobOutcome(decision=decision, result=result)

    # ------------------------------------------------------------------
    # Dispatcher feedback
    # ------------------------------------------------------------------

    def record_touch_sent(self, enrollment_id: UUID, touch_number: int, now: datetime) -> CampaignEnrollment:
        """
        Mark a touch as sent and move the enrollment cursor.

        Raises:
            EnrollmentNotFoundError: If the enrollment does not exist
            EnrollmentTransitionError: If the touch is not the current one
        """
        enrollment = self.get_enrollment(enrollment_id)

        try:
            advance_cursor(enrollment, touch_number, now)
            send: Optional[ScheduledSend] = next(
                (s for s in enrollment.scheduled_sends if s.touch_number == touch_number),
                None,
            )
            if send is not None:
                send.status = SendStatus.SENT
                send.sent_at = now
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

        return enrollment
