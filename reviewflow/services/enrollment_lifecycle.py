"""
Enrollment lifecycle state machine.

States:
    pending    -> enrollment created, no scheduled sends yet
    active     -> sends materialized, cursor on the first unsent touch
    advancing  -> a touch was just sent, cursor about to move
    stopped    -> terminal, stop_reason recorded, pending sends cancelled
    completed  -> terminal, every touch sent

The core does not decide when a stop signal (review click, opt-out, ...)
happens; it only applies it. Conflict classification and the decisions
for deferred (conflicted or queued) jobs live here as pure functions. Every change goes through next_status so
illegal moves raise instead of silently corrupting an enrollment.
"""
import enum
from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel

from reviewflow.lib.logging import get_logger, log_with_context
from reviewflow.models.enrollments import (
    EnrollmentStatus,
    REVIEW_STOP_REASONS,
    ScheduledSend,
    SendStatus,
    StopReason,
)
from reviewflow.services.touch_planner import PlannedTouch


logger = get_logger(__name__)


class EnrollmentEvent(str, enum.Enum):
    """Signals that move an enrollment between states."""
    SCHEDULE_MATERIALIZED = "schedule_materialized"
    TOUCH_SENT = "touch_sent"
    CURSOR_ADVANCED = "cursor_advanced"
    SEQUENCE_EXHAUSTED = "sequence_exhausted"
    STOP = "stop"


TRANSITIONS: dict[tuple[EnrollmentStatus, EnrollmentEvent], EnrollmentStatus] = {
    (EnrollmentStatus.PENDING, EnrollmentEvent.SCHEDULE_MATERIALIZED): EnrollmentStatus.ACTIVE,
    (EnrollmentStatus.ACTIVE, EnrollmentEvent.TOUCH_SENT): EnrollmentStatus.ADVANCING,
    (EnrollmentStatus.ADVANCING, EnrollmentEvent.CURSOR_ADVANCED): EnrollmentStatus.ACTIVE,
    (EnrollmentStatus.ADVANCING, EnrollmentEvent.SEQUENCE_EXHAUSTED): EnrollmentStatus.COMPLETED,
    (EnrollmentStatus.PENDING, EnrollmentEvent.STOP): EnrollmentStatus.STOPPED,
    (EnrollmentStatus.ACTIVE, EnrollmentEvent.STOP): EnrollmentStatus.STOPPED,
    (EnrollmentStatus.ADVANCING, EnrollmentEvent.STOP): EnrollmentStatus.STOPPED,
}

TERMINAL_STATUSES = (EnrollmentStatus.STOPPED, EnrollmentStatus.COMPLETED)


class EnrollmentTransitionError(Exception):
    """Raised when an event is not allowed in the enrollment's current state."""

    def __init__(self, status: EnrollmentStatus, event: EnrollmentEvent, detail: Optional[str] = None):
        self.status = status
        self.event = event
        message = f"Cannot apply '{event.value}' to an enrollment in state '{status.value}'"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


def next_status(current: EnrollmentStatus, event: EnrollmentEvent) -> EnrollmentStatus:
    """Look up the state an event leads to, or raise EnrollmentTransitionError."""
    current = EnrollmentStatus(current)
    try:
        return TRANSITIONS[(current, event)]
    except KeyError:
        detail = "enrollment already ended" if current in TERMINAL_STATUSES else None
        raise EnrollmentTransitionError(current, event, detail) from None


def _apply(enrollment: Any, event: EnrollmentEvent) -> None:
    previous = EnrollmentStatus(enrollment.status)
    enrollment.status = next_status(previous, event)
    log_with_context(
        logger,
        "info",
        f"Enrollment {previous.value} -> {enrollment.status.value}",
        enrollment_id=str(enrollment.id),
        event=event.value,
    )


def materialize_schedule(enrollment: Any, planned: list[PlannedTouch]) -> list[ScheduledSend]:
    """
    Attach planned touches to a pending enrollment as scheduled sends.

    Moves the enrollment to active with the cursor on touch 1.
    """
    if not planned:
        raise EnrollmentTransitionError(
            EnrollmentStatus(enrollment.status),
            EnrollmentEvent.SCHEDULE_MATERIALIZED,
            "campaign has no touches",
        )

    _apply(enrollment, EnrollmentEvent.SCHEDULE_MATERIALIZED)

    sends = [
        ScheduledSend(
            enrollment_id=enrollment.id,
            touch_number=p.touch_number,
            channel=p.channel,
            template_id=p.template_id,
            scheduled_at=p.scheduled_at,
            status=SendStatus.PENDING,
        )
        for p in planned
    ]
    enrollment.scheduled_sends.extend(sends)
    enrollment.current_touch = planned[0].touch_number
    return sends


def advance_cursor(enrollment: Any, sent_touch_number: int, now: datetime) -> EnrollmentStatus:
    """
    Move an active enrollment past a touch the dispatcher has sent.

    Returns:
        The resulting status: active when touches remain, completed otherwise
    """
    status = EnrollmentStatus(enrollment.status)
    if status != EnrollmentStatus.ACTIVE:
        raise EnrollmentTransitionError(status, EnrollmentEvent.TOUCH_SENT)
    if sent_touch_number != enrollment.current_touch:
        raise EnrollmentTransitionError(
            status,
            EnrollmentEvent.TOUCH_SENT,
            f"touch {sent_touch_number} is not the current touch ({enrollment.current_touch})",
        )

    _apply(enrollment, EnrollmentEvent.TOUCH_SENT)

    last_touch = max((s.touch_number for s in enrollment.scheduled_sends), default=sent_touch_number)
    if sent_touch_number >= last_touch:
        _apply(enrollment, EnrollmentEvent.SEQUENCE_EXHAUSTED)
        enrollment.completed_at = now
    else:
        enrollment.current_touch = sent_touch_number + 1
        _apply(enrollment, EnrollmentEvent.CURSOR_ADVANCED)

    return enrollment.status


def stop_enrollment(enrollment: Any, reason: StopReason, now: datetime) -> int:
    """
    Stop an open enrollment and cancel its unsent touches.

    Returns:
        Number of scheduled sends cancelled
    """
    _apply(enrollment, EnrollmentEvent.STOP)
    enrollment.stop_reason = StopReason(reason)
    enrollment.stopped_at = now

    cancelled = 0
    for send in enrollment.scheduled_sends:
        if send.status == SendStatus.PENDING:
            send.status = SendStatus.CANCELLED
            cancelled += 1

    log_with_context(
        logger,
        "info",
        "Enrollment stopped",
        enrollment_id=str(enrollment.id),
        stop_reason=enrollment.stop_reason.value,
        cancelled_sends=cancelled,
    )
    return cancelled


# ============================================================================
# Enrollment conflicts
# ============================================================================


class ConflictCase(str, enum.Enum):
    """Outcome of checking a customer for enrollment conflicts."""
    CLEAR = "clear"
    ACTIVE_SEQUENCE = "active_sequence"
    RECENT_REVIEW = "recent_review"


class ConflictCheck(BaseModel):
    """Result of an enrollment conflict check."""
    case: ConflictCase
    active_enrollment_id: Optional[UUID] = None
    active_campaign_id: Optional[UUID] = None
    current_touch: Optional[int] = None
    last_reviewed_at: Optional[datetime] = None


def classify_conflict(
    active_enrollment: Optional[Any],
    last_review_stopped_at: Optional[datetime],
    now: datetime,
    cooldown_days: int,
) -> ConflictCheck:
    """
    Decide whether a customer can be enrolled again.

    An open enrollment blocks with active_sequence. A review or feedback
    within the cooldown suppresses with recent_review. A sequence that
    completed without a review does not block.
    """
    if active_enrollment is not None:
        return ConflictCheck(
            case=ConflictCase.ACTIVE_SEQUENCE,
            active_enrollment_id=active_enrollment.id,
            active_campaign_id=active_enrollment.campaign_id,
            current_touch=active_enrollment.current_touch,
        )

    if last_review_stopped_at is not None and last_review_stopped_at >= now - timedelta(days=cooldown_days):
        return ConflictCheck(case=ConflictCase.RECENT_REVIEW, last_reviewed_at=last_review_stopped_at)

    return ConflictCheck(case=ConflictCase.CLEAR)


# ============================================================================
# Deferred enrollments
# ============================================================================


class QueueDecision(str, enum.Enum):
    """What to do with a job queued behind a customer's running sequence."""
    WAIT = "wait"
    SUPPRESS = "suppress"
    ENROLL = "enroll"


def conflict_is_stale(conflict_detected_at: datetime, now: datetime, auto_resolve_hours: int) -> bool:
    """True once an unresolved conflict is old enough to resolve by replacement."""
    return conflict_detected_at <= now - timedelta(hours=auto_resolve_hours)


def decide_queued_job(
    open_enrollment: Optional[Any],
    last_ended_enrollment: Optional[Any],
    now: datetime,
    gap_days: int,
) -> QueueDecision:
    """
    Decide whether a queued job can be enrolled yet.

    The job waits while the customer has an open enrollment, and for
    gap_days after the last one ended. If that enrollment stopped because
    the customer reviewed or left feedback, the job is suppressed instead.
    """
    if open_enrollment is not None:
        return QueueDecision.WAIT
    if last_ended_enrollment is None:
        return QueueDecision.ENROLL

    if last_ended_enrollment.stop_reason in REVIEW_STOP_REASONS:
        return QueueDecision.SUPPRESS

    ended_at = last_ended_enrollment.stopped_at or last_ended_enrollment.completed_at
    if ended_at is not None and now - ended_at < timedelta(days=gap_days):
        return QueueDecision.WAIT
    return QueueDecision.ENROLL
