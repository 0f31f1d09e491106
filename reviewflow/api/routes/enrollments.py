"""
Enrollment API routes.

Enroll completed jobs, stop enrollments and report sent touches. Domain
errors from the service are mapped to 404 (missing rows) and 409 (illegal
state changes).
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel, Field

from reviewflow.api.dependencies import get_enrollment_service, get_now
from reviewflow.api.middleware.error_handler import (
    BadRequestException,
    ConflictException,
    NotFoundException,
)
from reviewflow.lib.campaign_validation import EnrollmentStopRequest
from reviewflow.models.campaigns import MAX_TOUCHES, ServiceType
from reviewflow.models.enrollments import (
    STOP_REASON_LABELS,
    CampaignEnrollment,
    EnrollmentStatus,
    StopReason,
)
from reviewflow.services.enrollment_lifecycle import EnrollmentTransitionError
from reviewflow.services.enrollment_service import (
    CampaignNotFoundError,
    EnrollmentNotFoundError,
    EnrollmentResult,
    EnrollmentService,
)


router = APIRouter(tags=["enrollments"])


class EnrollJobRequest(BaseModel):
    """Completed job to enroll in a review campaign."""
    business_id: UUID
    customer_id: UUID
    service_type: ServiceType
    completed_at: Optional[datetime] = Field(default=None, description="Job completion instant; defaults to now")
    customer_timezone: Optional[str] = None
    campaign_id: Optional[UUID] = Field(default=None, description="Explicit campaign; otherwise the recommended one")
    force: bool = Field(default=False, description="Skip the conflict check")
    replace_active: bool = Field(default=False, description="Stop the customer's open enrollments first")

    class Config:
        json_schema_extra = {
            "example": {
                "business_id": "550e8400-e29b-41d4-a716-446655440000",
                "customer_id": "660e8400-e29b-41d4-a716-446655440000",
                "service_type": "hvac",
                "completed_at": "2024-06-10T18:00:00Z",
                "customer_timezone": "America/New_York",
            }
        }


class EnrollmentResponse(BaseModel):
    """Enrollment state after a stop or a sent touch."""
    id: UUID
    status: EnrollmentStatus
    current_touch: int
    stop_reason: Optional[StopReason] = None
    stop_reason_label: Optional[str] = None
    stopped_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_enrollment(cls, enrollment: CampaignEnrollment) -> "EnrollmentResponse":
        return cls(
            id=enrollment.id,
            status=enrollment.status,
            current_touch=enrollment.current_touch,
            stop_reason=enrollment.stop_reason,
            stop_reason_label=STOP_REASON_LABELS.get(enrollment.stop_reason) if enrollment.stop_reason else None,
            stopped_at=enrollment.stopped_at,
            completed_at=enrollment.completed_at,
        )


@router.post("/jobs/{job_id}/enrollments", response_model=EnrollmentResult)
def enroll_job(
    job_id: UUID,
    request: EnrollJobRequest,
    service: EnrollmentService = Depends(get_enrollment_service),
    now: datetime = Depends(get_now),
) -> EnrollmentResult:
    """
    Enroll a completed job's customer in a review campaign.

    Skipped enrollments (no campaign, recent review, open sequence) are not
    errors: they return success=false with a skip_reason.
    """
    try:
        result = service.enroll_job(
            job_id=job_id,
            business_id=request.business_id,
            customer_id=request.customer_id,
            service_type=request.service_type,
            completed_at=request.completed_at,
            now=now,
            customer_timezone=request.customer_timezone,
            campaign_id=request.campaign_id,
            force=request.force,
            replace_active=request.replace_active,
        )
    except CampaignNotFoundError:
        raise NotFoundException("Campaign", str(request.campaign_id))

    if result.error:
        raise BadRequestException(result.error, details={"campaign_id": str(result.campaign_id)})
    return result


@router.post("/enrollments/{enrollment_id}/stop", response_model=EnrollmentResponse)
def stop_enrollment(
    enrollment_id: UUID,
    request: EnrollmentStopRequest,
    service: EnrollmentService = Depends(get_enrollment_service),
    now: datetime = Depends(get_now),
) -> EnrollmentResponse:
    """Stop an enrollment and cancel its pending sends."""
    try:
        enrollment = service.stop_enrollment(enrollment_id, request.stop_reason, now)
    except EnrollmentNotFoundError:
        raise NotFoundException("Enrollment", str(enrollment_id))
    except EnrollmentTransitionError as e:
        raise ConflictException(str(e), details={"status": e.status.value, "event": e.event.value})

    return EnrollmentResponse.from_enrollment(enrollment)


@router.post("/enrollments/{enrollment_id}/touches/{touch_number}/sent", response_model=EnrollmentResponse)
def record_touch_sent(
    enrollment_id: UUID,
    touch_number: int = Path(..., ge=1, le=MAX_TOUCHES),
    service: EnrollmentService = Depends(get_enrollment_service),
    now: datetime = Depends(get_now),
) -> EnrollmentResponse:
    """Report that the dispatcher sent a touch; advances or completes the enrollment."""
    try:
        enrollment = service.record_touch_sent(enrollment_id, touch_number, now)
    except EnrollmentNotFoundError:
        raise NotFoundException("Enrollment", str(enrollment_id))
    except EnrollmentTransitionError as e:
        raise ConflictException(str(e), details={"status": e.status.value, "event": e.event.value})

    return EnrollmentResponse.from_enrollment(enrollment)
