"""
API dependencies for FastAPI dependency injection.

Provides the database session, the enrollment service and the current
instant. Routes never read the clock themselves; tests override get_now
to pin time.
"""
from datetime import datetime, timezone

from fastapi import Depends
from sqlalchemy.orm import Session

from reviewflow.lib.db import get_db as get_db_session
from reviewflow.services.enrollment_service import EnrollmentService


# Re-export get_db for convenience
get_db = get_db_session


def get_now() -> datetime:
    """Current UTC instant."""
    return datetime.now(timezone.utc)


def get_enrollment_service(db: Session = Depends(get_db)) -> EnrollmentService:
    """Enrollment service bound to the request's database session."""
    return EnrollmentService(db)
