"""
Tests for error handler middleware and custom exceptions.
"""
import pytest
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient
from starlette.exceptions import HTTPException as StarletteHTTPException

from reviewflow.api.middleware import (
    AppException,
    BadRequestException,
    ConflictException,
    NotFoundException,
    ValidationException,
    app_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from reviewflow.lib.campaign_validation import TouchDefinition


def build_app() -> FastAPI:
    app = FastAPI()
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
    return app


@pytest.mark.unit
def test_not_found_exception():
    exc = NotFoundException("Enrollment", "abc")

    assert exc.message == "Enrollment with id 'abc' not found"
    assert exc.status_code == 404
    assert exc.details == {"resource": "Enrollment", "resource_id": "abc"}


@pytest.mark.unit
def test_not_found_exception_without_id():
    exc = NotFoundException("Campaign")

    assert exc.message == "Campaign not found"


@pytest.mark.unit
def test_status_codes():
    assert BadRequestException("bad").status_code == 400
    assert ConflictException("Enrollment already stopped").status_code == 409
    assert AppException("boom").status_code == 500


@pytest.mark.unit
def test_validation_exception_wraps_errors():
    exc = ValidationException("Invalid campaign", errors={"touches": "Touch numbers must be sequential"})

    assert exc.status_code == 422
    assert exc.details["errors"] == {"touches": "Touch numbers must be sequential"}


@pytest.mark.integration
def test_conflict_response_includes_details():
    app = build_app()

    @app.post("/enrollments/stop")
    async def stop(request: Request):
        request.state.correlation_id = "corr-42"
        raise ConflictException(
            "Cannot apply 'stop' to an enrollment in state 'completed'",
            details={"status": "completed", "event": "stop"},
        )

    response = TestClient(app).post("/enrollments/stop")

    assert response.status_code == 409
    data = response.json()
    assert data["correlation_id"] == "corr-42"
    assert data["details"] == {"status": "completed", "event": "stop"}


@pytest.mark.integration
def test_request_validation_errors_are_listed():
    app = build_app()

    @app.post("/touches")
    async def create_touch(touch: TouchDefinition):
        return {"ok": True}

    response = TestClient(app).post(
        "/touches",
        json={"touch_number": 1, "channel": "email", "delay_hours": 0},
    )

    assert response.status_code == 422
    data = response.json()
    assert data["error"] == "Validation error"
    assert data["correlation_id"] == "unknown"
    assert any("Minimum 1 hour delay" in e["msg"] for e in data["details"]["errors"])


@pytest.mark.integration
def test_http_exception_handler():
    app = build_app()

    response = TestClient(app).get("/no-such-route")

    assert response.status_code == 404
    assert response.json()["error"] == "Not Found"


@pytest.mark.integration
def test_unhandled_exception_handler():
    app = build_app()

    @app.get("/explode")
    async def explode():
        raise RuntimeError("Unexpected error")

    response = TestClient(app, raise_server_exceptions=False).get("/explode")

    assert response.status_code == 500
    assert response.json()["error"] == "Internal server error"
