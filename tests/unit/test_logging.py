"""
Unit tests for structured JSON logging.
"""
import json
import logging

import pytest

from reviewflow.lib.logging import (
    JSONFormatter,
    get_correlation_id,
    log_with_context,
    set_correlation_id,
)


def make_record(message="Enrollment stopped", **extra_fields):
    record = logging.LogRecord("reviewflow.test", logging.INFO, __file__, 1, message, None, None)
    if extra_fields:
        record.extra_fields = extra_fields
    return record


@pytest.fixture(autouse=True)
def clear_correlation_id():
    set_correlation_id(None)
    yield
    set_correlation_id(None)


@pytest.mark.unit
def test_json_formatter_basic_fields():
    payload = json.loads(JSONFormatter().format(make_record()))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "reviewflow.test"
    assert payload["message"] == "Enrollment stopped"
    assert "correlation_id" not in payload


@pytest.mark.unit
def test_json_formatter_includes_correlation_id_and_extras():
    set_correlation_id("req-123")

    payload = json.loads(JSONFormatter().format(make_record(enrollment_id="e-1", cancelled_sends=2)))

    assert get_correlation_id() == "req-123"
    assert payload["correlation_id"] == "req-123"
    assert payload["enrollment_id"] == "e-1"
    assert payload["cancelled_sends"] == 2


@pytest.mark.unit
def test_log_with_context_passes_extra_fields(caplog):
    logger = logging.getLogger("reviewflow.test")

    with caplog.at_level(logging.INFO, logger="reviewflow.test"):
        log_with_context(logger, "info", "Job enrolled in campaign", job_id="j-1")

    assert caplog.records[-1].extra_fields == {"job_id": "j-1"}
