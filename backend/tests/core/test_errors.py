"""Error Taxonomy tests — kinds, default statuses and envelope rendering.

Tests cover:
    - ErrorKind is closed with the expected default statuses
    - status codes outside [400, 599] rejected
    - Upstream accepts only 502/503
    - to_response() shape, details omitted when absent
    - from_status classification of framework statuses
    - oversized request bodies classified as Validation 413
"""

import pytest

from gateway.core.envelope import SAFE_INTERNAL_MESSAGE
from gateway.core.errors import DEFAULT_STATUS, ErrorKind, GatewayError


def test_error_kind_is_closed():
    assert {k.value for k in ErrorKind} == {
        "Validation", "NotFound", "RateLimited", "Upstream", "Internal", "Timeout",
    }


def test_default_statuses():
    assert DEFAULT_STATUS == {
        ErrorKind.VALIDATION: 400,
        ErrorKind.NOT_FOUND: 404,
        ErrorKind.RATE_LIMITED: 429,
        ErrorKind.UPSTREAM: 502,
        ErrorKind.INTERNAL: 500,
        ErrorKind.TIMEOUT: 504,
    }


def test_kind_accepts_string_tag():
    err = GatewayError("Upstream", "source unavailable")
    assert err.kind is ErrorKind.UPSTREAM
    assert err.status_code == 502


@pytest.mark.parametrize("status", [200, 399, 600])
def test_status_outside_error_range_rejected(status):
    with pytest.raises(ValueError):
        GatewayError(ErrorKind.VALIDATION, "bad", status)


def test_upstream_allows_503():
    assert GatewayError.upstream("down", 503).status_code == 503


def test_upstream_rejects_other_statuses():
    with pytest.raises(ValueError):
        GatewayError.upstream("down", 500)


def test_to_response_without_details():
    err = GatewayError.upstream("source unavailable")
    assert err.to_response() == {
        "success": False,
        "error": {"message": "source unavailable", "statusCode": 502},
    }


def test_to_response_with_details():
    err = GatewayError.validation("bad page", details={"field": "page"})
    assert err.to_response()["error"]["details"] == {"field": "page"}


def test_internal_uses_safe_message():
    err = GatewayError.internal()
    assert err.status_code == 500
    assert err.message == SAFE_INTERNAL_MESSAGE


@pytest.mark.parametrize(
    "status,kind",
    [
        (404, ErrorKind.NOT_FOUND),
        (405, ErrorKind.NOT_FOUND),
        (422, ErrorKind.VALIDATION),
        (401, ErrorKind.VALIDATION),
        (503, ErrorKind.UPSTREAM),
        (504, ErrorKind.TIMEOUT),
        (500, ErrorKind.INTERNAL),
    ],
)
def test_from_status_classification(status, kind):
    err = GatewayError.from_status(status, "x")
    assert err.kind is kind
    assert err.status_code == status


def test_payload_too_large_is_validation_413():
    err = GatewayError.payload_too_large()
    assert err.kind is ErrorKind.VALIDATION
    assert err.status_code == 413
    assert err.to_response()["error"]["message"] == "Request body too large"
