"""Error Hierarchy — tests for HTTP status mapping and the REST error envelope.

Tests cover:
    - Each domain error carries its code and http_status
    - to_response() includes context ids
    - ValidationBlockedError and TransportFailureError extend the envelope
"""

from remessa.core.errors import (
    AuthenticationError, ConflictError, ErrorContext, ForbiddenError,
    InvalidTransitionError, ResourceNotFoundError, TransformError,
    TransportFailureError, ValidationBlockedError,
)


def test_status_codes():
    assert ResourceNotFoundError("Remittance", 1).http_status == 404
    assert AuthenticationError("missing").http_status == 401
    assert ForbiddenError("view", "remittances").http_status == 403
    assert ConflictError("dup").http_status == 409
    assert InvalidTransitionError("no", "SENT").http_status == 400
    assert ValidationBlockedError([]).http_status == 422
    assert TransformError("bad").http_status == 422
    assert TransportFailureError("down").http_status == 502


def test_to_response_carries_context():
    error = InvalidTransitionError(
        "not ready", "SENT", ErrorContext(remittance_id=4, user_id=2),
    )
    body = error.to_response()["error"]
    assert body["code"] == "INVALID_TRANSITION"
    assert body["category"] == "business_rule"
    assert body["context"]["remittance_id"] == 4
    assert body["context"]["user_id"] == 2


def test_validation_blocked_lists_violations():
    violations = [{"code": "CD001", "level": "IMPEDITIVA"}]
    body = ValidationBlockedError(violations).to_response()["error"]
    assert body["code"] == "VALIDATION_BLOCKED"
    assert body["violations"] == violations
    assert "1 blocking" in body["message"]


def test_transport_failure_exposes_details():
    body = TransportFailureError("rejected", ["layout"]).to_response()["error"]
    assert body["code"] == "TRANSPORT_FAILURE"
    assert body["details"] == ["layout"]
    assert body["severity"] == "critical"
