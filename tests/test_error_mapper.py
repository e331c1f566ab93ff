from __future__ import annotations

import pytest

from railstage.error_mapper import FailureKind, classify_failure, is_replay, map_error
from railstage.exceptions import (
    ApiError,
    AuthError,
    ConflictError,
    NotFoundError,
    PermissionError,
    RateLimitError,
    ServerError,
    TransportError,
    ValidationError,
)
from railstage.ui_errors import to_user_facing_error


def test_error_mapper_classes() -> None:
    err = map_error(401, {"code": "INVALID_TOKEN", "message": "bad"}, "trace")
    assert isinstance(err, AuthError)
    assert err.trace_id == "trace"
    assert isinstance(map_error(403, {"code": "PERMISSION_DENIED"}, None), PermissionError)
    assert isinstance(map_error(404, {}, None), NotFoundError)
    assert isinstance(map_error(422, {}, None), ValidationError)
    assert isinstance(map_error(409, {}, None), ConflictError)
    assert isinstance(map_error(429, {}, None), RateLimitError)
    assert isinstance(map_error(503, {}, None), ServerError)
    assert type(map_error(418, {}, None)) is ApiError


def test_error_mapper_falls_back_to_error_field() -> None:
    err = map_error(400, {"error": "serial is required"}, "trace-400")
    assert err.message == "serial is required"
    assert err.code == "HTTP_ERROR"
    assert "trace_id=trace-400" in str(err)


@pytest.mark.parametrize(
    ("status", "kind"),
    [
        (400, FailureKind.REJECTED),
        (401, FailureKind.UNAUTHORIZED),
        (403, FailureKind.UNAUTHORIZED),
        (404, FailureKind.REJECTED),
        (409, FailureKind.REJECTED),
        (410, FailureKind.REJECTED),
        (422, FailureKind.REJECTED),
        (429, FailureKind.TRANSIENT),
        (500, FailureKind.TRANSIENT),
        (503, FailureKind.TRANSIENT),
    ],
)
def test_classify_failure_by_status(status: int, kind: FailureKind) -> None:
    assert classify_failure(map_error(status, {"code": "X", "message": "m"}, None)) is kind


def test_classify_failure_transport_and_unknown() -> None:
    transport = TransportError(code="TRANSPORT_ERROR", message="down", details=None, trace_id=None, status_code=0)
    assert classify_failure(transport) is FailureKind.OFFLINE
    assert classify_failure(RuntimeError("boom")) is FailureKind.TRANSIENT


def test_user_facing_error_messages() -> None:
    transport = TransportError(code="TRANSPORT_ERROR", message="timed out", details=None, trace_id=None, status_code=0)
    assert to_user_facing_error(transport).message == "Server unreachable"

    rejected = to_user_facing_error(map_error(422, {"code": "VALIDATION_ERROR", "message": "bad serial"}, "t-1"))
    assert rejected.message == "bad serial"
    assert rejected.details == "VALIDATION_ERROR (HTTP 422)"
    assert rejected.trace_id == "t-1"


def test_replay_answer_is_not_a_rejection() -> None:
    replay = map_error(409, {"code": "IDEMPOTENT_REPLAY", "message": "Already processed"}, None)
    conflict = map_error(409, {"code": "IDEMPOTENCY_KEY_REUSED_WITH_DIFFERENT_PAYLOAD", "message": "m"}, None)

    assert isinstance(replay, ConflictError)
    assert is_replay(replay)
    assert classify_failure(replay) is FailureKind.REPLAYED
    assert classify_failure(conflict) is FailureKind.REJECTED
