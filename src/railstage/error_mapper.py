from __future__ import annotations

from enum import Enum
from typing import Mapping

from .exceptions import (
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


REPLAY_CODES = frozenset({"IDEMPOTENT_REPLAY", "IDEMPOTENCY_REPLAY"})


class FailureKind(str, Enum):
    OFFLINE = "offline"
    UNAUTHORIZED = "unauthorized"
    TRANSIENT = "transient"
    REJECTED = "rejected"
    REPLAYED = "replayed"


def is_replay(exc: BaseException) -> bool:
    """The server already processed a request carrying this idempotency key."""
    return isinstance(exc, ApiError) and exc.code in REPLAY_CODES


def map_error(status_code: int, payload: Mapping[str, object] | None, trace_id: str | None) -> ApiError:
    payload = payload or {}
    code = str(payload.get("code") or "HTTP_ERROR")
    message = str(payload.get("message") or payload.get("error") or "Request failed")
    details = payload.get("details")
    payload_trace_id = payload.get("trace_id")
    resolved_trace_id = str(payload_trace_id) if payload_trace_id is not None else trace_id
    mapped: type[ApiError]
    if status_code == 401:
        mapped = AuthError
    elif status_code == 403:
        mapped = PermissionError
    elif status_code == 404:
        mapped = NotFoundError
    elif status_code in {400, 422}:
        mapped = ValidationError
    elif status_code == 409:
        mapped = ConflictError
    elif status_code == 429:
        mapped = RateLimitError
    elif status_code >= 500:
        mapped = ServerError
    else:
        mapped = ApiError
    return mapped(
        code=code,
        message=message,
        details=details,
        trace_id=resolved_trace_id,
        status_code=status_code,
        raw_payload=dict(payload),
    )


def classify_failure(exc: BaseException) -> FailureKind:
    """Decide whether a failed delivery is worth retrying.

    Only a definite answer from the server (a 4xx other than auth and
    throttling) counts as a rejection. Anything ambiguous stays retryable.
    A replay answer means an earlier attempt was stored, so it is reported
    apart from rejections.
    """
    if isinstance(exc, TransportError):
        return FailureKind.OFFLINE
    if is_replay(exc):
        return FailureKind.REPLAYED
    if isinstance(exc, (AuthError, PermissionError)):
        return FailureKind.UNAUTHORIZED
    if isinstance(exc, (ServerError, RateLimitError)):
        return FailureKind.TRANSIENT
    if isinstance(exc, (ValidationError, NotFoundError, ConflictError)):
        return FailureKind.REJECTED
    if isinstance(exc, ApiError) and 400 <= exc.status_code < 500:
        return FailureKind.REJECTED
    return FailureKind.TRANSIENT
