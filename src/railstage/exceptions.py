from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ApiError(Exception):
    code: str
    message: str
    details: object | None
    trace_id: str | None
    status_code: int
    raw_payload: object | None = None

    def __str__(self) -> str:
        trace = f" trace_id={self.trace_id}" if self.trace_id else ""
        return f"[{self.status_code}] {self.code}: {self.message}{trace}"


class AuthError(ApiError):
    """Authentication failed or the device token is invalid."""


class PermissionError(ApiError):
    """The operator is not allowed to stage or remove records."""


class NotFoundError(ApiError):
    pass


class ValidationError(ApiError):
    pass


class ConflictError(ApiError):
    """409 or conflict-style errors, including idempotency key reuse."""


class RateLimitError(ApiError):
    """429 throttling error."""


class ServerError(ApiError):
    """5xx server-side failures."""


class TransportError(ApiError):
    """Network/transport failure before an HTTP response was returned."""


class CaptureValidationError(ValueError):
    """The staged candidate cannot be confirmed as it stands."""

    def __init__(self, reason: str, *, field: str = "serial") -> None:
        self.reason = reason
        self.field = field
        super().__init__(f"{field}: {reason}")


class InvalidTransitionError(ValueError):
    """A capture action was requested from a state that does not allow it."""

    def __init__(self, action: str, state: str) -> None:
        self.action = action
        self.state = state
        super().__init__(f"Cannot {action} while capture session is {state}")
