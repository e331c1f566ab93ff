from .capture_session import (
    CaptureActionAvailability,
    CaptureSession,
    CaptureState,
    ConfirmOutcome,
    ConfirmResult,
    capture_action_availability,
)
from .clients import StagedScansClient
from .config import ConfigError, EngineConfig, load_config
from .connectivity import ConnectivityMonitor
from .duplicates import find_matches, normalize_serial
from .engine import StagingEngine
from .error_mapper import FailureKind, classify_failure, map_error
from .exceptions import (
    ApiError,
    AuthError,
    CaptureValidationError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PermissionError,
    RateLimitError,
    ServerError,
    TransportError,
    ValidationError,
)
from .http_client import HttpClient
from .idempotency import IdempotencyKeys, new_idempotency_keys
from .models import (
    CaptureCandidate,
    CaptureForm,
    DuplicatePrompt,
    EventKind,
    InboundEvent,
    OutboxEntry,
    ParkedEntry,
    PendingCapture,
    ScanRecord,
    SubmitAck,
)
from .outbox import DurableOutbox, FlushResult
from .outbox_store import OutboxState, OutboxStore
from .parsing import CandidateParser, RawTextParser, clean_payload
from .reconciler import SyncReconciler, matches_provisional
from .telemetry import TelemetryLogger, build_event
from .worklist import WorklistStore

__all__ = [
    "ApiError",
    "AuthError",
    "CandidateParser",
    "CaptureActionAvailability",
    "CaptureCandidate",
    "CaptureForm",
    "CaptureSession",
    "CaptureState",
    "CaptureValidationError",
    "ConfigError",
    "ConfirmOutcome",
    "ConfirmResult",
    "ConflictError",
    "ConnectivityMonitor",
    "DuplicatePrompt",
    "DurableOutbox",
    "EngineConfig",
    "EventKind",
    "FailureKind",
    "FlushResult",
    "HttpClient",
    "IdempotencyKeys",
    "InboundEvent",
    "InvalidTransitionError",
    "NotFoundError",
    "OutboxEntry",
    "OutboxState",
    "OutboxStore",
    "ParkedEntry",
    "PendingCapture",
    "PermissionError",
    "RateLimitError",
    "RawTextParser",
    "ScanRecord",
    "ServerError",
    "StagedScansClient",
    "StagingEngine",
    "SubmitAck",
    "SyncReconciler",
    "TelemetryLogger",
    "TransportError",
    "ValidationError",
    "WorklistStore",
    "build_event",
    "capture_action_availability",
    "classify_failure",
    "clean_payload",
    "find_matches",
    "load_config",
    "map_error",
    "matches_provisional",
    "new_idempotency_keys",
    "normalize_serial",
]
