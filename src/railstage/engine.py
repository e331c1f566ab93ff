from __future__ import annotations

import logging
import uuid
from pathlib import Path
from time import perf_counter
from typing import Any

from .capture_session import CaptureSession, CaptureState, ConfirmOutcome, ConfirmResult
from .clients.staged_scans_client import StagedScansClient
from .config import EngineConfig, load_config
from .connectivity import ConnectivityMonitor
from .error_mapper import FailureKind, classify_failure
from .exceptions import ApiError, CaptureValidationError, NotFoundError
from .http_client import HttpClient
from .models import CaptureCandidate, CaptureForm, OutboxEntry, ScanRecord, SubmitAck
from .outbox import DurableOutbox, FlushResult
from .outbox_store import OutboxStore
from .parsing import CandidateParser, RawTextParser
from .reconciler import SyncReconciler
from .telemetry import TelemetryLogger, build_event
from .ui_errors import to_user_facing_error
from .worklist import WorklistStore

logger = logging.getLogger(__name__)

SLOT_COUNT = 3


def resolve_device_id(config: EngineConfig) -> str:
    """Configured device id, or one generated once and kept beside the outbox."""
    if config.device_id:
        return config.device_id
    path = Path(config.data_dir) / "device_id"
    if path.exists():
        stored = path.read_text(encoding="utf-8").strip()
        if stored:
            return stored
    path.parent.mkdir(parents=True, exist_ok=True)
    device_id = str(uuid.uuid4())
    path.write_text(device_id, encoding="utf-8")
    return device_id


class StagingEngine:
    """Capture, outbox and sync wired together for one device.

    The engine is single-threaded: push events, connectivity signals and
    operator actions must all be delivered on the thread that owns it.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        client: StagedScansClient | None = None,
        outbox_store: OutboxStore | None = None,
        parser: CandidateParser | None = None,
        telemetry: TelemetryLogger | None = None,
        access_token: str | None = None,
        online: bool = True,
    ) -> None:
        self.config = config or load_config()
        self.worklist = WorklistStore()
        self.reconciler = SyncReconciler(self.worklist)
        self.outbox = DurableOutbox(outbox_store or OutboxStore(path=self.config.outbox_path), self.reconciler)
        self.monitor = ConnectivityMonitor(
            self.flush_outbox,
            has_pending=lambda: self.outbox.depth > 0,
            online=online,
        )
        if client is None:
            http = HttpClient(config=self.config, on_transport_error=self.monitor.mark_offline)
            client = StagedScansClient(
                http=http,
                access_token=access_token,
                device_id=resolve_device_id(self.config),
            )
        self.client = client
        self.parser = parser or RawTextParser()
        self.telemetry = telemetry or TelemetryLogger(enabled=self.config.telemetry_enabled)
        self.form = CaptureForm(operator=self.config.default_operator, slot_assignments=[""] * SLOT_COUNT)
        self.capture = CaptureSession(self.worklist.snapshot, self._submit_draft, stage=self.config.stage)
        self.status = "Ready"
        self.monitor.subscribe(self._on_connectivity_changed)

    @property
    def state(self) -> CaptureState:
        return self.capture.state

    def snapshot(self) -> tuple[ScanRecord, ...]:
        return self.worklist.snapshot()

    def start(self) -> bool:
        """Initial resync; also flushes anything left in the outbox by a previous run."""
        return self.refresh()

    # capture

    def handle_detection(self, raw_text: str) -> CaptureState:
        return self.detect(self.parser.parse(raw_text))

    def detect(self, candidate: CaptureCandidate) -> CaptureState:
        state = self.capture.detect(candidate)
        if state is CaptureState.DUPLICATE_REVIEW:
            self._set_status("Possible duplicate - review")
        else:
            self._set_status("Captured - review & confirm")
        self._emit("capture", "capture_detected", "detect", success=True, context={"state": state.value})
        return state

    def continue_anyway(self) -> CaptureState:
        state = self.capture.continue_anyway()
        self._set_status("Captured - review & confirm")
        return state

    def discard(self) -> CaptureState:
        state = self.capture.discard()
        self._set_status("Ready")
        return state

    def set_slot(self, index: int, value: str) -> None:
        if not 0 <= index < SLOT_COUNT:
            raise IndexError(f"slot index out of range: {index}")
        slots = list(self.form.slot_assignments)
        slots[index] = value
        self.form = self.form.model_copy(update={"slot_assignments": slots})

    def set_operator(self, operator: str) -> None:
        self.form = self.form.model_copy(update={"operator": operator})

    def confirm(self) -> ConfirmResult:
        try:
            result = self.capture.confirm(self.form)
        except CaptureValidationError as exc:
            self._set_status(exc.reason)
            logger.info("capture_confirm_invalid", extra={"reason": exc.reason})
            return ConfirmResult(outcome=ConfirmOutcome.INVALID, message=exc.reason)
        if result.outcome in {ConfirmOutcome.SAVED, ConfirmOutcome.QUEUED}:
            self.form = self.form.model_copy(update={"slot_assignments": [""] * SLOT_COUNT})
        if result.message:
            self._set_status(result.message)
        self._emit(
            "capture",
            "capture_confirmed",
            "confirm",
            success=result.outcome in {ConfirmOutcome.SAVED, ConfirmOutcome.QUEUED},
            context={"outcome": result.outcome.value},
        )
        return result

    def _submit_draft(self, draft: ScanRecord) -> ConfirmResult:
        local_id = self.outbox.enqueue(draft)
        provisional = self.worklist.get_provisional(local_id)
        if not self.monitor.online:
            return ConfirmResult(
                outcome=ConfirmOutcome.QUEUED,
                record=provisional,
                local_id=local_id,
                message=self._queued_message(),
            )
        flush = self._flush_pass()
        if local_id in flush.acknowledged or local_id in flush.replayed:
            confirmed = self._find_confirmed(provisional.transaction_id if provisional else None)
            return ConfirmResult(outcome=ConfirmOutcome.SAVED, record=confirmed, local_id=local_id, message="Saved")
        for parked in self.outbox.parked():
            if parked.entry.local_id == local_id:
                return ConfirmResult(
                    outcome=ConfirmOutcome.REJECTED,
                    record=parked.entry.payload,
                    local_id=local_id,
                    message=f"Rejected by server: {parked.reason}",
                )
        return ConfirmResult(
            outcome=ConfirmOutcome.QUEUED,
            record=provisional,
            local_id=local_id,
            message=self._queued_message(),
        )

    def _find_confirmed(self, transaction_id: str | None) -> ScanRecord | None:
        if not transaction_id:
            return None
        for record in self.worklist.snapshot():
            if not record.is_provisional and record.transaction_id == transaction_id:
                return record
        return None

    # outbox

    def flush_outbox(self) -> int:
        return self._flush_pass().sent

    def _flush_pass(self) -> FlushResult:
        started = perf_counter()
        self.outbox.flush(self._send)
        result = self.outbox.last_flush
        if result is None or result.skipped:
            return result or FlushResult(remaining=self.outbox.depth, skipped=True)
        if result.aborted is FailureKind.OFFLINE:
            self._set_status(f"Offline - {self.outbox.depth} pending")
        elif result.aborted is FailureKind.UNAUTHORIZED:
            self._set_status("Sign-in required - changes kept on this device")
        elif result.parked:
            latest = self.outbox.parked()[-1]
            self._set_status(f"Rejected by server: {latest.reason}")
            self._emit(
                "error",
                "outbox_entry_rejected",
                "flush",
                success=False,
                error_code=str(latest.status_code) if latest.status_code is not None else None,
                context={"parked": result.parked},
            )
        elif (result.sent or result.replayed) and self.outbox.depth == 0:
            self._set_status("Synced")
        self._emit(
            "outbox",
            "outbox_flushed",
            "flush",
            duration_ms=int((perf_counter() - started) * 1000),
            success=result.ok,
            context={
                "sent": result.sent,
                "replayed": len(result.replayed),
                "remaining": result.remaining,
                "parked": result.parked,
            },
        )
        if result.replayed and result.aborted is None:
            self.refresh()
        return result

    def requeue_parked(self, local_id: int) -> bool:
        requeued = self.outbox.requeue_parked(local_id)
        if requeued:
            self._set_status(self._queued_message())
        return requeued

    def discard_parked(self, local_id: int) -> bool:
        return self.outbox.discard_parked(local_id)

    def _send(self, entry: OutboxEntry) -> SubmitAck:
        return self.client.submit_entry(entry)

    # worklist

    def remove_record(self, record_id: str | int) -> bool:
        """Delete a confirmed record on the server, then drop it locally.

        Provisional rows have no server id yet, so they cannot be addressed
        here. A 404 counts as already removed.
        """
        key = str(record_id)
        try:
            removed = self.client.remove(key)
        except NotFoundError:
            logger.info("remove_already_gone", extra={"record_id": key})
            removed = True
        except ApiError as exc:
            if classify_failure(exc) is FailureKind.REJECTED:
                error = to_user_facing_error(exc)
                self._set_status(f"Could not remove: {error.message}")
                logger.error(
                    "remove_rejected",
                    extra={"record_id": key, "details": error.details, "trace_id": error.trace_id},
                )
            else:
                self._set_status("Could not remove - check connection and retry")
                logger.warning("remove_failed", extra={"record_id": key, "code": exc.code})
            return False
        if not removed:
            self._set_status("Server refused to remove the record")
            logger.warning("remove_refused", extra={"record_id": key})
            return False
        self.reconciler.deleted(key)
        self._set_status("Removed")
        self.monitor.request_succeeded()
        return True

    def refresh(self) -> bool:
        started = perf_counter()
        try:
            records = self.client.list_staged()
        except ApiError as exc:
            self._set_status("Could not refresh - showing last known list")
            logger.warning("refresh_failed", extra={"code": exc.code, "status_code": exc.status_code})
            self._emit("sync", "full_refresh", "list", success=False, error_code=exc.code)
            return False
        except ValueError as exc:
            self._set_status("Could not refresh - showing last known list")
            logger.warning("refresh_unreadable", extra={"error": str(exc)})
            self._emit("sync", "full_refresh", "list", success=False, error_code="INVALID_RESPONSE")
            return False
        self.reconciler.full_refresh(records)
        self._emit(
            "sync",
            "full_refresh",
            "list",
            duration_ms=int((perf_counter() - started) * 1000),
            success=True,
            context={"records": len(records)},
        )
        self.monitor.request_succeeded()
        return True

    def handle_push(self, name: str, payload: Any = None) -> bool:
        """Entry point for push channel messages (``new-scan``, ``deleted-scan``, ``cleared-scans``)."""
        try:
            return self.reconciler.apply_wire(name, payload)
        except ValueError as exc:
            logger.warning("push_event_ignored", extra={"event": name, "error": str(exc)})
            return False

    # connectivity

    def set_online(self, online: bool) -> int:
        return self.monitor.set_online(online)

    def _on_connectivity_changed(self, online: bool) -> None:
        if not online:
            self._set_status(f"Offline - {self.outbox.depth} pending")
        self._emit(
            "connectivity",
            "connectivity_changed",
            "online" if online else "offline",
            success=online,
            context={"pending": self.outbox.depth},
        )

    # helpers

    def _queued_message(self) -> str:
        return "Saved locally - will sync"

    def _set_status(self, status: str) -> None:
        self.status = status
        logger.info("status_changed", extra={"status": status})

    def _emit(self, category: str, name: str, action: str, **kwargs: Any) -> None:
        self.telemetry.emit(build_event(category=category, name=name, action=action, **kwargs))
