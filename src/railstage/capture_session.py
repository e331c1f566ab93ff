from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Iterable

from .duplicates import find_matches, normalize_serial
from .exceptions import CaptureValidationError, InvalidTransitionError
from .models import CaptureCandidate, CaptureForm, DuplicatePrompt, PendingCapture, ScanRecord, utc_now

logger = logging.getLogger(__name__)


class CaptureState(str, Enum):
    IDLE = "IDLE"
    PENDING = "PENDING"
    DUPLICATE_REVIEW = "DUPLICATE_REVIEW"
    SAVING = "SAVING"


class ConfirmOutcome(str, Enum):
    SAVED = "saved"
    QUEUED = "queued"
    REJECTED = "rejected"
    NEEDS_REVIEW = "needs_review"
    INVALID = "invalid"


@dataclass(frozen=True)
class ConfirmResult:
    outcome: ConfirmOutcome
    record: ScanRecord | None = None
    local_id: int | None = None
    message: str | None = None


@dataclass(frozen=True)
class CaptureActionAvailability:
    can_confirm: bool
    can_discard: bool
    can_continue: bool


def capture_action_availability(state: CaptureState | str) -> CaptureActionAvailability:
    value = CaptureState(state)
    return CaptureActionAvailability(
        can_confirm=value is CaptureState.PENDING,
        can_discard=value in {CaptureState.PENDING, CaptureState.DUPLICATE_REVIEW},
        can_continue=value is CaptureState.DUPLICATE_REVIEW,
    )


SubmitPath = Callable[[ScanRecord], ConfirmResult]
SnapshotSource = Callable[[], Iterable[ScanRecord]]
SessionListener = Callable[["CaptureSession"], None]


def _match_key(record: ScanRecord) -> str:
    return record.id if record.id is not None else f"local:{record.local_id}"


class CaptureSession:
    """Single-slot staging buffer for the most recent detection.

    ``Idle -> Pending | DuplicateReview -> Saving -> Idle``. A detection while
    a candidate is already staged replaces it. Duplicates are checked again
    at confirm time against a fresh snapshot, and any match the operator has
    not yet seen sends the session back to review.
    """

    def __init__(
        self,
        snapshot: SnapshotSource,
        submit: SubmitPath,
        *,
        stage: str = "received",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._snapshot = snapshot
        self._submit = submit
        self.stage = stage
        self._clock = clock
        self.state = CaptureState.IDLE
        self.pending: PendingCapture | None = None
        self.prompt: DuplicatePrompt | None = None
        self._acknowledged: set[str] = set()
        self._generation = 0
        self._listeners: list[SessionListener] = []

    def subscribe(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    def availability(self) -> CaptureActionAvailability:
        return capture_action_availability(self.state)

    def detect(self, candidate: CaptureCandidate) -> CaptureState:
        self._generation += 1
        self._acknowledged = set()
        self.pending = PendingCapture.from_candidate(candidate, captured_at=self._clock())
        matches = find_matches(candidate.serial, self._snapshot())
        if matches:
            self._enter_review(matches)
        else:
            self.prompt = None
            self._set_state(CaptureState.PENDING, force=True)
        logger.info(
            "capture_detected",
            extra={"serial": candidate.serial, "matches": len(matches), "state": self.state.value},
        )
        return self.state

    def continue_anyway(self) -> CaptureState:
        if self.state is not CaptureState.DUPLICATE_REVIEW or self.prompt is None:
            raise InvalidTransitionError("continue", self.state.value)
        self._acknowledged.update(_match_key(match) for match in self.prompt.matches)
        self.prompt = None
        self._set_state(CaptureState.PENDING)
        return self.state

    def discard(self) -> CaptureState:
        if self.state is CaptureState.SAVING:
            raise InvalidTransitionError("discard", self.state.value)
        self._reset()
        return self.state

    def confirm(self, form: CaptureForm | None = None) -> ConfirmResult:
        if self.state is CaptureState.IDLE or self.pending is None:
            raise CaptureValidationError("Nothing to save yet. Scan a code first.")
        if self.state is not CaptureState.PENDING:
            raise InvalidTransitionError("confirm", self.state.value)

        serial = self.pending.serial.strip()
        if not serial:
            raise CaptureValidationError("Serial is empty. Scan the label again.")

        unseen = [
            match
            for match in find_matches(serial, self._snapshot())
            if _match_key(match) not in self._acknowledged
        ]
        if unseen:
            self._enter_review(unseen)
            return ConfirmResult(outcome=ConfirmOutcome.NEEDS_REVIEW, message="Possible duplicate - review")

        draft = self._build_draft(serial, form or CaptureForm())
        generation = self._generation
        self._set_state(CaptureState.SAVING)
        try:
            result = self._submit(draft)
        except Exception:
            if generation == self._generation:
                self._set_state(CaptureState.PENDING)
            raise
        if generation == self._generation:
            self._reset()
        return result

    def _build_draft(self, serial: str, form: CaptureForm) -> ScanRecord:
        pending = self.pending
        assert pending is not None
        attributes = {**pending.captured_attributes, **form.extra_attributes}
        return ScanRecord(
            serial=serial,
            stage=self.stage,
            operator=form.operator.strip(),
            slot_assignments=form.filled_slots(),
            captured_attributes=attributes,
            timestamp=self._clock(),
            raw_payload=pending.raw_payload,
        )

    def _enter_review(self, matches: list[ScanRecord]) -> None:
        assert self.pending is not None
        self.prompt = DuplicatePrompt(
            candidate_serial=normalize_serial(self.pending.serial),
            matches=tuple(matches),
            pending=self.pending,
        )
        self._set_state(CaptureState.DUPLICATE_REVIEW, force=True)

    def _reset(self) -> None:
        self.pending = None
        self.prompt = None
        self._acknowledged = set()
        self._set_state(CaptureState.IDLE, force=True)

    def _set_state(self, state: CaptureState, *, force: bool = False) -> None:
        if state is self.state and not force:
            return
        self.state = state
        for listener in list(self._listeners):
            listener(self)
