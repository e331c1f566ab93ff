from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _optional_id(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class ScanRecord(BaseModel):
    """One staged inventory entry.

    ``id`` is assigned by the server. A record without one is provisional:
    it was confirmed on this device and is still waiting in the outbox, and
    ``local_id`` points at that outbox entry.
    """

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    serial: str
    stage: str = "received"
    operator: str = ""
    slot_assignments: tuple[str, ...] = ()
    captured_attributes: dict[str, str] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utc_now)
    raw_payload: str | None = None
    transaction_id: str | None = None
    local_id: int | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: object) -> str | None:
        return _optional_id(value)

    @property
    def is_provisional(self) -> bool:
        return self.id is None


class CaptureCandidate(BaseModel):
    """Structured output of the external label parser."""

    serial: str
    captured_attributes: dict[str, str] = Field(default_factory=dict)
    raw_payload: str | None = None


class PendingCapture(BaseModel):
    model_config = ConfigDict(frozen=True)

    serial: str
    captured_attributes: dict[str, str] = Field(default_factory=dict)
    raw_payload: str | None = None
    captured_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_candidate(cls, candidate: CaptureCandidate, captured_at: datetime | None = None) -> PendingCapture:
        return cls(
            serial=candidate.serial,
            captured_attributes=dict(candidate.captured_attributes),
            raw_payload=candidate.raw_payload,
            captured_at=captured_at or utc_now(),
        )


class DuplicatePrompt(BaseModel):
    model_config = ConfigDict(frozen=True)

    candidate_serial: str
    matches: tuple[ScanRecord, ...]
    pending: PendingCapture


class CaptureForm(BaseModel):
    """Operator-entered fields merged into the record at confirm time."""

    operator: str = ""
    slot_assignments: list[str] = Field(default_factory=list)
    extra_attributes: dict[str, str] = Field(default_factory=dict)

    def filled_slots(self) -> tuple[str, ...]:
        return tuple(slot.strip() for slot in self.slot_assignments if slot and slot.strip())


class OutboxEntry(BaseModel):
    local_id: int
    payload: ScanRecord
    enqueued_at: datetime = Field(default_factory=utc_now)
    idempotency_key: str
    attempts: int = 0
    last_error: str | None = None


class ParkedEntry(BaseModel):
    entry: OutboxEntry
    parked_at: datetime = Field(default_factory=utc_now)
    reason: str
    status_code: int | None = None


class SubmitAck(BaseModel):
    id: str
    record: ScanRecord

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: object) -> str:
        coerced = _optional_id(value)
        if coerced is None:
            raise ValueError("server acknowledgement is missing an id")
        return coerced


class EventKind(str, Enum):
    CREATED = "created"
    DELETED = "deleted"
    CLEARED = "cleared"


class InboundEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: EventKind
    record: ScanRecord | None = None
    record_id: str | None = None
    revision: int | None = None

    @field_validator("record_id", mode="before")
    @classmethod
    def _coerce_record_id(cls, value: object) -> str | None:
        return _optional_id(value)

    @classmethod
    def created(cls, record: ScanRecord, revision: int | None = None) -> InboundEvent:
        if record.id is None:
            raise ValueError("created events must carry a server id")
        return cls(kind=EventKind.CREATED, record=record, record_id=record.id, revision=revision)

    @classmethod
    def deleted(cls, record_id: str | int, revision: int | None = None) -> InboundEvent:
        return cls(kind=EventKind.DELETED, record_id=record_id, revision=revision)

    @classmethod
    def cleared(cls, revision: int | None = None) -> InboundEvent:
        return cls(kind=EventKind.CLEARED, revision=revision)
