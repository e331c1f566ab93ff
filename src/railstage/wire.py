"""Translation between the server's flat JSON records and :class:`ScanRecord`.

Older clients sent wagon ids and parser fields as top-level keys; all of that
variation is absorbed here so the rest of the engine only sees the canonical
model.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping

from .models import EventKind, InboundEvent, ScanRecord, utc_now

logger = logging.getLogger(__name__)

SLOT_KEYS = ("wagon1Id", "wagon2Id", "wagon3Id")
ATTRIBUTE_KEYS = ("grade", "railType", "spec", "lengthM")

_RESERVED_KEYS = {
    "id",
    "_id",
    "serial",
    "stage",
    "operator",
    "timestamp",
    "raw",
    "rawPayload",
    "transactionId",
    "transaction_id",
    "revision",
    "slots",
    "wagons",
    *SLOT_KEYS,
}

PUSH_EVENT_KINDS = {
    "new-scan": EventKind.CREATED,
    "deleted-scan": EventKind.DELETED,
    "cleared-scans": EventKind.CLEARED,
}


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _slots(payload: Mapping[str, Any]) -> tuple[str, ...]:
    listed = payload.get("slots") or payload.get("wagons")
    if isinstance(listed, (list, tuple)):
        values = [_text(item) for item in listed]
    else:
        values = [_text(payload.get(key)) for key in SLOT_KEYS]
    return tuple(value for value in values if value)


def _attributes(payload: Mapping[str, Any]) -> dict[str, str]:
    attributes: dict[str, str] = {}
    nested = payload.get("attributes")
    if isinstance(nested, Mapping):
        attributes.update({str(key): _text(value) for key, value in nested.items() if _text(value)})
    for key, value in payload.items():
        if key in _RESERVED_KEYS or key == "attributes" or isinstance(value, (Mapping, list, tuple)):
            continue
        text = _text(value)
        if text:
            attributes[key] = text
    return attributes


def _timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    text = _text(value)
    if not text:
        return utc_now()
    return datetime.fromisoformat(text.replace("Z", "+00:00"))


def record_from_wire(payload: Mapping[str, Any]) -> ScanRecord:
    if not isinstance(payload, Mapping):
        raise ValueError("Expected scan record to be a JSON object")
    serial = _text(payload.get("serial"))
    if not serial:
        raise ValueError("Scan record is missing a serial")
    return ScanRecord(
        id=payload.get("id", payload.get("_id")),
        serial=serial,
        stage=_text(payload.get("stage")) or "received",
        operator=_text(payload.get("operator")),
        slot_assignments=_slots(payload),
        captured_attributes=_attributes(payload),
        timestamp=_timestamp(payload.get("timestamp")),
        raw_payload=_text(payload.get("raw") or payload.get("rawPayload")) or None,
        transaction_id=_text(payload.get("transactionId") or payload.get("transaction_id")) or None,
    )


def record_to_wire(record: ScanRecord) -> dict[str, Any]:
    body: dict[str, Any] = {
        "serial": record.serial,
        "stage": record.stage,
        "operator": record.operator,
        "timestamp": record.timestamp.isoformat(),
    }
    for index, key in enumerate(SLOT_KEYS):
        body[key] = record.slot_assignments[index] if index < len(record.slot_assignments) else ""
    if len(record.slot_assignments) > len(SLOT_KEYS):
        body["slots"] = list(record.slot_assignments)
    for key in ATTRIBUTE_KEYS:
        body[key] = record.captured_attributes.get(key, "")
    for key, value in record.captured_attributes.items():
        if key not in body:
            body[key] = value
    if record.raw_payload:
        body["raw"] = record.raw_payload
    if record.transaction_id:
        body["transactionId"] = record.transaction_id
    if record.id is not None:
        body["id"] = record.id
    return body


def records_from_wire(payload: Any) -> list[ScanRecord]:
    """Parse a staged list response, skipping rows that cannot be read.

    The response itself must be a list, or an object wrapping one under
    ``scans`` or ``rows``; anything else raises ``ValueError``.
    """
    if isinstance(payload, Mapping):
        if "scans" in payload:
            payload = payload["scans"]
        elif "rows" in payload:
            payload = payload["rows"]
        else:
            raise ValueError("Staged list response has neither 'scans' nor 'rows'")
    if not isinstance(payload, list):
        raise ValueError("Expected staged list response to be a JSON array")
    records: list[ScanRecord] = []
    for index, item in enumerate(payload):
        try:
            records.append(record_from_wire(item))
        except ValueError as exc:
            row_id = item.get("id", item.get("_id")) if isinstance(item, Mapping) else None
            logger.warning("staged_row_skipped", extra={"index": index, "record_id": row_id, "error": str(exc)})
    return records


def _revision(payload: Any) -> int | None:
    if not isinstance(payload, Mapping):
        return None
    raw = payload.get("revision")
    if raw is None or raw == "":
        return None
    return int(raw)


def event_from_wire(name: str, payload: Any) -> InboundEvent:
    """Build an inbound event from a push channel message name and body."""
    kind = PUSH_EVENT_KINDS.get(name)
    if kind is None:
        raise ValueError(f"Unknown push event: {name!r}")
    revision = _revision(payload)
    if kind is EventKind.CREATED:
        body = payload
        if isinstance(payload, Mapping) and isinstance(payload.get("scan"), Mapping):
            body = payload["scan"]
        return InboundEvent.created(record_from_wire(body), revision=revision)
    if kind is EventKind.DELETED:
        record_id = payload.get("id") if isinstance(payload, Mapping) else payload
        if record_id is None or _text(record_id) == "":
            raise ValueError("deleted-scan event is missing an id")
        return InboundEvent.deleted(record_id, revision=revision)
    return InboundEvent.cleared(revision=revision)
