from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from ..error_mapper import is_replay
from ..exceptions import ApiError
from ..idempotency import IDEMPOTENCY_HEADER
from ..models import OutboxEntry, ScanRecord, SubmitAck
from ..wire import record_from_wire, record_to_wire, records_from_wire
from .base import BaseClient


@dataclass
class StagedScansClient(BaseClient):
    def submit(self, draft: ScanRecord, idempotency_key: str) -> SubmitAck:
        """POST one draft. The same key must be sent on every retry of that draft.

        A replay answer that still names the stored record is treated as the
        acknowledgement it stands for; one without an id is re-raised.
        """
        try:
            data = self._request(
                "POST",
                "/api/scan",
                json_body=record_to_wire(draft),
                headers={IDEMPOTENCY_HEADER: idempotency_key},
                operation="submit_scan",
            )
        except ApiError as exc:
            data = _replayed_body(exc)
            if data is None:
                raise
        if not isinstance(data, Mapping):
            raise ValueError("Expected submit response to be a JSON object")
        body: Mapping[str, Any] = data.get("scan") if isinstance(data.get("scan"), Mapping) else data
        record = _merge_ack(draft, body)
        return SubmitAck(id=body.get("id", body.get("_id")), record=record)

    def submit_entry(self, entry: OutboxEntry) -> SubmitAck:
        return self.submit(entry.payload, entry.idempotency_key)

    def remove(self, record_id: str) -> bool:
        data = self._request("DELETE", f"/api/staged/{record_id}", operation="remove_scan")
        if isinstance(data, Mapping) and data.get("ok") is False:
            return False
        return True

    def list_staged(self) -> list[ScanRecord]:
        data = self._request("GET", "/api/staged", operation="list_staged")
        return records_from_wire(data if data is not None else [])


def _replayed_body(exc: ApiError) -> Mapping[str, Any] | None:
    if not is_replay(exc) or not isinstance(exc.raw_payload, Mapping):
        return None
    body = exc.raw_payload.get("scan") if isinstance(exc.raw_payload.get("scan"), Mapping) else exc.raw_payload
    if body.get("id", body.get("_id")) is None:
        return None
    return exc.raw_payload


def _merge_ack(draft: ScanRecord, body: Mapping[str, Any]) -> ScanRecord:
    """Prefer the server's copy, falling back to the draft when it echoes only an id."""
    if body.get("serial"):
        record = record_from_wire(body)
        if record.transaction_id is None and draft.transaction_id:
            record = record.model_copy(update={"transaction_id": draft.transaction_id})
        return record
    raw_id = body.get("id", body.get("_id"))
    return draft.model_copy(update={"id": None if raw_id is None else str(raw_id), "local_id": None})
