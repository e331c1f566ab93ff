from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from .error_mapper import FailureKind, classify_failure
from .exceptions import ApiError
from .idempotency import new_idempotency_keys
from .models import OutboxEntry, ParkedEntry, ScanRecord, SubmitAck
from .outbox_store import OutboxStore
from .reconciler import SyncReconciler

logger = logging.getLogger(__name__)

SendFn = Callable[[OutboxEntry], SubmitAck]


@dataclass(frozen=True)
class FlushResult:
    sent: int = 0
    failed: int = 0
    parked: int = 0
    remaining: int = 0
    aborted: FailureKind | None = None
    acknowledged: tuple[int, ...] = ()
    replayed: tuple[int, ...] = ()
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.aborted is None and self.failed == 0 and self.parked == 0


class DurableOutbox:
    """FIFO of drafts the server has not acknowledged yet.

    Entries live in an :class:`OutboxStore` file and are only removed once
    the server returns an id for them. Each entry keeps the idempotency key
    it was created with, so a resend after a lost acknowledgement is
    recognised by the server as the same write.
    """

    def __init__(self, store: OutboxStore, reconciler: SyncReconciler) -> None:
        self.store = store
        self.reconciler = reconciler
        self._state = store.load()
        self._flushing = False
        self.last_flush: FlushResult | None = None
        self._project_pending()

    @property
    def depth(self) -> int:
        return len(self._state.entries)

    def __len__(self) -> int:
        return self.depth

    @property
    def is_flushing(self) -> bool:
        return self._flushing

    def pending(self) -> tuple[OutboxEntry, ...]:
        return tuple(self._state.entries)

    def parked(self) -> tuple[ParkedEntry, ...]:
        return tuple(self._state.parked)

    def get(self, local_id: int) -> OutboxEntry | None:
        for entry in self._state.entries:
            if entry.local_id == local_id:
                return entry
        return None

    def enqueue(self, draft: ScanRecord) -> int:
        """Persist ``draft`` and show it as a provisional row. Never touches the network."""
        local_id = self._state.next_local_id
        keys = new_idempotency_keys("submit-scan")
        payload = draft.model_copy(
            update={
                "id": None,
                "local_id": local_id,
                "transaction_id": draft.transaction_id or keys.transaction_id,
            }
        )
        entry = OutboxEntry(local_id=local_id, payload=payload, idempotency_key=keys.idempotency_key)
        self._state.next_local_id = local_id + 1
        self._state.entries.append(entry)
        self._persist()
        self.reconciler.store.insert(payload)
        logger.info("outbox_enqueued", extra={"local_id": local_id, "depth": self.depth})
        return local_id

    def flush(self, send_fn: SendFn) -> int:
        """Send queued entries oldest first and return how many were acknowledged.

        A failure tied to one payload does not hold back the entries behind
        it; losing connectivity or authorization stops the pass. Details of
        the pass are kept in :attr:`last_flush`.
        """
        if self._flushing:
            logger.info("outbox_flush_skipped", extra={"reason": "already_flushing"})
            self.last_flush = FlushResult(remaining=self.depth, skipped=True)
            return 0
        self._flushing = True
        sent = failed = parked = 0
        aborted: FailureKind | None = None
        acknowledged: list[int] = []
        replayed: list[int] = []
        try:
            for entry in list(self._state.entries):
                if self.get(entry.local_id) is None:
                    continue
                try:
                    ack = send_fn(entry)
                except Exception as exc:
                    kind = classify_failure(exc)
                    if kind is FailureKind.REPLAYED:
                        self._settle_replayed(entry)
                        replayed.append(entry.local_id)
                        continue
                    if kind is FailureKind.REJECTED:
                        self._park(entry, exc)
                        parked += 1
                        continue
                    self._record_failure(entry, exc, kind)
                    failed += 1
                    if kind in {FailureKind.OFFLINE, FailureKind.UNAUTHORIZED}:
                        aborted = kind
                        break
                    continue
                self._acknowledge(entry, ack)
                acknowledged.append(entry.local_id)
                sent += 1
        finally:
            self._flushing = False
        self.last_flush = FlushResult(
            sent=sent,
            failed=failed,
            parked=parked,
            remaining=self.depth,
            aborted=aborted,
            acknowledged=tuple(acknowledged),
            replayed=tuple(replayed),
        )
        logger.info(
            "outbox_flushed",
            extra={
                "sent": sent,
                "failed": failed,
                "parked": parked,
                "replayed": len(replayed),
                "remaining": self.depth,
                "aborted": aborted.value if aborted else None,
            },
        )
        return sent

    def requeue_parked(self, local_id: int) -> bool:
        """Operator override: give a rejected entry another round of delivery."""
        for index, parked in enumerate(self._state.parked):
            if parked.entry.local_id != local_id:
                continue
            del self._state.parked[index]
            entry = parked.entry.model_copy(update={"attempts": 0, "last_error": None})
            self._state.entries.append(entry)
            self._state.entries.sort(key=lambda item: item.local_id)
            self._persist()
            self.reconciler.store.insert(entry.payload)
            logger.info("outbox_parked_requeued", extra={"local_id": local_id})
            return True
        return False

    def discard_parked(self, local_id: int) -> bool:
        """Operator decision to drop a rejected entry for good."""
        for index, parked in enumerate(self._state.parked):
            if parked.entry.local_id != local_id:
                continue
            del self._state.parked[index]
            self._persist()
            logger.warning(
                "outbox_parked_discarded",
                extra={"local_id": local_id, "serial": parked.entry.payload.serial},
            )
            return True
        return False

    def _acknowledge(self, entry: OutboxEntry, ack: SubmitAck) -> None:
        self._remove(entry.local_id)
        self._persist()
        confirmed = ack.record.model_copy(update={"id": ack.id, "local_id": None})
        self.reconciler.acknowledge(entry.local_id, confirmed)
        logger.info("outbox_acknowledged", extra={"local_id": entry.local_id, "record_id": ack.id})

    def _settle_replayed(self, entry: OutboxEntry) -> None:
        # The provisional row stays until a refresh brings the stored copy.
        self._remove(entry.local_id)
        self._persist()
        logger.info("outbox_entry_replayed", extra={"local_id": entry.local_id})

    def _park(self, entry: OutboxEntry, exc: Exception) -> None:
        status_code = exc.status_code if isinstance(exc, ApiError) else None
        reason = exc.message if isinstance(exc, ApiError) else str(exc)
        self._remove(entry.local_id)
        self._state.parked.append(
            ParkedEntry(
                entry=entry.model_copy(update={"attempts": entry.attempts + 1, "last_error": reason}),
                reason=reason,
                status_code=status_code,
            )
        )
        self._persist()
        self.reconciler.store.remove_provisional(entry.local_id)
        logger.error(
            "outbox_entry_rejected",
            extra={"local_id": entry.local_id, "status_code": status_code, "reason": reason},
        )

    def _record_failure(self, entry: OutboxEntry, exc: Exception, kind: FailureKind) -> None:
        updated = entry.model_copy(update={"attempts": entry.attempts + 1, "last_error": str(exc)})
        self._state.entries = [updated if item.local_id == entry.local_id else item for item in self._state.entries]
        self._persist()
        logger.warning(
            "outbox_send_failed",
            extra={"local_id": entry.local_id, "kind": kind.value, "attempts": updated.attempts},
        )

    def _remove(self, local_id: int) -> None:
        self._state.entries = [item for item in self._state.entries if item.local_id != local_id]

    def _project_pending(self) -> None:
        for entry in self._state.entries:
            self.reconciler.store.insert(entry.payload)

    def _persist(self) -> None:
        self.store.save(self._state)
