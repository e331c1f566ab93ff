from __future__ import annotations

import logging
from typing import Any, Iterable

from .duplicates import normalize_serial
from .models import EventKind, InboundEvent, ScanRecord
from .wire import event_from_wire
from .worklist import WorklistStore

logger = logging.getLogger(__name__)


def matches_provisional(provisional: ScanRecord, confirmed: ScanRecord) -> bool:
    """True when ``confirmed`` is the server's copy of a locally staged draft."""
    if provisional.transaction_id and confirmed.transaction_id:
        return provisional.transaction_id == confirmed.transaction_id
    return (
        normalize_serial(provisional.serial) == normalize_serial(confirmed.serial)
        and provisional.operator == confirmed.operator
        and provisional.timestamp == confirmed.timestamp
    )


class SyncReconciler:
    """Merges inbound change notifications into a :class:`WorklistStore`.

    Events may carry a server ``revision``. The last applied revision is kept
    per id, deletes included, so a late event older than what was already
    applied for that id is ignored. Events without a revision apply in
    arrival order.

    Order independence therefore depends on revisions: a create and a delete
    for the same id converge regardless of delivery order only when both
    carry one. Without them, ``created(7)`` then ``deleted(7)`` leaves 7
    absent while the reverse order leaves it present.
    """

    def __init__(self, store: WorklistStore) -> None:
        self.store = store
        self._revisions: dict[str, int] = {}
        self._floor_revision: int | None = None

    def apply(self, event: InboundEvent) -> bool:
        if event.kind is EventKind.CREATED:
            if event.record is None:
                raise ValueError("created event without a record")
            return self.created(event.record, revision=event.revision)
        if event.kind is EventKind.DELETED:
            if event.record_id is None:
                raise ValueError("deleted event without an id")
            return self.deleted(event.record_id, revision=event.revision)
        return self.cleared(revision=event.revision) > 0

    def apply_wire(self, name: str, payload: Any) -> bool:
        return self.apply(event_from_wire(name, payload))

    def created(self, record: ScanRecord, revision: int | None = None) -> bool:
        if record.id is None:
            raise ValueError("created records need a server id")
        if self._is_stale(record.id, revision):
            logger.info("sync_event_stale", extra={"kind": "created", "record_id": record.id, "revision": revision})
            return False
        self._remember(record.id, revision)
        if self.store.contains(record.id):
            return False
        for provisional in self.store.provisional():
            if matches_provisional(provisional, record):
                self.store.replace_provisional(provisional.local_id, record)
                logger.info(
                    "sync_provisional_confirmed",
                    extra={"record_id": record.id, "local_id": provisional.local_id},
                )
                return True
        return self.store.insert(record)

    def deleted(self, record_id: str | int, revision: int | None = None) -> bool:
        key = str(record_id)
        if self._is_stale(key, revision):
            logger.info("sync_event_stale", extra={"kind": "deleted", "record_id": key, "revision": revision})
            return False
        self._remember(key, revision)
        return self.store.remove(key)

    def cleared(self, revision: int | None = None) -> int:
        """Drop every server-backed record; provisional rows stay until acknowledged."""
        if revision is not None:
            if self._floor_revision is not None and revision <= self._floor_revision:
                return 0
            self._floor_revision = revision
        kept = self.store.provisional()
        removed = len(self.store) - len(kept)
        self.store.replace_all(kept)
        self._revisions.clear()
        return removed

    def full_refresh(self, records: Iterable[ScanRecord], revision: int | None = None) -> None:
        """Replace the store with the authoritative list from the server.

        Provisional rows are re-projected on top unless the refreshed list
        already carries their confirmed copy.
        """
        authoritative = [record for record in records if not record.is_provisional]
        still_pending = [
            provisional
            for provisional in self.store.provisional()
            if not any(matches_provisional(provisional, record) for record in authoritative)
        ]
        self._revisions.clear()
        self._floor_revision = revision
        self.store.replace_all([*still_pending, *authoritative])
        logger.info(
            "sync_full_refresh",
            extra={"records": len(authoritative), "provisional": len(still_pending)},
        )

    def acknowledge(self, local_id: int, confirmed: ScanRecord) -> bool:
        """Outbox hook: the server accepted the draft staged as ``local_id``.

        A missing provisional row means a push event already confirmed it, or
        the record was deleted since; either way nothing is inserted.
        """
        return self.store.replace_provisional(local_id, confirmed)

    def _is_stale(self, record_id: str, revision: int | None) -> bool:
        if revision is None:
            return False
        if self._floor_revision is not None and revision <= self._floor_revision:
            return True
        known = self._revisions.get(record_id)
        return known is not None and revision <= known

    def _remember(self, record_id: str, revision: int | None) -> None:
        if revision is not None:
            self._revisions[record_id] = revision
