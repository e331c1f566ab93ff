from __future__ import annotations

import logging
from typing import Callable, Iterable

from .models import ScanRecord

logger = logging.getLogger(__name__)

WorklistListener = Callable[[tuple[ScanRecord, ...]], None]


class WorklistStore:
    """In-memory projection of the staged records, newest first.

    Writes go through single-step operations keyed by server id or by the
    outbox ``local_id`` of a provisional record. No record id appears twice.
    """

    def __init__(self, records: Iterable[ScanRecord] | None = None) -> None:
        self._records: list[ScanRecord] = []
        self._listeners: list[WorklistListener] = []
        if records:
            self.replace_all(records)

    def snapshot(self) -> tuple[ScanRecord, ...]:
        return tuple(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def get(self, record_id: str) -> ScanRecord | None:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    def contains(self, record_id: str) -> bool:
        return self.get(record_id) is not None

    def provisional(self) -> tuple[ScanRecord, ...]:
        return tuple(record for record in self._records if record.is_provisional)

    def get_provisional(self, local_id: int) -> ScanRecord | None:
        for record in self._records:
            if record.is_provisional and record.local_id == local_id:
                return record
        return None

    def subscribe(self, listener: WorklistListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def insert(self, record: ScanRecord) -> bool:
        """Prepend ``record`` unless its id (or provisional local id) is already held."""
        if record.is_provisional:
            if record.local_id is None:
                raise ValueError("provisional records need a local_id")
            if self.get_provisional(record.local_id) is not None:
                return False
        elif self.contains(record.id):
            return False
        self._records.insert(0, record)
        self._notify()
        return True

    def remove(self, record_id: str) -> bool:
        for index, record in enumerate(self._records):
            if record.id == record_id:
                del self._records[index]
                self._notify()
                return True
        return False

    def remove_provisional(self, local_id: int) -> bool:
        for index, record in enumerate(self._records):
            if record.is_provisional and record.local_id == local_id:
                del self._records[index]
                self._notify()
                return True
        return False

    def replace_provisional(self, local_id: int, confirmed: ScanRecord) -> bool:
        """Swap a provisional row for its server-confirmed version in place.

        Returns False when no provisional row with that local id is held.
        """
        if confirmed.is_provisional:
            raise ValueError("confirmed records need a server id")
        position = None
        for index, record in enumerate(self._records):
            if record.is_provisional and record.local_id == local_id:
                position = index
                break
        if position is None:
            return False
        if self.contains(confirmed.id):
            del self._records[position]
        else:
            self._records[position] = confirmed
        self._notify()
        return True

    def replace_all(self, records: Iterable[ScanRecord]) -> None:
        seen: set[str] = set()
        seen_local: set[int] = set()
        deduped: list[ScanRecord] = []
        for record in records:
            if record.is_provisional:
                if record.local_id is None or record.local_id in seen_local:
                    continue
                seen_local.add(record.local_id)
            else:
                if record.id in seen:
                    continue
                seen.add(record.id)
            deduped.append(record)
        self._records = deduped
        self._notify()

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("worklist_listener_failed")
