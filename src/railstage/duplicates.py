from __future__ import annotations

from typing import Iterable

from .models import ScanRecord


def normalize_serial(value: str | None) -> str:
    if value is None:
        return ""
    return value.strip().casefold()


def find_matches(candidate_serial: str | None, snapshot: Iterable[ScanRecord]) -> list[ScanRecord]:
    """Return every record in ``snapshot`` sharing the candidate's serial.

    Pure over its arguments: it sees only the snapshot it is given, so callers
    re-run it when the operator decides rather than relying on the result
    from capture time.
    """
    wanted = normalize_serial(candidate_serial)
    if not wanted:
        return []
    return [record for record in snapshot if normalize_serial(record.serial) == wanted]
