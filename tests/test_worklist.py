from __future__ import annotations

import pytest

from railstage.models import ScanRecord
from railstage.worklist import WorklistStore


def test_insert_is_newest_first_and_idempotent() -> None:
    store = WorklistStore()
    assert store.insert(ScanRecord(id="1", serial="A")) is True
    assert store.insert(ScanRecord(id="2", serial="B")) is True
    assert store.insert(ScanRecord(id="1", serial="A")) is False

    assert [record.id for record in store.snapshot()] == ["2", "1"]


def test_provisional_rows_are_keyed_by_local_id() -> None:
    store = WorklistStore()
    assert store.insert(ScanRecord(serial="A", local_id=1)) is True
    assert store.insert(ScanRecord(serial="A", local_id=1)) is False
    assert store.get_provisional(1) is not None
    with pytest.raises(ValueError):
        store.insert(ScanRecord(serial="B"))


def test_replace_provisional_keeps_position() -> None:
    store = WorklistStore([ScanRecord(id="9", serial="OLD"), ScanRecord(serial="NEW", local_id=3)])

    assert store.replace_provisional(3, ScanRecord(id="10", serial="NEW")) is True

    assert [record.id for record in store.snapshot()] == ["9", "10"]
    assert store.provisional() == ()


def test_replace_provisional_without_row_inserts_nothing() -> None:
    store = WorklistStore()
    assert store.replace_provisional(3, ScanRecord(id="10", serial="X")) is False
    assert len(store) == 0


def test_replace_provisional_drops_row_when_confirmed_copy_already_present() -> None:
    store = WorklistStore([ScanRecord(id="10", serial="X"), ScanRecord(serial="X", local_id=3)])

    assert store.replace_provisional(3, ScanRecord(id="10", serial="X")) is True

    assert [record.id for record in store.snapshot()] == ["10"]


def test_replace_all_dedupes_ids() -> None:
    store = WorklistStore()
    store.replace_all([ScanRecord(id="1", serial="A"), ScanRecord(id="1", serial="A2"), ScanRecord(id="2", serial="B")])
    assert [record.serial for record in store.snapshot()] == ["A", "B"]


def test_listeners_receive_snapshots_and_failures_do_not_break_writes() -> None:
    store = WorklistStore()
    seen: list[int] = []

    def broken(_snapshot) -> None:
        raise RuntimeError("render failed")

    store.subscribe(broken)
    unsubscribe = store.subscribe(lambda snapshot: seen.append(len(snapshot)))

    store.insert(ScanRecord(id="1", serial="A"))
    store.remove("1")
    unsubscribe()
    store.insert(ScanRecord(id="2", serial="B"))

    assert seen == [1, 0]
    assert len(store) == 1
