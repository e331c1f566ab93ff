from __future__ import annotations

from railstage.connectivity import ConnectivityMonitor


class _Flusher:
    def __init__(self, result: int = 1) -> None:
        self.calls = 0
        self.result = result

    def __call__(self) -> int:
        self.calls += 1
        return self.result


def test_flush_runs_on_offline_to_online_transition() -> None:
    flusher = _Flusher(result=3)
    monitor = ConnectivityMonitor(flusher, online=False)

    assert monitor.set_online(True) == 3
    assert monitor.set_online(True) == 0
    assert flusher.calls == 1


def test_going_offline_notifies_without_flushing() -> None:
    flusher = _Flusher()
    monitor = ConnectivityMonitor(flusher)
    seen: list[bool] = []
    monitor.subscribe(seen.append)

    monitor.set_online(False)
    monitor.mark_offline()

    assert monitor.online is False
    assert seen == [False]
    assert flusher.calls == 0


def test_request_success_flushes_only_with_pending_entries() -> None:
    flusher = _Flusher()
    pending = {"value": False}
    monitor = ConnectivityMonitor(flusher, has_pending=lambda: pending["value"])

    assert monitor.request_succeeded() == 0
    pending["value"] = True
    assert monitor.request_succeeded() == 1
    assert flusher.calls == 1


def test_request_success_marks_online() -> None:
    monitor = ConnectivityMonitor(_Flusher(), has_pending=lambda: False, online=False)
    monitor.request_succeeded()
    assert monitor.online is True


def test_flush_errors_are_contained() -> None:
    def broken() -> int:
        raise RuntimeError("disk full")

    monitor = ConnectivityMonitor(broken, online=False)

    assert monitor.set_online(True) == 0
    assert monitor.online is True


def test_nested_trigger_does_not_recurse() -> None:
    calls: list[int] = []

    def flush() -> int:
        calls.append(1)
        monitor.request_succeeded()
        return 1

    monitor = ConnectivityMonitor(flush, online=False)

    assert monitor.set_online(True) == 1
    assert calls == [1]
