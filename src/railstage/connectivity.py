from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[bool], None]


class ConnectivityMonitor:
    """Turns online/offline signals into outbox flushes.

    The signal is advisory. A flush started right after "online" may still
    fail; the outbox keeps whatever it could not send, so nothing here raises.
    Two sources count as "connectivity restored": the platform reporting
    that the network is back, and any request that got an answer from the
    server.
    """

    def __init__(
        self,
        flush: Callable[[], int],
        *,
        has_pending: Callable[[], bool] | None = None,
        online: bool = True,
    ) -> None:
        self._flush = flush
        self._has_pending = has_pending or (lambda: True)
        self._online = online
        self._triggering = False
        self._listeners: list[ConnectivityListener] = []

    @property
    def online(self) -> bool:
        return self._online

    def subscribe(self, listener: ConnectivityListener) -> None:
        self._listeners.append(listener)

    def set_online(self, online: bool) -> int:
        """Platform signal. Returns how many entries a resulting flush sent."""
        was_online = self._online
        self._set_state(online)
        if online and not was_online:
            return self.trigger()
        return 0

    def mark_offline(self, *_: object) -> None:
        self._set_state(False)

    def request_succeeded(self, *_: object) -> int:
        """Hook for any network call that reached the server."""
        self._set_state(True)
        if self._triggering or not self._has_pending():
            return 0
        return self.trigger()

    def trigger(self) -> int:
        if self._triggering:
            return 0
        self._triggering = True
        try:
            return self._flush()
        except Exception:
            logger.exception("connectivity_flush_failed")
            return 0
        finally:
            self._triggering = False

    def _set_state(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        logger.info("connectivity_changed", extra={"online": online})
        for listener in list(self._listeners):
            listener(online)
