from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import urljoin

import requests

from .config import EngineConfig
from .error_mapper import map_error
from .exceptions import TransportError

logger = logging.getLogger(__name__)

TRACE_HEADER_ALIASES = ("X-Trace-ID", "X-Trace-Id", "x-trace-id")

TransportFailureHook = Callable[[TransportError], None]


@dataclass
class LastOperation:
    operation: str
    duration_ms: int
    result: str
    status_code: int


def _trace_id(response: requests.Response) -> str | None:
    for key in TRACE_HEADER_ALIASES:
        value = response.headers.get(key)
        if value:
            return value
    return None


@dataclass
class HttpClient:
    config: EngineConfig
    session: requests.Session | None = None
    on_transport_error: TransportFailureHook | None = None
    last_operation: LastOperation | None = None

    def __post_init__(self) -> None:
        if self.session is None:
            self.session = requests.Session()

    def _build_url(self, path: str) -> str:
        base = self.config.api_base_url.rstrip("/") + "/"
        return urljoin(base, path.lstrip("/"))

    def request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        retry: bool | None = None,
        operation: str = "unknown",
    ) -> dict[str, Any] | list[Any] | None:
        """Perform one HTTP call and return the decoded JSON body.

        Safe methods are retried with exponential backoff on transport errors
        and 5xx responses. Non-2xx responses raise the mapped ``ApiError``;
        no response at all raises ``TransportError``.
        """
        if self.session is None:
            raise RuntimeError("HTTP session not initialized")
        request_headers = {"Accept": "application/json"}
        if headers:
            request_headers.update(headers)

        normalized_method = method.upper()
        url = self._build_url(path)
        can_retry = retry if retry is not None else normalized_method in {"GET", "HEAD", "DELETE"}
        attempts = self.config.retries + 1 if can_retry else 1

        started = time.monotonic()
        response: requests.Response | None = None
        for attempt in range(attempts):
            try:
                response = self.session.request(
                    method=normalized_method,
                    url=url,
                    headers=request_headers,
                    json=json_body,
                    params=params,
                    timeout=(self.config.connect_timeout_seconds, self.config.read_timeout_seconds),
                    verify=self.config.verify_ssl,
                )
            except requests.RequestException as exc:
                if attempt >= attempts - 1:
                    error = TransportError(
                        code="TRANSPORT_ERROR",
                        message=str(exc),
                        details={"type": type(exc).__name__},
                        trace_id=None,
                        status_code=0,
                        raw_payload=None,
                    )
                    self._record_operation(operation, started, "transport_error", 0)
                    logger.warning(
                        "http_transport_error",
                        extra={"operation": operation, "method": normalized_method, "error": type(exc).__name__},
                    )
                    if self.on_transport_error:
                        self.on_transport_error(error)
                    raise error from exc
            else:
                if response.status_code < 500 or attempt >= attempts - 1:
                    break
            time.sleep(self.config.retry_backoff_seconds * (2**attempt))

        if response is None:
            raise RuntimeError(f"HTTP request failed without response: {operation}")

        trace_id = _trace_id(response)
        if response.ok:
            self._record_operation(operation, started, "success", response.status_code)
            if not response.content:
                return None
            return response.json()

        payload: Any
        try:
            payload = response.json()
        except (json.JSONDecodeError, ValueError):
            payload = {"message": response.text}
        self._record_operation(operation, started, "error", response.status_code)
        raise map_error(response.status_code, payload if isinstance(payload, dict) else {}, trace_id)

    def _record_operation(self, operation: str, started: float, result: str, status_code: int) -> None:
        self.last_operation = LastOperation(
            operation=operation,
            duration_ms=int((time.monotonic() - started) * 1000),
            result=result,
            status_code=status_code,
        )
