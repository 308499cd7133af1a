"""Retry/rebuild state machine for one logical request.

Each send attempt yields a tagged Ok/Err result. Transport failures rebuild
the connection and resend the same built request, up to ``max_retries``.
The overall deadline spans the first attempt and every retry, and is never
retried itself. Any other exception propagates untouched.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Mapping

import requests

from .builder import Params, RequestBuilder
from .config import HttpClientConfig
from .connection import Clock, ConnectionManager
from .errors import ConnectionError, RequestTimeoutError
from .models import OutboundRequest, Response
from .types import Err, Ok, Result

# SSLError subclasses requests' ConnectionError but is a verification
# failure, not a stale connection.
TRANSPORT_ERRORS: tuple[type[Exception], ...] = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    requests.exceptions.ChunkedEncodingError,
)
NON_RETRYABLE_ERRORS: tuple[type[Exception], ...] = (requests.exceptions.SSLError,)


def format_duration_ms(seconds: float) -> str:
    return f"{seconds * 1000:.2f} ms"


def is_transport_failure(error: BaseException) -> bool:
    """Return True for connection-layer errors that warrant a rebuild."""
    if isinstance(error, NON_RETRYABLE_ERRORS):
        return False
    return isinstance(error, TRANSPORT_ERRORS)


class _DeadlineExceeded(Exception):
    """Raised internally when the overall deadline elapses."""


def _call_with_deadline(fn: Callable[[], Response], remaining: float) -> Response:
    """Run ``fn`` on a daemon thread and wait at most ``remaining`` seconds.

    On timeout the thread is abandoned; its eventual result is discarded and
    it never blocks interpreter exit.
    """
    outcome: dict[str, Any] = {}

    def run() -> None:
        try:
            outcome["value"] = fn()
        except Exception as exc:
            outcome["error"] = exc

    worker = threading.Thread(target=run, name="persistent-http-send", daemon=True)
    worker.start()
    worker.join(remaining)
    if worker.is_alive():
        raise _DeadlineExceeded()
    if "error" in outcome:
        raise outcome["error"]
    return outcome["value"]


class RequestExecutor:
    """Build a request once, then send it with bounded retry-with-rebuild."""

    def __init__(
        self,
        builder: RequestBuilder,
        connections: ConnectionManager,
        config: HttpClientConfig,
        log: logging.Logger,
        *,
        clock: Clock = time.monotonic,
    ) -> None:
        self._builder = builder
        self._connections = connections
        self._config = config
        self._log = log
        self._clock = clock

    def _build_meta(
        self,
        request: OutboundRequest,
        attempts: int,
        started: float,
        response: Response | None = None,
        final_error: str | None = None,
    ) -> dict[str, Any]:
        meta: dict[str, Any] = {
            "method": request.method,
            "target": request.target,
            "attempts": attempts,
            "elapsed_s": self._clock() - started,
        }
        if response is not None:
            meta["status_code"] = response.status_code
        if final_error is not None:
            meta["final_error"] = final_error
        return meta

    def _attempt(
        self,
        request: OutboundRequest,
        attempts: int,
        started: float,
        deadline: float | None,
    ) -> Result[Response, Exception]:
        """Send once through the current connection and classify the outcome."""
        try:
            if deadline is None:
                response = self._connections.current_connection().send(request)
            else:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    raise _DeadlineExceeded()
                response = _call_with_deadline(
                    lambda: self._connections.current_connection().send(request),
                    remaining,
                )
        except _DeadlineExceeded:
            return Err(
                RequestTimeoutError(
                    f"{request.method} {request.target} exceeded the overall "
                    f"timeout of {self._config.request_timeout_seconds} s",
                    attempts=attempts,
                    elapsed_seconds=self._clock() - started,
                ),
                meta=self._build_meta(
                    request, attempts, started, final_error="RequestTimeoutError"
                ),
            )
        except Exception as exc:
            if not is_transport_failure(exc):
                raise
            return Err(
                exc,
                meta=self._build_meta(
                    request, attempts, started, final_error=type(exc).__name__
                ),
            )
        return Ok(response, meta=self._build_meta(request, attempts, started, response))

    def execute(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str] | None = None,
        params: Params = None,
    ) -> Response:
        """Execute one logical request.

        Returns:
            The Response, whatever its status code.

        Raises:
            ArgumentError: The request could not be built.
            ConfigurationError: Host header mismatch or a closed client.
            ConnectionError: Transport failures outlasted ``max_retries``, or
                a rebuild failed.
            RequestTimeoutError: The overall deadline elapsed.
        """
        request = self._builder.build(method, path, headers=headers, params=params)
        name = self._config.name
        max_retries = self._config.max_retries
        timeout = self._config.request_timeout_seconds

        retries = 0
        started = self._clock()
        deadline = started + timeout if timeout is not None else None

        while True:
            result = self._attempt(request, retries + 1, started, deadline)
            duration = self._clock() - started

            if isinstance(result, Ok):
                self._log.debug(
                    "[%s] Request completed: method=%s, path=%s, status=%s, duration=%s",
                    name,
                    request.method,
                    path,
                    result.value.status_code,
                    format_duration_ms(duration),
                )
                return result.value

            error = result.error
            if isinstance(error, RequestTimeoutError):
                self._log.error(
                    "[%s] Request timed out after %s: method=%s, path=%s",
                    name,
                    format_duration_ms(duration),
                    request.method,
                    path,
                )
                # The abandoned send may still hold the connection.
                self._connections.invalidate()
                raise error

            if retries >= max_retries:
                self._log.error(
                    "[%s] Connection failed after %d retries (%s): %s",
                    name,
                    retries,
                    format_duration_ms(duration),
                    error,
                )
                raise ConnectionError(
                    f"{request.method} {path} failed after {retries + 1} "
                    f"attempt(s): {error}",
                    attempts=retries + 1,
                    elapsed_seconds=duration,
                ) from error

            retries += 1
            self._log.debug(
                "[%s] Connection failed: %s - rebuilding HTTP client (retry %d/%d)",
                name,
                error,
                retries,
                max_retries,
            )
            self._connections.rebuild()
