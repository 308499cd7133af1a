"""Ownership of the single live connection of a client.

A Connection wraps one ``requests.Session`` whose adapter pool keeps
sockets to the endpoint alive between requests. The ConnectionManager is the
only place that creates, replaces or closes it.
"""

from __future__ import annotations

import logging
import ssl
import threading
import time
from typing import Any, Callable

import requests
from requests.adapters import DEFAULT_POOLSIZE, HTTPAdapter
from requests.structures import CaseInsensitiveDict

from .config import HttpClientConfig
from .errors import ConfigurationError, ConnectionError
from .models import Endpoint, OutboundRequest, Response

Clock = Callable[[], float]


class TLSAdapter(HTTPAdapter):
    """HTTPAdapter that hands a preconfigured SSLContext to urllib3."""

    def __init__(
        self,
        ssl_context: ssl.SSLContext,
        *,
        assert_hostname: bool = True,
        **kwargs: Any,
    ) -> None:
        # init_poolmanager runs inside HTTPAdapter.__init__.
        self._ssl_context = ssl_context
        self._assert_hostname = assert_hostname
        super().__init__(**kwargs)

    def _tls_kwargs(self) -> dict[str, Any]:
        tls: dict[str, Any] = {"ssl_context": self._ssl_context}
        if not self._assert_hostname:
            tls["assert_hostname"] = False
        return tls

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        kwargs.update(self._tls_kwargs())
        super().init_poolmanager(*args, **kwargs)

    def proxy_manager_for(self, proxy: str, **proxy_kwargs: Any) -> Any:
        proxy_kwargs.update(self._tls_kwargs())
        return super().proxy_manager_for(proxy, **proxy_kwargs)


class Connection:
    """Live transport handle bound to an endpoint and its timeouts."""

    def __init__(
        self,
        session: requests.Session,
        endpoint: Endpoint,
        timeout: tuple[float | None, float | None],
        *,
        clock: Clock = time.monotonic,
    ) -> None:
        self.session = session
        self._endpoint = endpoint
        self._timeout = timeout
        self._clock = clock
        self.created_at = clock()
        self.last_used_at = self.created_at
        self._in_flight = 0
        self._in_flight_lock = threading.Lock()

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def idle_for(self) -> float:
        """Seconds since the last send finished; zero while one is running."""
        with self._in_flight_lock:
            if self._in_flight:
                return 0.0
            return self._clock() - self.last_used_at

    def send(self, request: OutboundRequest) -> Response:
        """Send ``request`` and return the fully read response.

        Transport exceptions from ``requests`` propagate unchanged so the
        executor can classify them.
        """
        prepared = requests.Request(
            method=request.method,
            url=self._endpoint.url_for(request.target),
            headers=dict(request.headers),
            data=request.body,
        ).prepare()

        with self._in_flight_lock:
            self._in_flight += 1
            started = self._clock()
            self.last_used_at = started
        try:
            raw = self.session.send(
                prepared, timeout=self._timeout, allow_redirects=False
            )
        finally:
            with self._in_flight_lock:
                self._in_flight -= 1
                finished = self._clock()
                self.last_used_at = finished

        return Response(
            status_code=raw.status_code,
            headers=CaseInsensitiveDict(raw.headers),
            body=raw.content or b"",
            reason=raw.reason or "",
            url=raw.url or prepared.url or "",
            elapsed_seconds=finished - started,
        )

    def close(self) -> None:
        self.session.close()


class ConnectionManager:
    """Build, reuse, expire and replace the client's only Connection."""

    def __init__(
        self,
        endpoint: Endpoint,
        config: HttpClientConfig,
        log: logging.Logger,
        *,
        clock: Clock = time.monotonic,
    ) -> None:
        self._endpoint = endpoint
        self._config = config
        self._log = log
        self._clock = clock
        self._lock = threading.Lock()
        self._connection: Connection | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _ssl_context(self) -> ssl.SSLContext:
        config = self._config
        context = ssl.create_default_context(cafile=config.ca_file)
        context.minimum_version = config.min_tls_version
        if not config.verify_hostname or not config.verify_peer:
            context.check_hostname = False
        if not config.verify_peer:
            context.verify_mode = ssl.CERT_NONE
        return context

    def _build_adapter(self) -> HTTPAdapter:
        pool_size = self._config.pool_size or DEFAULT_POOLSIZE
        # Retries are owned by the executor, never by urllib3.
        if self._endpoint.is_secure:
            return TLSAdapter(
                self._ssl_context(),
                assert_hostname=self._config.verify_hostname
                and self._config.verify_peer,
                pool_connections=1,
                pool_maxsize=pool_size,
                max_retries=0,
            )
        return HTTPAdapter(pool_connections=1, pool_maxsize=pool_size, max_retries=0)

    def _apply_extra_options(self, session: requests.Session) -> None:
        for key, value in self._config.extra_options.items():
            if key == "trust_env":
                session.trust_env = bool(value)
            elif key == "cert":
                session.cert = value
            else:
                self._log.debug(
                    "[%s] Ignoring unsupported option: %s", self._config.name, key
                )

    def build_connection(self) -> Connection:
        """Open a new Connection using the endpoint, timeouts and TLS settings."""
        session = requests.Session()
        adapter = self._build_adapter()
        session.mount("https://", adapter)
        session.mount("http://", adapter)

        if self._endpoint.is_secure:
            if not self._config.verify_peer:
                session.verify = False
            elif self._config.ca_file:
                session.verify = self._config.ca_file
        if self._config.proxy:
            session.proxies = {"http": self._config.proxy, "https": self._config.proxy}
        self._apply_extra_options(session)

        return Connection(
            session,
            self._endpoint,
            self._config.transport_timeout,
            clock=self._clock,
        )

    def open(self) -> Connection:
        """Build the first Connection; failures are configuration errors."""
        with self._lock:
            self._ensure_open()
            if self._connection is None:
                try:
                    self._connection = self.build_connection()
                except (OSError, ValueError) as exc:
                    raise ConfigurationError(
                        f"cannot build connection to {self._endpoint.origin}: {exc}"
                    ) from exc
            return self._connection

    def current_connection(self) -> Connection:
        """Return the live Connection, replacing it if absent or idle too long."""
        with self._lock:
            self._ensure_open()
            connection = self._connection
            if connection is None:
                connection = self._replace()
            else:
                idle_timeout = self._config.idle_timeout_seconds
                idle_for = connection.idle_for()
                if idle_timeout is not None and idle_for > idle_timeout:
                    self._log.debug(
                        "[%s] Connection idle for %.2f s, rebuilding",
                        self._config.name,
                        idle_for,
                    )
                    connection = self._replace()
            return connection

    def rebuild(self) -> Connection:
        """Discard the current Connection and synchronously build another.

        Raises:
            ConnectionError: If the replacement cannot be built.
            ConfigurationError: If the manager has been closed.
        """
        with self._lock:
            self._ensure_open()
            return self._replace()

    def invalidate(self) -> None:
        """Drop the current Connection; the next use builds a fresh one."""
        with self._lock:
            self._discard()

    def close(self) -> None:
        """Release the Connection without rebuilding. Terminal and idempotent."""
        with self._lock:
            self._closed = True
            self._discard()

    def _ensure_open(self) -> None:
        if self._closed:
            raise ConfigurationError(
                f"client {self._config.name!r} is closed"
            )

    def _discard(self) -> None:
        # No graceful drain; the old connection may already be broken.
        old, self._connection = self._connection, None
        if old is not None:
            old.close()

    def _replace(self) -> Connection:
        self._discard()
        try:
            self._connection = self.build_connection()
        except (OSError, ValueError) as exc:
            raise ConnectionError(
                f"failed to rebuild connection to {self._endpoint.origin}: {exc}"
            ) from exc
        return self._connection
