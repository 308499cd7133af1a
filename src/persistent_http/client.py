"""Persistent HTTP client facade.

One client talks to one endpoint over a single reusable connection. Stale or
server-closed connections are rebuilt transparently and the request is
retried up to ``max_retries`` times. Status codes are never treated as
errors; callers interpret 4xx/5xx responses themselves.

Example:
    client = HttpClient(
        "https://api.example.com",
        HttpClientConfig(default_headers={"Authorization": "Bearer token"}),
    )
    response = client.get("/users", params={"status": "active"})
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from .builder import Params, RequestBuilder
from .config import HttpClientConfig
from .connection import ConnectionManager
from .executor import RequestExecutor
from .models import Endpoint, Response

LOGGER_NAME = "persistent_http"


class HttpClient:
    """Connection-reusing HTTP client bound to a single origin."""

    def __init__(
        self,
        endpoint: str,
        config: HttpClientConfig | None = None,
        *,
        log: logging.Logger | None = None,
    ) -> None:
        """Create a new HttpClient.

        Args:
            endpoint: Base URL; only scheme, host and port are used.
            config: Timeouts, retries, headers and TLS settings.
            log: Logger to use instead of the ``persistent_http`` logger.

        Raises:
            ConfigurationError: If the endpoint or config is invalid, or the
                first connection cannot be built.
        """
        self._endpoint = Endpoint.parse(endpoint)
        self._config = (config or HttpClientConfig()).resolved()
        self._log = log or logging.getLogger(LOGGER_NAME)
        self._builder = RequestBuilder(self._endpoint, self._config.default_headers)
        self._connections = ConnectionManager(self._endpoint, self._config, self._log)
        self._executor = RequestExecutor(
            self._builder, self._connections, self._config, self._log
        )
        self._connections.open()

    def __enter__(self) -> HttpClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    @property
    def config(self) -> HttpClientConfig:
        return self._config

    @property
    def closed(self) -> bool:
        return self._connections.closed

    @property
    def default_headers(self) -> Mapping[str, str]:
        return self._builder.default_headers

    def set_default_headers(self, headers: Mapping[str, str] | None) -> None:
        """Replace the entire default header set."""
        self._builder.default_headers = headers

    def request(
        self,
        method: str,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        params: Params = None,
    ) -> Response:
        return self._executor.execute(method, path, headers=headers, params=params)

    def head(
        self,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        params: Params = None,
    ) -> Response:
        """Perform an HTTP HEAD request; ``params`` become the query string."""
        return self.request("HEAD", path, headers=headers, params=params)

    def get(
        self,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        params: Params = None,
    ) -> Response:
        """Perform an HTTP GET request.

        Args:
            path: Absolute path on the endpoint.
            headers: Per-request headers, overriding defaults per key.
            params: Query parameters, encoded in insertion order.

        Returns:
            The Response, whatever its status code.
        """
        return self.request("GET", path, headers=headers, params=params)

    def post(
        self,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        params: Params = None,
    ) -> Response:
        """Perform an HTTP POST request; ``params`` become the body."""
        return self.request("POST", path, headers=headers, params=params)

    def put(
        self,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        params: Params = None,
    ) -> Response:
        return self.request("PUT", path, headers=headers, params=params)

    def patch(
        self,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        params: Params = None,
    ) -> Response:
        return self.request("PATCH", path, headers=headers, params=params)

    def delete(
        self,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        params: Params = None,
    ) -> Response:
        return self.request("DELETE", path, headers=headers, params=params)

    def get_json(
        self,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        params: Params = None,
    ) -> Any:
        """GET ``path`` and decode the body as JSON.

        Raises:
            ResponseFormatError: If the body is not valid JSON.
        """
        return self.get(path, headers=headers, params=params).json()

    def close(self) -> None:
        """Release the connection. Any later request raises ConfigurationError."""
        self._connections.close()

    def is_alive(self, path: str = "/") -> bool:
        """Probe the endpoint with a one-off GET; never raises."""
        try:
            response = self.get(path, headers={"connection": "close"})
        except Exception as exc:  # noqa: BLE001
            self._log.warning(
                "[%s] Liveness probe of %s failed: %s", self._config.name, path, exc
            )
            return False
        if not response.ok:
            self._log.warning(
                "[%s] Liveness probe of %s returned status %s",
                self._config.name,
                path,
                response.status_code,
            )
        return response.ok
