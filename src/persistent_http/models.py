"""Value objects shared by the builder, connection layer and client."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping
from urllib.parse import urlsplit

from requests.structures import CaseInsensitiveDict

from .errors import ConfigurationError, ResponseFormatError

DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass(frozen=True)
class Endpoint:
    """Parsed origin every request of a client is sent to."""

    scheme: str
    host: str
    port: int

    @classmethod
    def parse(cls, url: str) -> Endpoint:
        """Parse ``url`` into an Endpoint.

        Raises:
            ConfigurationError: If the scheme is not http(s) or the host is
                missing.
        """
        try:
            parts = urlsplit(url)
            port = parts.port
        except ValueError as exc:
            raise ConfigurationError(f"invalid endpoint {url!r}: {exc}") from exc

        scheme = parts.scheme.lower()
        if scheme not in DEFAULT_PORTS:
            raise ConfigurationError(
                f"endpoint scheme must be http or https, got {url!r}"
            )
        if not parts.hostname:
            raise ConfigurationError(f"endpoint {url!r} has no host")
        return cls(
            scheme=scheme,
            host=parts.hostname,
            port=port if port is not None else DEFAULT_PORTS[scheme],
        )

    @property
    def is_secure(self) -> bool:
        return self.scheme == "https"

    @property
    def origin(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        if self.port == DEFAULT_PORTS[self.scheme]:
            return f"{self.scheme}://{host}"
        return f"{self.scheme}://{host}:{self.port}"

    def url_for(self, target: str) -> str:
        if not target.startswith("/"):
            target = "/" + target
        return self.origin + target


@dataclass(frozen=True)
class OutboundRequest:
    """Fully built request; immutable once constructed."""

    method: str
    target: str
    headers: Mapping[str, str]
    body: bytes | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type")


@dataclass(frozen=True)
class Response:
    """Response returned for every completed exchange, whatever its status."""

    status_code: int
    headers: Mapping[str, str] = field(default_factory=CaseInsensitiveDict)
    body: bytes = b""
    reason: str = ""
    url: str = ""
    elapsed_seconds: float | None = None

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises:
            ResponseFormatError: If the body is not valid JSON.
        """
        try:
            return json.loads(self.body)
        except ValueError as exc:
            raise ResponseFormatError(f"invalid JSON response: {exc}") from exc
