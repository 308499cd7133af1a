"""Configuration model for HttpClient."""

from __future__ import annotations

import os
import ssl
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Mapping

from . import __version__
from .errors import ConfigurationError
from .headers import normalize_headers

DEFAULT_NAME = "http-client"
DEFAULT_USER_AGENT = f"persistent-http/{__version__}"

NAME_ENV_VAR = "HTTP_CLIENT_NAME"
CA_FILE_ENV_VAR = "SSL_CERT_FILE"


def _default_headers() -> Mapping[str, str]:
    """Return the immutable default header mapping."""

    return MappingProxyType({"user-agent": DEFAULT_USER_AGENT})


def _empty_options() -> Mapping[str, Any]:
    return MappingProxyType({})


@dataclass(frozen=True)
class HttpClientConfig:
    """Configuration for HttpClient behavior.

    Timeouts are expressed in seconds. ``name`` and ``ca_file`` fall back to
    the environment only through :meth:`resolved`, so an explicit value
    always wins.
    """

    name: str | None = None
    default_headers: Mapping[str, str] = field(default_factory=_default_headers)
    request_timeout_seconds: float | None = 30.0
    max_retries: int = 1
    open_timeout_seconds: float | None = None
    read_timeout_seconds: float | None = None
    idle_timeout_seconds: float | None = 5.0
    ca_file: str | None = None
    pool_size: int | None = None
    proxy: str | None = None
    verify_peer: bool = True
    verify_hostname: bool = True
    min_tls_version: ssl.TLSVersion = ssl.TLSVersion.TLSv1_2
    extra_options: Mapping[str, Any] = field(default_factory=_empty_options)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ConfigurationError("max_retries must be >= 0")
        for attr in (
            "request_timeout_seconds",
            "open_timeout_seconds",
            "read_timeout_seconds",
            "idle_timeout_seconds",
        ):
            value = getattr(self, attr)
            if value is not None and value <= 0:
                raise ConfigurationError(f"{attr} must be > 0 when provided")
        if self.pool_size is not None and self.pool_size < 1:
            raise ConfigurationError("pool_size must be >= 1 when provided")

        # Freeze copies so callers cannot mutate config after construction.
        object.__setattr__(
            self,
            "default_headers",
            MappingProxyType(normalize_headers(self.default_headers)),
        )
        object.__setattr__(
            self,
            "extra_options",
            MappingProxyType(dict(self.extra_options)),
        )

    @property
    def transport_timeout(self) -> tuple[float | None, float | None]:
        """Return the (open, read) timeout pair handed to the transport."""
        return (self.open_timeout_seconds, self.read_timeout_seconds)

    def resolved(self, environ: Mapping[str, str] | None = None) -> HttpClientConfig:
        """Return a copy with environment fallbacks applied."""
        env = os.environ if environ is None else environ
        return replace(
            self,
            name=self.name or env.get(NAME_ENV_VAR) or DEFAULT_NAME,
            ca_file=self.ca_file or env.get(CA_FILE_ENV_VAR) or None,
        )
