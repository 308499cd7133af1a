"""Pure construction of outbound requests.

Nothing here touches the network, so every conflict a caller can create
(ambiguous query sources, duplicate header keys, a foreign host header) is
reported before a connection is ever used.
"""

from __future__ import annotations

import json
from types import MappingProxyType
from typing import Any, Mapping, Union
from urllib.parse import urlencode

from .errors import ArgumentError
from .headers import merge_headers, normalize_headers, validate_host
from .models import Endpoint, OutboundRequest

QUERY_METHODS = frozenset({"HEAD", "GET"})
BODY_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
METHODS = QUERY_METHODS | BODY_METHODS

JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE_MARKER = "x-www-form-urlencoded"

Params = Union[Mapping[str, Any], str, bytes, None]


def _encode_form(params: Mapping[str, Any]) -> str:
    return urlencode(list(params.items()), doseq=True)


def _encode_json(params: Any) -> bytes:
    try:
        encoded = json.dumps(params, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        raise ArgumentError(f"params are not JSON serializable: {exc}") from exc
    return encoded.encode("utf-8")


def _as_bytes(raw: str | bytes) -> bytes:
    return raw if isinstance(raw, bytes) else raw.encode("utf-8")


class RequestBuilder:
    """Assemble OutboundRequest values for a single endpoint."""

    def __init__(
        self, endpoint: Endpoint, default_headers: Mapping[str, str] | None = None
    ) -> None:
        self._endpoint = endpoint
        self._default_headers: Mapping[str, str] = MappingProxyType(
            normalize_headers(default_headers)
        )

    @property
    def default_headers(self) -> Mapping[str, str]:
        return self._default_headers

    @default_headers.setter
    def default_headers(self, headers: Mapping[str, str] | None) -> None:
        # Replaced wholesale, never merged with the previous defaults.
        self._default_headers = MappingProxyType(normalize_headers(headers))

    def build(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str] | None = None,
        params: Params = None,
    ) -> OutboundRequest:
        """Build an immutable request.

        Args:
            method: HTTP verb, case-insensitive.
            path: Absolute path on the endpoint, optionally with a query.
            headers: Per-call headers; they override the defaults per key.
            params: Query parameters for HEAD/GET, body source otherwise.

        Returns:
            The OutboundRequest to send.

        Raises:
            ArgumentError: Unknown method, query in both ``path`` and
                ``params``, or duplicate header keys.
            ConfigurationError: ``host`` header does not match the endpoint.
        """
        verb = method.upper()
        if verb not in METHODS:
            raise ArgumentError(f"unsupported HTTP method: {method}")
        if "?" in path and params:
            raise ArgumentError(
                "querystring must be sent via `params` or `path` but not both"
            )

        merged = merge_headers(self._default_headers, normalize_headers(headers))

        target = path
        body: bytes | None = None
        if verb in QUERY_METHODS:
            target = self._encode_target(path, params)
        elif params:
            body = self._encode_body(merged, params)

        return OutboundRequest(
            method=verb,
            target=target,
            headers=validate_host(merged, self._endpoint.host),
            body=body,
        )

    @staticmethod
    def _encode_target(path: str, params: Params) -> str:
        if not params:
            return path
        if isinstance(params, (str, bytes)):
            query = params.decode("utf-8") if isinstance(params, bytes) else params
        else:
            query = _encode_form(params)
        return f"{path}?{query}"

    @staticmethod
    def _encode_body(headers: dict[str, str], params: Params) -> bytes:
        """Encode ``params`` as the body, setting content-type when missing."""
        content_type = headers.get("content-type")
        if content_type is None:
            headers["content-type"] = JSON_CONTENT_TYPE
            return _encode_json(params)
        if isinstance(params, (str, bytes)):
            return _as_bytes(params)
        if FORM_CONTENT_TYPE_MARKER in content_type.lower():
            return _encode_form(params).encode("ascii")
        return _encode_json(params)
