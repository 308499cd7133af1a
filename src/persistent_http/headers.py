"""Case-insensitive header handling.

Header keys are always stored lowercase. Building a single header group
rejects two original keys that collapse to the same lowercase key, while
merging defaults with per-call headers is an intentional override.
"""

from __future__ import annotations

from typing import Mapping

from requests.exceptions import InvalidHeader
from requests.utils import check_header_validity

from .errors import ArgumentError, ConfigurationError


def normalize_headers(headers: Mapping[str, object] | None) -> dict[str, str]:
    """Return a copy of ``headers`` with lowercase keys and string values.

    Raises:
        ArgumentError: If two distinct keys normalize to the same key, or a
            name or value is not a legal header field.
    """
    if not headers:
        return {}

    result: dict[str, str] = {}
    originals: dict[str, str] = {}
    for key, value in headers.items():
        normalized_key = str(key).lower()
        if normalized_key in result:
            raise ArgumentError(
                f"duplicate header {key!r} conflicts with "
                f"{originals[normalized_key]!r}"
            )
        try:
            check_header_validity((normalized_key, str(value)))
        except InvalidHeader as exc:
            raise ArgumentError(str(exc)) from exc
        originals[normalized_key] = str(key)
        result[normalized_key] = str(value)
    return result


def merge_headers(
    base: Mapping[str, str], override: Mapping[str, str]
) -> dict[str, str]:
    """Combine two normalized header groups; ``override`` wins per key."""
    merged = dict(base)
    merged.update(override)
    return merged


def validate_host(headers: Mapping[str, str], endpoint_host: str) -> dict[str, str]:
    """Check a user supplied ``host`` header, injecting it when absent.

    Raises:
        ConfigurationError: If ``host`` is present and differs from the
            endpoint host.
    """
    validated = dict(headers)
    host = validated.get("host")
    if host is not None and host.lower() != endpoint_host.lower():
        raise ConfigurationError(
            "host header does not match the endpoint host: "
            f"expected {endpoint_host}, got {host}"
        )
    validated.setdefault("host", endpoint_host)
    return validated
