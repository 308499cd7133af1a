"""Connection-reusing HTTP client with bounded retry-with-rebuild."""

__version__ = "0.1.0"

from .client import HttpClient  # noqa: E402
from .config import HttpClientConfig  # noqa: E402
from .errors import (  # noqa: E402
    ArgumentError,
    ConfigurationError,
    ConnectionError,
    HttpClientError,
    RequestTimeoutError,
    ResponseFormatError,
)
from .models import Endpoint, OutboundRequest, Response  # noqa: E402

__all__ = [
    "ArgumentError",
    "ConfigurationError",
    "ConnectionError",
    "Endpoint",
    "HttpClient",
    "HttpClientConfig",
    "HttpClientError",
    "OutboundRequest",
    "RequestTimeoutError",
    "Response",
    "ResponseFormatError",
    "__version__",
]
