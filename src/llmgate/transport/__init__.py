# src/llmgate/transport/__init__.py
"""
HTTP transport helpers shared by provider adapters.
"""

from .backoff import BackoffConfig, calculate_backoff
from .client import (
    DEFAULT_RETRYABLE_STATUS_CODES,
    DEFAULT_USER_AGENT,
    ClientMetrics,
    HTTPClient,
    HTTPClientBuilder,
    HTTPClientConfig,
    HTTPRequest,
    HTTPResponse,
    auth_headers,
    common_headers,
    default_http_config,
    is_retryable_error,
    parse_api_error,
)

__all__ = [
    "BackoffConfig",
    "calculate_backoff",
    "DEFAULT_RETRYABLE_STATUS_CODES",
    "DEFAULT_USER_AGENT",
    "ClientMetrics",
    "HTTPClient",
    "HTTPClientBuilder",
    "HTTPClientConfig",
    "HTTPRequest",
    "HTTPResponse",
    "auth_headers",
    "common_headers",
    "default_http_config",
    "is_retryable_error",
    "parse_api_error",
]
