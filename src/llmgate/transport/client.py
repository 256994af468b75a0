# src/llmgate/transport/client.py
"""
Retrying HTTP client for provider adapters.

:class:`HTTPClient` wraps an ``aiohttp.ClientSession`` and adds:

- default headers and a ``User-Agent``;
- request and response interceptors (plain callables or coroutines);
- retries with exponential backoff on network errors and on retryable
  status codes (429, 500, 502, 503, 504 by default);
- request metrics (counts, average and P95 latency, retries, status codes).

Responses are read fully before they are returned, so callers receive an
:class:`HTTPResponse` that does not hold a connection open.

Usage:
    >>> async with HTTPClient(HTTPClientConfig(max_retries=2)) as client:
    ...     data = await client.request_json("GET", "https://api.example.com/models")
"""

import asyncio
import inspect
import json as jsonlib
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from http import HTTPStatus
from importlib.metadata import PackageNotFoundError, version
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

import aiohttp
from pydantic import BaseModel, Field

from ..exceptions import APIError, ProviderError, TransportError
from ..models import ProviderType
from ..observability.histogram import Histogram
from .backoff import BackoffConfig, calculate_backoff

logger = logging.getLogger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_RETRYABLE_STATUS_CODES = [429, 500, 502, 503, 504]
ANTHROPIC_API_VERSION = "2023-06-01"

try:
    _PACKAGE_VERSION = version("llmgate")
except PackageNotFoundError:
    _PACKAGE_VERSION = "0.1.0"

DEFAULT_USER_AGENT = f"llmgate/{_PACKAGE_VERSION}"


# =============================================================================
# CONFIGURATION
# =============================================================================


class HTTPClientConfig(BaseModel):
    """Settings for :class:`HTTPClient`. Durations are in seconds."""

    timeout_s: float = Field(default=60.0, gt=0, description="Total timeout of a single attempt.")
    max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt.")
    base_retry_delay_s: float = Field(default=1.0, ge=0)
    max_retry_delay_s: float = Field(default=60.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, gt=0)
    retryable_status_codes: List[int] = Field(default_factory=lambda: list(DEFAULT_RETRYABLE_STATUS_CODES))
    headers: Dict[str, str] = Field(default_factory=dict, description="Headers sent with every request.")
    user_agent: str = ""
    enable_metrics: bool = True

    def backoff(self) -> BackoffConfig:
        return BackoffConfig(
            base_delay=self.base_retry_delay_s,
            max_delay=self.max_retry_delay_s,
            multiplier=self.backoff_multiplier,
            max_attempts=self.max_retries,
        )


def default_http_config(provider_type: Union[ProviderType, str] = ProviderType.CUSTOM) -> HTTPClientConfig:
    """Baseline client settings for a provider family."""
    config = HTTPClientConfig(headers=common_headers())
    provider_type = str(getattr(provider_type, "value", provider_type)).lower()
    if provider_type == ProviderType.ANTHROPIC.value:
        config.headers["anthropic-version"] = ANTHROPIC_API_VERSION
    elif provider_type == ProviderType.OPENAI.value:
        config.timeout_s = 120.0
    return config


# =============================================================================
# REQUEST / RESPONSE
# =============================================================================


@dataclass
class HTTPRequest:
    """Outgoing request as seen by request interceptors. Mutable."""

    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    params: Optional[Dict[str, Any]] = None
    json: Any = None
    data: Any = None


@dataclass
class HTTPResponse:
    """Fully read response."""

    status: int
    reason: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding, errors="replace")

    def json(self) -> Any:
        """Decoded JSON body, or None for an empty body."""
        if not self.body.strip():
            return None
        return jsonlib.loads(self.body)


RequestInterceptor = Callable[[HTTPRequest], Union[None, Awaitable[None]]]
ResponseInterceptor = Callable[[HTTPResponse], Union[None, Awaitable[None]]]


class ClientMetrics(BaseModel):
    """Point-in-time copy of the client's request metrics."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    average_latency_ms: float = 0.0
    p95_latency_ms: float = 0.0
    retry_count: int = 0
    status_code_counts: Dict[int, int] = Field(default_factory=dict)
    last_request_time: Optional[datetime] = None


# =============================================================================
# CLIENT
# =============================================================================


class HTTPClient:
    """
    aiohttp-backed client with retries, interceptors and metrics.

    Args:
        config: Client settings. Defaults to :class:`HTTPClientConfig()`.
        request_interceptor: Called with each :class:`HTTPRequest` before the
            first attempt. Raising aborts the request.
        response_interceptor: Called with every received :class:`HTTPResponse`,
            including those that will be retried. Raising aborts the request.
        session: Externally owned session. It is not closed by :meth:`close`.
    """

    def __init__(
        self,
        config: Optional[HTTPClientConfig] = None,
        request_interceptor: Optional[RequestInterceptor] = None,
        response_interceptor: Optional[ResponseInterceptor] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self._config = config or HTTPClientConfig()
        self._backoff = self._config.backoff()
        self._retryable = set(self._config.retryable_status_codes)
        self._request_interceptor = request_interceptor
        self._response_interceptor = response_interceptor
        self._session = session
        self._owns_session = session is None

        self._lock = threading.Lock()
        self._latencies = Histogram()
        self._reset_counters()

    @property
    def config(self) -> HTTPClientConfig:
        return self._config

    def _reset_counters(self) -> None:
        self._total_requests = 0
        self._successful_requests = 0
        self._failed_requests = 0
        self._retry_count = 0
        self._status_code_counts: Dict[int, int] = {}
        self._last_request_time: Optional[datetime] = None
        self._latencies.reset()

    async def _get_session(self) -> aiohttp.ClientSession:
        """Gets or creates the aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self._config.timeout_s))
            self._owns_session = True
            logger.debug("Created new aiohttp.ClientSession for HTTPClient.")
        return self._session

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        data: Any = None,
    ) -> HTTPResponse:
        """
        Send a request, retrying on network errors and retryable statuses.

        A retryable status on the final attempt is returned, not raised.

        Raises:
            TransportError: On a failing interceptor or when every attempt
                failed at the network level.
            asyncio.CancelledError: Propagated, including during backoff sleeps.
        """
        start = time.monotonic()
        req = HTTPRequest(
            method=method.upper(),
            url=url,
            headers=self._default_headers(headers),
            params=params,
            json=json,
            data=data,
        )

        if self._request_interceptor is not None:
            try:
                await _maybe_await(self._request_interceptor(req))
            except Exception as e:
                raise TransportError(f"request interceptor failed: {e}", cause=e) from e

        session = await self._get_session()
        response: Optional[HTTPResponse] = None
        last_error: Optional[BaseException] = None
        max_retries = self._config.max_retries

        for attempt in range(max_retries + 1):
            if attempt > 0:
                delay = calculate_backoff(self._backoff, attempt)
                logger.debug(f"Retrying {req.method} {req.url} (attempt {attempt}/{max_retries}) in {delay:.2f}s")
                await asyncio.sleep(delay)
                with self._lock:
                    self._retry_count += 1

            try:
                response = await self._send(session, req)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.debug(f"{req.method} {req.url} failed on attempt {attempt + 1}: {e!r}")
                last_error = e
                response = None
                continue

            last_error = None
            if self._response_interceptor is not None:
                try:
                    await _maybe_await(self._response_interceptor(response))
                except Exception as e:
                    raise TransportError(f"response interceptor failed: {e}", cause=e) from e

            if attempt < max_retries and response.status in self._retryable:
                logger.debug(f"{req.method} {req.url} returned retryable status {response.status}")
                continue
            break

        self._update_metrics(response, last_error, (time.monotonic() - start) * 1000.0)

        if last_error is not None or response is None:
            logger.warning(f"{req.method} {req.url} failed after {max_retries + 1} attempt(s): {last_error}")
            raise TransportError(f"request to {req.url} failed: {last_error}", cause=last_error) from last_error
        return response

    async def _send(self, session: aiohttp.ClientSession, req: HTTPRequest) -> HTTPResponse:
        kwargs: Dict[str, Any] = {"headers": req.headers}
        if req.params:
            kwargs["params"] = req.params
        if req.json is not None:
            kwargs["json"] = req.json
        elif req.data is not None:
            kwargs["data"] = req.data

        async with session.request(req.method, req.url, **kwargs) as resp:
            body = await resp.read()
            return HTTPResponse(
                status=resp.status,
                reason=resp.reason or "",
                headers=dict(resp.headers),
                body=body,
                url=str(resp.url),
            )

    def _default_headers(self, headers: Optional[Dict[str, str]]) -> Dict[str, str]:
        merged = {"User-Agent": self._config.user_agent or DEFAULT_USER_AGENT}
        merged.update(self._config.headers)
        if headers:
            merged.update(headers)
        return merged

    def _update_metrics(self, response: Optional[HTTPResponse], error: Optional[BaseException], latency_ms: float) -> None:
        if not self._config.enable_metrics:
            return
        with self._lock:
            self._last_request_time = datetime.now(timezone.utc)
            self._total_requests += 1
            if error is not None or response is None:
                self._failed_requests += 1
            else:
                self._successful_requests += 1
                self._status_code_counts[response.status] = self._status_code_counts.get(response.status, 0) + 1
        self._latencies.add(latency_ms)

    async def request_json(
        self,
        method: str,
        url: str,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Send a JSON request and decode the JSON response.

        Raises:
            APIError: For a non-2xx final response, parsed by :func:`parse_api_error`.
            TransportError: See :meth:`request`.
        """
        merged = {"Accept": "application/json"}
        if headers:
            merged.update(headers)
        response = await self.request(method, url, headers=merged, params=params, json=body)
        if not response.ok:
            raise parse_api_error(response.status, response.body, response.reason)
        return response.json()

    async def post_json(self, url: str, body: Any, headers: Optional[Dict[str, str]] = None) -> HTTPResponse:
        """POST ``body`` as JSON and return the raw response."""
        return await self.request("POST", url, headers=headers, json=body)

    def get_metrics(self) -> ClientMetrics:
        latency = self._latencies.snapshot()
        with self._lock:
            return ClientMetrics(
                total_requests=self._total_requests,
                successful_requests=self._successful_requests,
                failed_requests=self._failed_requests,
                average_latency_ms=latency.average_latency_ms,
                p95_latency_ms=latency.p95_latency_ms,
                retry_count=self._retry_count,
                status_code_counts=dict(self._status_code_counts),
                last_request_time=self._last_request_time,
            )

    def reset_metrics(self) -> None:
        with self._lock:
            self._reset_counters()

    async def close(self) -> None:
        """Closes the aiohttp session if this client created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
            logger.debug("HTTPClient aiohttp session closed.")
        self._session = None

    async def __aenter__(self) -> "HTTPClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


# =============================================================================
# BUILDER
# =============================================================================


class HTTPClientBuilder:
    """Fluent construction of :class:`HTTPClient`."""

    def __init__(self, config: Optional[HTTPClientConfig] = None):
        self._config = (config or HTTPClientConfig()).model_copy(deep=True)
        self._request_interceptor: Optional[RequestInterceptor] = None
        self._response_interceptor: Optional[ResponseInterceptor] = None

    def with_timeout(self, timeout_s: float) -> "HTTPClientBuilder":
        self._config.timeout_s = timeout_s
        return self

    def with_retry(self, max_retries: int, base_delay_s: float) -> "HTTPClientBuilder":
        self._config.max_retries = max_retries
        self._config.base_retry_delay_s = base_delay_s
        return self

    def with_max_retry_delay(self, max_delay_s: float) -> "HTTPClientBuilder":
        self._config.max_retry_delay_s = max_delay_s
        return self

    def with_retryable_status_codes(self, codes: Iterable[int]) -> "HTTPClientBuilder":
        self._config.retryable_status_codes = list(codes)
        return self

    def with_headers(self, headers: Dict[str, str]) -> "HTTPClientBuilder":
        self._config.headers.update(headers)
        return self

    def with_user_agent(self, user_agent: str) -> "HTTPClientBuilder":
        self._config.user_agent = user_agent
        return self

    def with_metrics(self, enabled: bool) -> "HTTPClientBuilder":
        self._config.enable_metrics = enabled
        return self

    def with_request_interceptor(self, interceptor: RequestInterceptor) -> "HTTPClientBuilder":
        self._request_interceptor = interceptor
        return self

    def with_response_interceptor(self, interceptor: ResponseInterceptor) -> "HTTPClientBuilder":
        self._response_interceptor = interceptor
        return self

    def build(self) -> HTTPClient:
        return HTTPClient(
            self._config.model_copy(deep=True),
            request_interceptor=self._request_interceptor,
            response_interceptor=self._response_interceptor,
        )


# =============================================================================
# HELPERS
# =============================================================================


def parse_api_error(status_code: int, body: Union[bytes, str, None], reason: str = "") -> APIError:
    """
    Build an :class:`APIError` from an error response.

    Understands ``{"error": {"message", "type", "code"}}`` and
    ``{"error": "message"}`` bodies. Otherwise the trimmed body is used as
    the message, then the reason phrase.
    """
    if isinstance(body, bytes):
        raw = body.decode("utf-8", errors="replace")
    else:
        raw = body or ""

    message, error_type, code = "", "", ""
    try:
        payload = jsonlib.loads(raw) if raw.strip() else None
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            message = str(error.get("message") or "")
            error_type = str(error.get("type") or "")
            code = str(error.get("code") or "")
        elif isinstance(error, str):
            message = error
        elif isinstance(payload.get("message"), str):
            message = payload["message"]

    if not message:
        message = raw.strip() or reason or _status_phrase(status_code)
    return APIError(status_code, message, error_type=error_type, code=code, raw_body=raw)


def _status_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return f"HTTP {status_code}"


def is_retryable_error(
    error: Optional[BaseException],
    retryable_status_codes: Iterable[int] = DEFAULT_RETRYABLE_STATUS_CODES,
) -> bool:
    """True for network failures and for API errors carrying a retryable status."""
    if error is None:
        return False
    codes = set(retryable_status_codes)
    if isinstance(error, APIError):
        return error.status_code in codes
    if isinstance(error, ProviderError):
        return error.status_code in codes
    if isinstance(error, TransportError):
        return error.cause is None or is_retryable_error(error.cause, codes)
    return isinstance(error, (aiohttp.ClientConnectionError, asyncio.TimeoutError))


def auth_headers(method: str, token: str) -> Dict[str, str]:
    """Authentication headers for a vendor auth scheme."""
    if method in ("bearer", "openai"):
        return {"Authorization": f"Bearer {token}"}
    if method == "api-key":
        return {"x-api-key": token}
    if method == "anthropic":
        return {"x-api-key": token, "anthropic-version": ANTHROPIC_API_VERSION}
    return {"Authorization": token}


def common_headers() -> Dict[str, str]:
    return {
        "Accept": "application/json",
        "Content-Type": "application/json",
        "User-Agent": DEFAULT_USER_AGENT,
    }
