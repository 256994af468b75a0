# src/llmgate/observability/events.py
"""
Metric Event Models for LLMGate.

Every lifecycle point of a request (request accepted, success, failure,
stream start/chunk/end/abort, health checks, provider switches, races)
is described by a single :class:`MetricEvent`. Events are recorded into
:class:`~llmgate.observability.collector.MetricsCollector`, which updates
its counters and forwards copies to subscriptions and hooks.

Usage:
    >>> from llmgate.observability.events import MetricEvent, MetricEventType, MetricFilter
    >>>
    >>> event = MetricEvent(
    ...     type=MetricEventType.SUCCESS,
    ...     provider_name="openai-main",
    ...     model_id="gpt-4o",
    ...     latency_ms=120.0,
    ... )
    >>> MetricFilter(event_types=[MetricEventType.ERROR]).matches(event)
    False
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

# =============================================================================
# ENUMS
# =============================================================================


class MetricEventType(str, Enum):
    """Types of lifecycle events."""

    REQUEST = "request"
    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    STREAM_START = "stream_start"
    STREAM_CHUNK = "stream_chunk"
    STREAM_END = "stream_end"
    STREAM_ABORT = "stream_abort"
    HEALTH_CHECK = "health_check"
    INITIALIZATION = "initialization"
    TOKEN_REFRESH = "token_refresh"
    PROVIDER_SWITCH = "provider_switch"
    RACE_COMPLETE = "race_complete"
    CIRCUIT_OPEN = "circuit_open"
    CIRCUIT_CLOSE = "circuit_close"

    @property
    def is_error(self) -> bool:
        """True for the event types counted as failed requests."""
        return self in _ERROR_EVENT_TYPES

    @property
    def is_stream(self) -> bool:
        return self in _STREAM_EVENT_TYPES


_ERROR_EVENT_TYPES = frozenset(
    {MetricEventType.ERROR, MetricEventType.TIMEOUT, MetricEventType.RATE_LIMIT}
)
_STREAM_EVENT_TYPES = frozenset(
    {
        MetricEventType.STREAM_START,
        MetricEventType.STREAM_CHUNK,
        MetricEventType.STREAM_END,
        MetricEventType.STREAM_ABORT,
    }
)


# =============================================================================
# DATA MODELS
# =============================================================================


class MetricEvent(BaseModel):
    """
    A single lifecycle event.

    Latencies are in milliseconds. Zero-valued fields mean "not set".
    """

    type: MetricEventType
    provider_name: str = ""
    provider_type: str = ""
    model_id: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Request metrics
    latency_ms: float = 0.0
    tokens_used: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cached_tokens: int = 0
    cache_read_tokens: int = 0
    reasoning_tokens: int = 0

    # Streaming
    is_streaming: bool = False
    stream_session_id: str = ""
    stream_chunk_index: int = 0
    time_to_first_token_ms: float = 0.0
    tokens_per_second: float = 0.0

    # Errors
    error_type: str = ""
    error_message: str = ""
    status_code: int = 0

    # Fallback / provider switching
    from_provider: str = ""
    to_provider: str = ""
    switch_reason: str = ""
    attempt_number: int = 0

    # Racing
    race_participants: List[str] = Field(default_factory=list)
    race_latencies_ms: Dict[str, float] = Field(default_factory=dict)
    race_winner: str = ""

    metadata: Dict[str, Any] = Field(default_factory=dict)

    def has_tokens(self) -> bool:
        """True when the event carries any of the token counts."""
        return self.tokens_used > 0 or self.input_tokens > 0 or self.output_tokens > 0


class MetricFilter(BaseModel):
    """
    Selects events for a subscription or hook.

    Each populated list must contain the corresponding event field. An
    empty list is a wildcard.
    """

    provider_names: List[str] = Field(default_factory=list)
    provider_types: List[str] = Field(default_factory=list)
    model_ids: List[str] = Field(default_factory=list)
    event_types: List[MetricEventType] = Field(default_factory=list)
    min_latency_ms: float = Field(default=0.0, ge=0)
    error_types_only: bool = False

    def matches(self, event: MetricEvent) -> bool:
        """Return True if ``event`` passes every populated criterion."""
        if self.provider_names and event.provider_name not in self.provider_names:
            return False
        if self.provider_types and event.provider_type not in self.provider_types:
            return False
        if self.model_ids and event.model_id not in self.model_ids:
            return False
        if self.event_types and event.type not in self.event_types:
            return False
        if self.min_latency_ms > 0 and 0 < event.latency_ms < self.min_latency_ms:
            return False
        if self.error_types_only and not event.type.is_error:
            return False
        return True


def filter_matches(metric_filter: Optional[MetricFilter], event: MetricEvent) -> bool:
    """Absent filters match everything."""
    return metric_filter is None or metric_filter.matches(event)
