# src/llmgate/observability/__init__.py
"""
Observability Module for LLMGate.

Components:
    Metrics Hub (collector.py):
        - MetricsCollector: non-blocking event hub with aggregate,
          per-provider and per-model counters, snapshots, reset and close

    Events (events.py):
        - MetricEvent / MetricEventType: lifecycle events
        - MetricFilter: event selection for subscriptions and hooks

    Fan-out (subscription.py):
        - Subscription: bounded, drop-on-overflow event channel
        - MetricsHook / FunctionHook: callbacks with a 100 ms deadline

    Latency (histogram.py):
        - Histogram: fixed-capacity sample buffer with percentiles

    Cost (cost.py):
        - CostCalculator, NullCostCalculator, StaticPricingCostCalculator

    Streams (stream_wrapper.py):
        - MetricsStreamWrapper: TTFT, throughput and abort tracking

Usage:
    >>> from llmgate.observability import MetricsCollector, MetricEvent, MetricEventType
    >>>
    >>> collector = MetricsCollector()
    >>> sub = collector.subscribe(100)
    >>> await collector.record(MetricEvent(type=MetricEventType.REQUEST, provider_name="p"))
    >>> collector.snapshot().total_requests
    1
"""

# =============================================================================
# METRICS HUB
# =============================================================================
from .collector import MetricsCollector

# =============================================================================
# COST
# =============================================================================
from .cost import (
    DEFAULT_CURRENCY,
    Cost,
    CostCalculator,
    NullCostCalculator,
    StaticPricingCostCalculator,
)

# =============================================================================
# EVENTS
# =============================================================================
from .events import MetricEvent, MetricEventType, MetricFilter, filter_matches

# =============================================================================
# LATENCY
# =============================================================================
from .histogram import DEFAULT_HISTOGRAM_CAPACITY, Histogram, calculate_percentile

# =============================================================================
# SNAPSHOTS
# =============================================================================
from .snapshots import (
    ErrorMetrics,
    LatencyMetrics,
    MetricsSnapshot,
    ModelMetricsSnapshot,
    ProviderMetricsSnapshot,
    StreamMetrics,
    TimeToFirstTokenMetrics,
    TokenMetrics,
)

# =============================================================================
# STREAMS
# =============================================================================
from .stream_wrapper import (
    MetricsStreamWrapper,
    StreamWrapperConfig,
    StreamWrapperMetrics,
    categorize_stream_error,
    count_chunk_tokens,
    wrap_stream,
)

# =============================================================================
# FAN-OUT
# =============================================================================
from .subscription import (
    DEFAULT_SUBSCRIPTION_BUFFER,
    HOOK_TIMEOUT_SECONDS,
    FunctionHook,
    MetricsHook,
    Subscription,
)

__all__ = [
    # Hub
    "MetricsCollector",
    # Cost
    "DEFAULT_CURRENCY",
    "Cost",
    "CostCalculator",
    "NullCostCalculator",
    "StaticPricingCostCalculator",
    # Events
    "MetricEvent",
    "MetricEventType",
    "MetricFilter",
    "filter_matches",
    # Latency
    "DEFAULT_HISTOGRAM_CAPACITY",
    "Histogram",
    "calculate_percentile",
    # Snapshots
    "ErrorMetrics",
    "LatencyMetrics",
    "MetricsSnapshot",
    "ModelMetricsSnapshot",
    "ProviderMetricsSnapshot",
    "StreamMetrics",
    "TimeToFirstTokenMetrics",
    "TokenMetrics",
    # Streams
    "MetricsStreamWrapper",
    "StreamWrapperConfig",
    "StreamWrapperMetrics",
    "categorize_stream_error",
    "count_chunk_tokens",
    "wrap_stream",
    # Fan-out
    "DEFAULT_SUBSCRIPTION_BUFFER",
    "HOOK_TIMEOUT_SECONDS",
    "FunctionHook",
    "MetricsHook",
    "Subscription",
]
