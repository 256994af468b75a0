# src/llmgate/observability/snapshots.py
"""
Snapshot models returned by the metrics collector.

Snapshots are plain value objects assembled on demand. Holders may keep
and mutate them freely; nothing in the collector refers back to them.
All latencies are milliseconds.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field


class LatencyMetrics(BaseModel):
    """Latency distribution produced by a histogram."""

    total_requests: int = 0
    total_latency_ms: float = 0.0
    average_latency_ms: float = 0.0
    min_latency_ms: float = 0.0
    max_latency_ms: float = 0.0
    p50_latency_ms: float = 0.0
    p75_latency_ms: float = 0.0
    p90_latency_ms: float = 0.0
    p95_latency_ms: float = 0.0
    p99_latency_ms: float = 0.0
    last_updated: Optional[datetime] = None


class TimeToFirstTokenMetrics(BaseModel):
    """TTFT distribution for streaming requests."""

    total_measurements: int = 0
    average_ttft_ms: float = 0.0
    min_ttft_ms: float = 0.0
    max_ttft_ms: float = 0.0
    p50_ttft_ms: float = 0.0
    p75_ttft_ms: float = 0.0
    p90_ttft_ms: float = 0.0
    p95_ttft_ms: float = 0.0
    p99_ttft_ms: float = 0.0
    last_updated: Optional[datetime] = None

    @classmethod
    def from_latency(cls, latency: LatencyMetrics) -> "TimeToFirstTokenMetrics":
        return cls(
            total_measurements=latency.total_requests,
            average_ttft_ms=latency.average_latency_ms,
            min_ttft_ms=latency.min_latency_ms,
            max_ttft_ms=latency.max_latency_ms,
            p50_ttft_ms=latency.p50_latency_ms,
            p75_ttft_ms=latency.p75_latency_ms,
            p90_ttft_ms=latency.p90_latency_ms,
            p95_ttft_ms=latency.p95_latency_ms,
            p99_ttft_ms=latency.p99_latency_ms,
            last_updated=latency.last_updated,
        )


class StreamMetrics(BaseModel):
    """Aggregate streaming statistics."""

    total_stream_requests: int = 0
    successful_stream_requests: int = 0
    failed_stream_requests: int = 0
    stream_success_rate: float = 0.0

    time_to_first_token: TimeToFirstTokenMetrics = Field(default_factory=TimeToFirstTokenMetrics)

    average_tokens_per_second: float = 0.0
    min_tokens_per_second: float = 0.0
    max_tokens_per_second: float = 0.0

    average_stream_duration_ms: float = 0.0
    min_stream_duration_ms: float = 0.0
    max_stream_duration_ms: float = 0.0

    total_streamed_tokens: int = 0
    average_tokens_per_stream: float = 0.0
    total_chunks: int = 0
    average_chunks_per_stream: float = 0.0
    average_chunk_size: float = 0.0

    last_updated: Optional[datetime] = None


class TokenMetrics(BaseModel):
    """Token counters and accumulated cost."""

    total_tokens: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cached_tokens: int = 0
    cache_read_tokens: int = 0
    reasoning_tokens: int = 0

    average_input_tokens: float = 0.0
    average_output_tokens: float = 0.0
    average_total_tokens: float = 0.0
    input_output_ratio: float = 0.0
    cache_hit_rate: float = 0.0

    estimated_cost: float = 0.0
    estimated_input_cost: float = 0.0
    estimated_output_cost: float = 0.0
    currency: str = "USD"

    last_updated: Optional[datetime] = None


class ErrorMetrics(BaseModel):
    """Error breakdown."""

    total_errors: int = 0
    error_rate: float = 0.0

    errors_by_type: Dict[str, int] = Field(default_factory=dict)
    errors_by_status: Dict[str, int] = Field(default_factory=dict)

    rate_limit_errors: int = 0
    timeout_errors: int = 0
    authentication_errors: int = 0
    invalid_request_errors: int = 0
    server_errors: int = 0
    network_errors: int = 0
    unknown_errors: int = 0

    rate_limit_error_rate: float = 0.0
    timeout_error_rate: float = 0.0
    authentication_error_rate: float = 0.0
    server_error_rate: float = 0.0

    consecutive_errors: int = 0
    last_error: str = ""
    last_error_type: str = ""
    last_error_time: Optional[datetime] = None
    last_updated: Optional[datetime] = None


class _BreakdownSnapshot(BaseModel):
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    success_rate: float = 0.0

    latency: LatencyMetrics = Field(default_factory=LatencyMetrics)
    tokens: TokenMetrics = Field(default_factory=TokenMetrics)
    errors: ErrorMetrics = Field(default_factory=ErrorMetrics)
    streaming: Optional[StreamMetrics] = None

    last_request_time: Optional[datetime] = None
    last_updated: Optional[datetime] = None


class ProviderMetricsSnapshot(_BreakdownSnapshot):
    """Per-provider view."""

    provider: str
    provider_type: str = ""

    initializations: int = 0
    health_checks: int = 0
    health_check_fails: int = 0
    health_check_success_rate: float = 0.0
    rate_limit_hits: int = 0
    model_usage: Dict[str, int] = Field(default_factory=dict)


class ModelMetricsSnapshot(_BreakdownSnapshot):
    """Per-model view."""

    model_id: str
    provider: str = ""
    provider_type: str = ""

    average_tokens_per_request: float = 0.0
    estimated_cost_per_request: float = 0.0


class MetricsSnapshot(BaseModel):
    """Complete point-in-time copy of the collector's state."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    success_rate: float = 0.0

    latency: LatencyMetrics = Field(default_factory=LatencyMetrics)
    tokens: TokenMetrics = Field(default_factory=TokenMetrics)
    errors: ErrorMetrics = Field(default_factory=ErrorMetrics)
    streaming: Optional[StreamMetrics] = None

    provider_breakdown: Dict[str, ProviderMetricsSnapshot] = Field(default_factory=dict)
    model_breakdown: Dict[str, ModelMetricsSnapshot] = Field(default_factory=dict)

    first_request_time: Optional[datetime] = None
    last_updated: Optional[datetime] = None
    uptime_seconds: float = 0.0
    record_failures: int = 0


def calculate_rate(numerator: float, denominator: float) -> float:
    """Ratio that is zero when the denominator is not positive."""
    if denominator <= 0:
        return 0.0
    return numerator / denominator
