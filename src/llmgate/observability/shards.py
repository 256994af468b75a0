# src/llmgate/observability/shards.py
"""
Counter containers used by the metrics collector.

The collector keeps one aggregate set of counters plus one *shard* per
provider name and per model id. Every container owns its own lock, so
updates to different shards never contend, and every container builds its
snapshot from a consistent view of its own fields.
"""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Dict, Optional

from .cost import Cost, CostCalculator
from .events import MetricEvent, MetricEventType
from .histogram import Histogram
from .snapshots import (
    ErrorMetrics,
    ModelMetricsSnapshot,
    ProviderMetricsSnapshot,
    StreamMetrics,
    TimeToFirstTokenMetrics,
    TokenMetrics,
    calculate_rate,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def calculate_event_cost(calculator: CostCalculator, event: MetricEvent) -> Optional[Cost]:
    """Cost of an event's input/output tokens, or None when it has neither."""
    if event.input_tokens <= 0 and event.output_tokens <= 0:
        return None
    return calculator.calculate_cost(
        event.provider_name, event.model_id, event.input_tokens, event.output_tokens
    )


class TokenCounters:
    """Monotonic token counters and accumulated cost."""

    def __init__(self, currency: str = "USD"):
        self._lock = threading.Lock()
        self.total = 0
        self.input = 0
        self.output = 0
        self.cached = 0
        self.cache_read = 0
        self.reasoning = 0
        self.input_cost = 0.0
        self.output_cost = 0.0
        self.total_cost = 0.0
        self.currency = currency
        self.last_updated: Optional[datetime] = None

    def record(self, event: MetricEvent, cost: Optional[Cost]) -> None:
        with self._lock:
            # Negative values are ignored so counters never decrease
            self.total += max(event.tokens_used, 0)
            self.input += max(event.input_tokens, 0)
            self.output += max(event.output_tokens, 0)
            self.cached += max(event.cached_tokens, 0)
            self.cache_read += max(event.cache_read_tokens, 0)
            self.reasoning += max(event.reasoning_tokens, 0)
            if cost is not None:
                self.input_cost += cost.input_cost
                self.output_cost += cost.output_cost
                self.total_cost += cost.total_cost
                if cost.currency:
                    self.currency = cost.currency
            self.last_updated = _now()

    def snapshot(self, requests: int) -> TokenMetrics:
        with self._lock:
            return TokenMetrics(
                total_tokens=self.total,
                input_tokens=self.input,
                output_tokens=self.output,
                cached_tokens=self.cached,
                cache_read_tokens=self.cache_read,
                reasoning_tokens=self.reasoning,
                average_input_tokens=calculate_rate(self.input, requests),
                average_output_tokens=calculate_rate(self.output, requests),
                average_total_tokens=calculate_rate(self.total, requests),
                input_output_ratio=calculate_rate(self.input, self.output),
                cache_hit_rate=calculate_rate(self.cache_read, self.input),
                estimated_cost=self.total_cost,
                estimated_input_cost=self.input_cost,
                estimated_output_cost=self.output_cost,
                currency=self.currency,
                last_updated=self.last_updated,
            )


class ErrorCounters:
    """Error breakdown by type, status code and category."""

    def __init__(self):
        self._lock = threading.Lock()
        self.total = 0
        self.by_type: Dict[str, int] = {}
        self.by_status: Dict[str, int] = {}
        self.rate_limit = 0
        self.timeout = 0
        self.authentication = 0
        self.invalid_request = 0
        self.server = 0
        self.network = 0
        self.unknown = 0
        self.consecutive = 0
        self.last_error = ""
        self.last_error_type = ""
        self.last_error_time: Optional[datetime] = None
        self.last_updated: Optional[datetime] = None

    def record_error(self, event: MetricEvent) -> None:
        with self._lock:
            self.total += 1
            self.consecutive += 1
            self.last_error = event.error_message
            self.last_error_type = event.error_type
            self.last_error_time = event.timestamp
            self.last_updated = _now()

            if event.error_type:
                self.by_type[event.error_type] = self.by_type.get(event.error_type, 0) + 1
            if event.status_code > 0:
                status = str(event.status_code)
                self.by_status[status] = self.by_status.get(status, 0) + 1

            categorized = False
            if event.type == MetricEventType.RATE_LIMIT or event.error_type == "rate_limit":
                self.rate_limit += 1
                categorized = True
            if event.type == MetricEventType.TIMEOUT or event.error_type == "timeout":
                self.timeout += 1
                categorized = True
            if event.error_type == "authentication":
                self.authentication += 1
                categorized = True
            elif event.error_type == "invalid_request":
                self.invalid_request += 1
                categorized = True
            elif event.error_type == "network":
                self.network += 1
                categorized = True
            if event.status_code >= 500:
                self.server += 1
                categorized = True
            if not categorized:
                self.unknown += 1

    def record_non_error(self) -> None:
        with self._lock:
            self.consecutive = 0

    def snapshot(self, requests: int) -> ErrorMetrics:
        with self._lock:
            return ErrorMetrics(
                total_errors=self.total,
                error_rate=calculate_rate(self.total, requests),
                errors_by_type=dict(self.by_type),
                errors_by_status=dict(self.by_status),
                rate_limit_errors=self.rate_limit,
                timeout_errors=self.timeout,
                authentication_errors=self.authentication,
                invalid_request_errors=self.invalid_request,
                server_errors=self.server,
                network_errors=self.network,
                unknown_errors=self.unknown,
                rate_limit_error_rate=calculate_rate(self.rate_limit, self.total),
                timeout_error_rate=calculate_rate(self.timeout, self.total),
                authentication_error_rate=calculate_rate(self.authentication, self.total),
                server_error_rate=calculate_rate(self.server, self.total),
                consecutive_errors=self.consecutive,
                last_error=self.last_error,
                last_error_type=self.last_error_type,
                last_error_time=self.last_error_time,
                last_updated=self.last_updated,
            )


class StreamCounters:
    """Streaming statistics: counts, TTFT histogram, throughput and duration."""

    def __init__(self, histogram_capacity: int):
        self._lock = threading.Lock()
        self.ttft = Histogram(histogram_capacity)
        self.total = 0
        self.successful = 0
        self.failed = 0
        self.streamed_tokens = 0
        self.chunks = 0
        self.min_tps = 0.0
        self.max_tps = 0.0
        self.tps_sum = 0.0
        self.tps_count = 0
        self.min_duration_ms = 0.0
        self.max_duration_ms = 0.0
        self.duration_sum_ms = 0.0
        self.last_updated: Optional[datetime] = None

    def record(self, event: MetricEvent) -> None:
        if event.type == MetricEventType.STREAM_START:
            self._record_start(event)
        elif event.type == MetricEventType.STREAM_END:
            self._record_end(event)
        elif event.type == MetricEventType.STREAM_ABORT:
            with self._lock:
                self.failed += 1
                self.last_updated = _now()

    def _record_start(self, event: MetricEvent) -> None:
        with self._lock:
            self.total += 1
            self.last_updated = _now()
        if event.time_to_first_token_ms > 0:
            self.ttft.add(event.time_to_first_token_ms)

    def _record_end(self, event: MetricEvent) -> None:
        with self._lock:
            self.successful += 1
            if event.tokens_used > 0:
                self.streamed_tokens += event.tokens_used
            chunks = event.metadata.get("chunks_received")
            if isinstance(chunks, int) and not isinstance(chunks, bool) and chunks > 0:
                self.chunks += chunks

            tps = event.tokens_per_second
            if tps > 0:
                if self.min_tps == 0 or tps < self.min_tps:
                    self.min_tps = tps
                if tps > self.max_tps:
                    self.max_tps = tps
                self.tps_sum += tps
                self.tps_count += 1

            duration = event.latency_ms
            if duration > 0:
                if self.min_duration_ms == 0 or duration < self.min_duration_ms:
                    self.min_duration_ms = duration
                if duration > self.max_duration_ms:
                    self.max_duration_ms = duration
                self.duration_sum_ms += duration
            self.last_updated = _now()

    def snapshot(self) -> Optional[StreamMetrics]:
        """Returns None when no stream was ever recorded."""
        with self._lock:
            if self.total == 0 and self.successful == 0 and self.failed == 0:
                return None
            started = max(self.total, self.successful + self.failed)
            metrics = StreamMetrics(
                total_stream_requests=started,
                successful_stream_requests=self.successful,
                failed_stream_requests=self.failed,
                stream_success_rate=calculate_rate(self.successful, started),
                average_tokens_per_second=calculate_rate(self.tps_sum, self.tps_count),
                min_tokens_per_second=self.min_tps,
                max_tokens_per_second=self.max_tps,
                average_stream_duration_ms=calculate_rate(self.duration_sum_ms, self.successful),
                min_stream_duration_ms=self.min_duration_ms,
                max_stream_duration_ms=self.max_duration_ms,
                total_streamed_tokens=self.streamed_tokens,
                average_tokens_per_stream=calculate_rate(self.streamed_tokens, self.successful),
                total_chunks=self.chunks,
                average_chunks_per_stream=calculate_rate(self.chunks, self.successful),
                average_chunk_size=calculate_rate(self.streamed_tokens, self.chunks),
                last_updated=self.last_updated,
            )
        metrics.time_to_first_token = TimeToFirstTokenMetrics.from_latency(self.ttft.snapshot())
        return metrics


class _Shard:
    """Counters shared by provider and model shards."""

    def __init__(self, histogram_capacity: int, currency: str):
        self._lock = threading.Lock()
        self.latency = Histogram(histogram_capacity)
        self.tokens = TokenCounters(currency)
        self.errors = ErrorCounters()
        self.streams = StreamCounters(histogram_capacity)
        self.total_requests = 0
        self.successful_requests = 0
        self.failed_requests = 0
        self.last_request_time: Optional[datetime] = None
        self.last_updated: Optional[datetime] = None

    def record(self, event: MetricEvent, cost: Optional[Cost] = None) -> None:
        with self._lock:
            self.last_request_time = event.timestamp
            self.last_updated = _now()
            if event.type == MetricEventType.REQUEST:
                self.total_requests += 1
            elif event.type == MetricEventType.SUCCESS:
                self.successful_requests += 1
            elif event.type.is_error:
                self.failed_requests += 1
            self._record_extra(event)

        if event.type == MetricEventType.SUCCESS and event.latency_ms > 0:
            self.latency.add(event.latency_ms)
        if event.type.is_error:
            self.errors.record_error(event)
        else:
            self.errors.record_non_error()
        if event.type.is_stream:
            self.streams.record(event)
        if event.has_tokens():
            self.tokens.record(event, cost)

    def _record_extra(self, event: MetricEvent) -> None:
        """Hook for subclass-specific counters; called with the shard lock held."""

    def _counts(self):
        with self._lock:
            return (
                self.total_requests,
                self.successful_requests,
                self.failed_requests,
                self.last_request_time,
                self.last_updated,
            )


class ProviderShard(_Shard):
    """Per-provider counters."""

    def __init__(self, name: str, provider_type: str, histogram_capacity: int, currency: str):
        super().__init__(histogram_capacity, currency)
        self.name = name
        self.provider_type = provider_type
        self.initializations = 0
        self.health_checks = 0
        self.health_check_fails = 0
        self.rate_limit_hits = 0
        self.model_usage: Dict[str, int] = {}

    def _record_extra(self, event: MetricEvent) -> None:
        if event.type == MetricEventType.INITIALIZATION:
            self.initializations += 1
        elif event.type == MetricEventType.HEALTH_CHECK:
            self.health_checks += 1
            if event.error_message:
                self.health_check_fails += 1
        elif event.type == MetricEventType.RATE_LIMIT:
            self.rate_limit_hits += 1
        if event.model_id:
            self.model_usage[event.model_id] = self.model_usage.get(event.model_id, 0) + 1
        if event.provider_type and not self.provider_type:
            self.provider_type = event.provider_type

    def snapshot(self) -> ProviderMetricsSnapshot:
        total, success, failed, last_request, last_updated = self._counts()
        with self._lock:
            health_checks = self.health_checks
            health_fails = self.health_check_fails
            extras = dict(
                provider_type=self.provider_type,
                initializations=self.initializations,
                health_checks=health_checks,
                health_check_fails=health_fails,
                health_check_success_rate=calculate_rate(health_checks - health_fails, health_checks),
                rate_limit_hits=self.rate_limit_hits,
                model_usage=dict(self.model_usage),
            )
        return ProviderMetricsSnapshot(
            provider=self.name,
            total_requests=total,
            successful_requests=success,
            failed_requests=failed,
            success_rate=calculate_rate(success, total),
            latency=self.latency.snapshot(),
            tokens=self.tokens.snapshot(total),
            errors=self.errors.snapshot(total),
            streaming=self.streams.snapshot(),
            last_request_time=last_request,
            last_updated=last_updated,
            **extras,
        )


class ModelShard(_Shard):
    """Per-model counters."""

    def __init__(self, model_id: str, provider: str, provider_type: str, histogram_capacity: int, currency: str):
        super().__init__(histogram_capacity, currency)
        self.model_id = model_id
        self.provider = provider
        self.provider_type = provider_type

    def snapshot(self) -> ModelMetricsSnapshot:
        total, success, failed, last_request, last_updated = self._counts()
        tokens = self.tokens.snapshot(total)
        return ModelMetricsSnapshot(
            model_id=self.model_id,
            provider=self.provider,
            provider_type=self.provider_type,
            total_requests=total,
            successful_requests=success,
            failed_requests=failed,
            success_rate=calculate_rate(success, total),
            latency=self.latency.snapshot(),
            tokens=tokens,
            errors=self.errors.snapshot(total),
            streaming=self.streams.snapshot(),
            average_tokens_per_request=calculate_rate(tokens.total_tokens, total),
            estimated_cost_per_request=calculate_rate(tokens.estimated_cost, total),
            last_request_time=last_request,
            last_updated=last_updated,
        )
