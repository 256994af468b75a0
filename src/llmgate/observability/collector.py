# src/llmgate/observability/collector.py
"""
Metrics Event Hub for LLMGate.

:class:`MetricsCollector` ingests :class:`MetricEvent` values from every
part of the gateway and

- maintains aggregate counters (requests, successes, failures), a latency
  histogram, token and cost totals, an error breakdown and streaming stats;
- mirrors the same state into per-provider and per-model shards created
  on first use;
- fans events out to subscriptions without ever blocking the caller;
- invokes registered hooks, each bounded by a 100 ms deadline;
- serves deep snapshots, and supports ``reset`` and ``close``.

Architecture:
    - MetricsCollector: event ingestion, shard routing and snapshots
    - ProviderShard / ModelShard: per-key counter containers (shards.py)
    - Histogram: fixed-capacity latency buffer (histogram.py)
    - Subscription / MetricsHook: event fan-out (subscription.py)

Thread Safety:
    Counters are guarded by per-container locks. Shard creation, the
    subscription set and the hook set use the collector lock only long
    enough to copy handles; dispatch happens outside of it. Snapshots of
    different shards are taken one after another, so a per-provider view
    may lead the aggregate by at most one in-flight event.

Usage:
    >>> collector = MetricsCollector()
    >>> await collector.record(MetricEvent(type=MetricEventType.REQUEST, provider_name="p", model_id="m"))
    >>> await collector.record(MetricEvent(
    ...     type=MetricEventType.SUCCESS, provider_name="p", model_id="m", latency_ms=100.0,
    ...     tokens_used=150, input_tokens=50, output_tokens=100,
    ... ))
    >>> snap = collector.snapshot()
    >>> snap.success_rate
    1.0
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from ..exceptions import HubClosedError
from .cost import Cost, CostCalculator, NullCostCalculator
from .events import MetricEvent, MetricEventType, MetricFilter
from .histogram import DEFAULT_HISTOGRAM_CAPACITY, Histogram
from .shards import (
    ErrorCounters,
    ModelShard,
    ProviderShard,
    StreamCounters,
    TokenCounters,
    calculate_event_cost,
)
from .snapshots import MetricsSnapshot, ModelMetricsSnapshot, ProviderMetricsSnapshot, calculate_rate
from .subscription import (
    DEFAULT_SUBSCRIPTION_BUFFER,
    HOOK_TIMEOUT_SECONDS,
    MetricsHook,
    Subscription,
    invoke_hook,
)

logger = logging.getLogger(__name__)


def _current_task_cancelling() -> bool:
    try:
        task = asyncio.current_task()
    except RuntimeError:
        return False
    return task is not None and task.cancelling() > 0


class MetricsCollector:
    """
    Central, non-blocking metrics hub.

    Args:
        cost_calculator: Converts token usage to money. Defaults to
            :class:`NullCostCalculator`.
        histogram_capacity: Samples retained per latency histogram.
        currency: Currency tag for token cost totals.
        subscription_buffer: Buffer size of subscriptions created without
            an explicit size.
    """

    def __init__(
        self,
        cost_calculator: Optional[CostCalculator] = None,
        histogram_capacity: int = DEFAULT_HISTOGRAM_CAPACITY,
        currency: str = "USD",
        subscription_buffer: int = DEFAULT_SUBSCRIPTION_BUFFER,
    ):
        self._cost_calculator: CostCalculator = cost_calculator or NullCostCalculator(currency)
        self._histogram_capacity = histogram_capacity
        self._currency = currency
        self._subscription_buffer = subscription_buffer
        self._lock = threading.RLock()
        self._closed = False
        self._record_failures = 0

        self._subscriptions: Dict[str, Subscription] = {}
        self._hooks: Dict[str, MetricsHook] = {}
        self._hook_ids = itertools.count(1)

        self._build_state()

    def _build_state(self) -> None:
        self._total_requests = 0
        self._successful_requests = 0
        self._failed_requests = 0
        self._first_request_time: Optional[datetime] = None
        self._last_updated: Optional[datetime] = None
        self._latency = Histogram(self._histogram_capacity)
        self._tokens = TokenCounters(self._currency)
        self._errors = ErrorCounters()
        self._streams = StreamCounters(self._histogram_capacity)
        self._providers: Dict[str, ProviderShard] = {}
        self._models: Dict[str, ModelShard] = {}

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    @property
    def cost_calculator(self) -> CostCalculator:
        return self._cost_calculator

    @property
    def record_failures(self) -> int:
        """Number of events that ``try_record`` could not record."""
        with self._lock:
            return self._record_failures

    @property
    def subscription_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    @property
    def hook_count(self) -> int:
        with self._lock:
            return len(self._hooks)

    # -------------------------------------------------------------------------
    # Ingestion
    # -------------------------------------------------------------------------

    async def record(self, event: MetricEvent) -> None:
        """
        Record one event.

        Raises:
            HubClosedError: If the collector has been closed.
            asyncio.CancelledError: If the calling task is being cancelled.
        """
        if self.closed:
            raise HubClosedError()
        if _current_task_cancelling():
            raise asyncio.CancelledError()

        # priced before any counter changes
        cost = calculate_event_cost(self._cost_calculator, event) if event.has_tokens() else None

        self._update_aggregate(event, cost)
        self._provider_shard(event).record(event, cost)
        if event.model_id:
            self._model_shard(event).record(event, cost)

        self._publish(event)
        await self._call_hooks(event)

    async def record_many(self, events: Iterable[MetricEvent]) -> None:
        """Record events in order, stopping at the first failure."""
        for event in events:
            await self.record(event)

    async def try_record(self, event: MetricEvent) -> bool:
        """
        Record an event on behalf of business logic.

        Recording failures are counted in ``record_failures`` and never
        raised; cancellation still propagates.
        """
        try:
            await self.record(event)
            return True
        except asyncio.CancelledError:
            raise
        except Exception as e:
            with self._lock:
                self._record_failures += 1
            logger.debug(f"Dropped {event.type.value} event for '{event.provider_name}': {e}")
            return False

    def _update_aggregate(self, event: MetricEvent, cost: Optional[Cost]) -> None:
        with self._lock:
            if self._first_request_time is None:
                self._first_request_time = event.timestamp
            self._last_updated = datetime.now(timezone.utc)

            if event.type == MetricEventType.REQUEST:
                self._total_requests += 1
            elif event.type == MetricEventType.SUCCESS:
                self._successful_requests += 1
            elif event.type.is_error:
                self._failed_requests += 1
            latency = self._latency
            tokens = self._tokens
            errors = self._errors
            streams = self._streams

        if event.type == MetricEventType.SUCCESS and event.latency_ms > 0:
            latency.add(event.latency_ms)
        if event.type.is_error:
            errors.record_error(event)
        else:
            errors.record_non_error()
        if event.type.is_stream:
            streams.record(event)
        if event.has_tokens():
            tokens.record(event, cost)

    def _provider_shard(self, event: MetricEvent) -> ProviderShard:
        with self._lock:
            shard = self._providers.get(event.provider_name)
            if shard is None:
                shard = ProviderShard(
                    event.provider_name,
                    event.provider_type,
                    self._histogram_capacity,
                    self._currency,
                )
                self._providers[event.provider_name] = shard
            return shard

    def _model_shard(self, event: MetricEvent) -> ModelShard:
        with self._lock:
            shard = self._models.get(event.model_id)
            if shard is None:
                shard = ModelShard(
                    event.model_id,
                    event.provider_name,
                    event.provider_type,
                    self._histogram_capacity,
                    self._currency,
                )
                self._models[event.model_id] = shard
            return shard

    # -------------------------------------------------------------------------
    # Subscriptions and hooks
    # -------------------------------------------------------------------------

    def subscribe(
        self,
        buffer_size: Optional[int] = None,
        metric_filter: Optional[MetricFilter] = None,
    ) -> Subscription:
        """
        Create a subscription receiving events recorded from now on.

        Raises:
            HubClosedError: If the collector has been closed.
        """
        if buffer_size is None:
            buffer_size = self._subscription_buffer
        subscription = Subscription(buffer_size, metric_filter, on_unsubscribe=self._forget_subscription)
        with self._lock:
            if self._closed:
                raise HubClosedError()
            self._subscriptions[subscription.id] = subscription
        logger.debug(f"Subscription {subscription.id} created (buffer={subscription.buffer_size})")
        return subscription

    def _forget_subscription(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions.pop(subscription.id, None)

    def register_hook(self, hook: MetricsHook) -> str:
        """Register a hook and return its id."""
        with self._lock:
            hook_id = f"hook-{next(self._hook_ids)}"
            self._hooks[hook_id] = hook
        logger.debug(f"Registered metrics hook '{getattr(hook, 'name', hook_id)}' as {hook_id}")
        return hook_id

    def unregister_hook(self, hook_id: str) -> None:
        """Remove a hook. Unknown ids are ignored."""
        with self._lock:
            self._hooks.pop(hook_id, None)

    def _publish(self, event: MetricEvent) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions.values())
        for subscription in subscriptions:
            subscription.publish(event)

    async def _call_hooks(self, event: MetricEvent) -> None:
        with self._lock:
            hooks = list(self._hooks.values())
        for hook in hooks:
            await invoke_hook(hook, event.model_copy(deep=True), HOOK_TIMEOUT_SECONDS)

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    def snapshot(self) -> MetricsSnapshot:
        """Return a complete, independent copy of the current state."""
        with self._lock:
            total = self._total_requests
            success = self._successful_requests
            failed = self._failed_requests
            first_request = self._first_request_time
            last_updated = self._last_updated
            record_failures = self._record_failures
            latency = self._latency
            tokens = self._tokens
            errors = self._errors
            streams = self._streams
            providers = dict(self._providers)
            models = dict(self._models)

        uptime = 0.0
        if first_request is not None:
            uptime = max(0.0, (datetime.now(timezone.utc) - first_request).total_seconds())

        return MetricsSnapshot(
            total_requests=total,
            successful_requests=success,
            failed_requests=failed,
            success_rate=calculate_rate(success, total),
            latency=latency.snapshot(),
            tokens=tokens.snapshot(total),
            errors=errors.snapshot(total),
            streaming=streams.snapshot(),
            provider_breakdown={name: shard.snapshot() for name, shard in providers.items()},
            model_breakdown={model_id: shard.snapshot() for model_id, shard in models.items()},
            first_request_time=first_request,
            last_updated=last_updated,
            uptime_seconds=uptime,
            record_failures=record_failures,
        )

    def get_provider_metrics(self, provider_name: str) -> Optional[ProviderMetricsSnapshot]:
        with self._lock:
            shard = self._providers.get(provider_name)
        return shard.snapshot() if shard is not None else None

    def get_model_metrics(self, model_id: str) -> Optional[ModelMetricsSnapshot]:
        with self._lock:
            shard = self._models.get(model_id)
        return shard.snapshot() if shard is not None else None

    def get_provider_names(self) -> List[str]:
        with self._lock:
            return sorted(self._providers)

    def get_model_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._models)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def reset(self) -> None:
        """Discard all counters and shards. Subscriptions and hooks are kept."""
        with self._lock:
            self._build_state()
        logger.debug("Metrics collector reset")

    def close(self) -> None:
        """Close the collector, its subscriptions and drop all hooks. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subscriptions = list(self._subscriptions.values())
            self._subscriptions.clear()
            self._hooks.clear()
        for subscription in subscriptions:
            subscription.close()
        logger.debug(f"Metrics collector closed ({len(subscriptions)} subscriptions closed)")
