# src/llmgate/observability/subscription.py
"""
Event subscriptions and hooks for the metrics collector.

A :class:`Subscription` is a bounded FIFO of events. Publishing never
waits: when the buffer is full the event is dropped and the subscription's
``overflow_count`` is incremented, so a slow consumer can never stall the
code that records events. Consumers read with ``async for`` or ``get``.

A hook is a named callback invoked for every matching event. Hooks run
with a hard deadline (``HOOK_TIMEOUT_SECONDS``, 100 ms); a hook that is
slower or raises is skipped silently. Long-running side effects belong on
a subscription, not in a hook.

Usage:
    >>> sub = collector.subscribe(100, MetricFilter(event_types=[MetricEventType.ERROR]))
    >>> async for event in sub:
    ...     alert(event)
    >>>
    >>> hook_id = collector.register_hook(FunctionHook("audit", lambda e: audit_log.append(e)))
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
import threading
from typing import Any, Callable, Optional, Protocol, runtime_checkable

from .events import MetricEvent, MetricFilter, filter_matches

logger = logging.getLogger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

HOOK_TIMEOUT_SECONDS = 0.1

DEFAULT_SUBSCRIPTION_BUFFER = 100

_CLOSED = object()

_subscription_ids = itertools.count(1)


class Subscription:
    """
    Bounded, filtered stream of metric events.

    Args:
        buffer_size: Maximum number of undelivered events. Values below 1
            are treated as 1.
        metric_filter: Optional filter; None delivers every event.
        on_unsubscribe: Callback used by the collector to forget the handle.
    """

    def __init__(
        self,
        buffer_size: int = DEFAULT_SUBSCRIPTION_BUFFER,
        metric_filter: Optional[MetricFilter] = None,
        on_unsubscribe: Optional[Callable[["Subscription"], None]] = None,
    ):
        self.id = f"sub-{next(_subscription_ids)}"
        self.buffer_size = max(1, buffer_size)
        self.filter = metric_filter
        # One extra slot so the close marker always fits
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=self.buffer_size + 1)
        self._overflow = 0
        self._closed = False
        self._lock = threading.Lock()
        self._on_unsubscribe = on_unsubscribe

    @property
    def overflow_count(self) -> int:
        """Number of events dropped because the buffer was full."""
        with self._lock:
            return self._overflow

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    @property
    def pending(self) -> int:
        """Number of buffered, undelivered events."""
        size = self._queue.qsize()
        return size - 1 if self.closed and size > 0 else size

    def publish(self, event: MetricEvent) -> bool:
        """
        Offer an event without blocking.

        Returns:
            True if the event was buffered, False if it was filtered out,
            dropped on overflow or the subscription is closed.
        """
        if not filter_matches(self.filter, event):
            return False
        with self._lock:
            if self._closed:
                return False
            if self._queue.qsize() >= self.buffer_size:
                self._overflow += 1
                return False
            self._queue.put_nowait(event.model_copy(deep=True))
            return True

    async def get(self, timeout: Optional[float] = None) -> Optional[MetricEvent]:
        """
        Wait for the next event.

        Returns:
            The next event, or None once the subscription is closed and
            drained (or the timeout elapsed).
        """
        try:
            if timeout is None:
                item = await self._queue.get()
            else:
                item = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None
        if item is _CLOSED:
            # Keep the marker so later readers also see the end
            self._queue.put_nowait(_CLOSED)
            return None
        return item

    def get_nowait(self) -> Optional[MetricEvent]:
        """Return a buffered event or None when nothing is buffered."""
        try:
            item = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            return None
        return item

    def __aiter__(self):
        return self

    async def __anext__(self) -> MetricEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

    def close(self) -> None:
        """Close the channel. Buffered events stay readable. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    def unsubscribe(self) -> None:
        """Detach from the collector and close the channel. Idempotent."""
        callback, self._on_unsubscribe = self._on_unsubscribe, None
        if callback is not None:
            callback(self)
        self.close()


# =============================================================================
# HOOKS
# =============================================================================


@runtime_checkable
class MetricsHook(Protocol):
    """
    Callback invoked for recorded events.

    ``on_event`` may be a plain function or a coroutine function. An
    optional ``filter`` attribute (a :class:`MetricFilter`) restricts the
    events it receives.
    """

    name: str

    def on_event(self, event: MetricEvent) -> Any:
        ...


class FunctionHook:
    """Adapts a plain callable (sync or async) to :class:`MetricsHook`."""

    def __init__(self, name: str, func: Callable[[MetricEvent], Any], metric_filter: Optional[MetricFilter] = None):
        self.name = name
        self.filter = metric_filter
        self.on_event = func


async def invoke_hook(hook: MetricsHook, event: MetricEvent, timeout: float = HOOK_TIMEOUT_SECONDS) -> bool:
    """
    Run one hook under the hook deadline.

    Synchronous hooks run in a worker thread so a slow one cannot block
    the event loop past the deadline. Failures and timeouts are logged at
    DEBUG and reported as False; cancellation of the caller propagates.
    """
    if not filter_matches(getattr(hook, "filter", None), event):
        return False
    name = getattr(hook, "name", type(hook).__name__)
    call = hook.on_event
    try:
        if inspect.iscoroutinefunction(call):
            await asyncio.wait_for(call(event), timeout)
        else:
            await asyncio.wait_for(asyncio.to_thread(call, event), timeout)
        return True
    except asyncio.TimeoutError:
        logger.debug(f"Metrics hook '{name}' exceeded {timeout * 1000:.0f}ms deadline, skipped")
    except Exception as e:
        logger.debug(f"Metrics hook '{name}' failed: {e}")
    return False
