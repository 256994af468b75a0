# src/llmgate/observability/stream_wrapper.py
"""
Metrics instrumentation for chat completion streams.

:class:`MetricsStreamWrapper` decorates any
:class:`~llmgate.providers.streams.ChatStream`. Consumers see exactly the
same chunks and the same terminal signal as from the inner stream, while
the wrapper measures:

- time to first token (first ``__anext__`` call to first chunk);
- chunk and token counts (explicit usage when present, otherwise about
  four characters per token);
- stream duration and tokens per second;
- whether the stream ended normally or was aborted by an error.

Events emitted into the collector:
    stream_start  once, on the first chunk, carrying the TTFT
    stream_chunk  per chunk, only when ``emit_chunk_events`` is enabled
    stream_end    once, on a ``done`` chunk, end of iteration or close
    stream_abort  once, on an inner error, with a categorised error type

A stream emits at most one of ``stream_end`` and ``stream_abort``.
Recording failures never reach the consumer.

Usage:
    >>> wrapped = MetricsStreamWrapper(StreamWrapperConfig(
    ...     stream=stream, collector=collector,
    ...     provider_name="openai-main", model_id="gpt-4o",
    ... ))
    >>> async for chunk in wrapped:
    ...     ...
    >>> wrapped.get_metrics().tokens_per_second
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel

from ..exceptions import ValidationError
from ..models import Chunk
from ..providers.streams import ChatStream
from .collector import MetricsCollector
from .events import MetricEvent, MetricEventType

logger = logging.getLogger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

CHARS_PER_TOKEN_ESTIMATE = 4

# Error messages that mark a normal end of stream rather than a failure
END_OF_STREAM_MESSAGES = frozenset({"EOF", "stream ended", "stream closed"})

_ERROR_CATEGORIES = (
    ("network", ("connection", "network", "timeout", "dial")),
    ("rate_limit", ("rate limit", "too many requests", "429")),
    ("authentication", ("unauthorized", "auth", "401", "403")),
    ("server_error", ("500", "502", "503", "504", "server error")),
    ("invalid_request", ("invalid", "bad request", "400")),
)


def categorize_stream_error(error: Optional[BaseException]) -> str:
    """Map an error to a category by case-insensitive keyword scan of its message."""
    if error is None:
        return ""
    message = str(error).lower()
    for category, keywords in _ERROR_CATEGORIES:
        if any(keyword in message for keyword in keywords):
            return category
    return "unknown"


def is_end_of_stream(error: BaseException) -> bool:
    return str(error) in END_OF_STREAM_MESSAGES


def count_chunk_tokens(chunk: Chunk) -> int:
    """
    Tokens carried by a chunk.

    Prefers completion tokens, then total tokens from the chunk usage;
    otherwise estimates from the delta contents of every choice, and
    finally from the chunk content.
    """
    if chunk.usage is not None:
        if chunk.usage.completion_tokens > 0:
            return chunk.usage.completion_tokens
        if chunk.usage.total_tokens > 0:
            return chunk.usage.total_tokens

    tokens = sum(
        len(choice.delta.content) // CHARS_PER_TOKEN_ESTIMATE
        for choice in chunk.choices
        if choice.delta.content
    )
    if tokens == 0 and chunk.content:
        tokens = len(chunk.content) // CHARS_PER_TOKEN_ESTIMATE
    return tokens


def generate_session_id() -> str:
    return f"stream-{time.time_ns()}"


# =============================================================================
# DATA MODELS
# =============================================================================


@dataclass
class StreamWrapperConfig:
    """
    Settings for :class:`MetricsStreamWrapper`.

    ``stream``, ``collector``, ``provider_name`` and ``model_id`` are required.
    """

    stream: Optional[ChatStream] = None
    collector: Optional[MetricsCollector] = None
    provider_name: str = ""
    model_id: str = ""
    provider_type: str = ""
    session_id: str = ""
    emit_chunk_events: bool = False


class StreamWrapperMetrics(BaseModel):
    """Per-stream measurements."""

    time_to_first_token_ms: float = 0.0
    tokens_per_second: float = 0.0
    chunks_received: int = 0
    duration_ms: float = 0.0
    stream_interruptions: int = 0
    tokens_received: int = 0
    aborted: bool = False


# =============================================================================
# WRAPPER
# =============================================================================


class MetricsStreamWrapper(ChatStream):
    """
    Stream decorator emitting stream lifecycle events.

    Raises:
        ValidationError: If a required setting is missing.
    """

    def __init__(self, config: StreamWrapperConfig):
        if config.stream is None:
            raise ValidationError("stream is required")
        if config.collector is None:
            raise ValidationError("collector is required")
        if not config.provider_name:
            raise ValidationError("provider name is required")
        if not config.model_id:
            raise ValidationError("model ID is required")

        self._stream = config.stream
        self._collector = config.collector
        self.provider_name = config.provider_name
        self.provider_type = config.provider_type
        self.model_id = config.model_id
        self.session_id = config.session_id or generate_session_id()
        self.emit_chunk_events = config.emit_chunk_events

        self._lock = threading.Lock()
        self._started = False
        self._first_chunk_emitted = False
        self._completed = False
        self._aborted = False
        self._closed = False

        self._start_time: Optional[float] = None
        self._start_timestamp: Optional[datetime] = None
        self._first_chunk_time: Optional[float] = None
        self._last_chunk_time: Optional[float] = None
        self._chunks_received = 0
        self._tokens_received = 0
        self._interruptions = 0
        self.last_error: Optional[BaseException] = None

    @property
    def inner(self) -> ChatStream:
        return self._stream

    def _compare_and_set(self, flag: str) -> bool:
        """Set a boolean attribute if it is False. Returns True if this call set it."""
        with self._lock:
            if getattr(self, flag):
                return False
            setattr(self, flag, True)
            return True

    async def __anext__(self) -> Chunk:
        if self._compare_and_set("_started"):
            with self._lock:
                self._start_time = time.perf_counter()
                self._start_timestamp = datetime.now(timezone.utc)

        try:
            chunk = await self._stream.__anext__()
        except StopAsyncIteration:
            await self._record_stream_end()
            raise
        except asyncio.CancelledError:
            # Nothing can be recorded from a cancelled task
            with self._lock:
                self._aborted = True
                self._completed = True
            raise
        except Exception as e:
            with self._lock:
                self.last_error = e
                self._interruptions += 1
            if is_end_of_stream(e):
                await self._record_stream_end()
            else:
                await self._record_stream_abort(e)
            raise

        if self._compare_and_set("_first_chunk_emitted"):
            with self._lock:
                self._first_chunk_time = time.perf_counter()
                ttft_ms = (self._first_chunk_time - self._start_time) * 1000.0
            await self._emit_stream_start(ttft_ms)

        tokens = count_chunk_tokens(chunk)
        with self._lock:
            self._chunks_received += 1
            self._last_chunk_time = time.perf_counter()
            if tokens > 0:
                self._tokens_received += tokens
            chunk_index = self._chunks_received - 1

        if self.emit_chunk_events:
            await self._emit_chunk_event(chunk_index, tokens)

        if chunk.done:
            await self._record_stream_end()
        return chunk

    async def aclose(self) -> None:
        """Close the inner stream; an unfinished stream is reported as ended."""
        if not self._compare_and_set("_closed"):
            return
        try:
            await self._stream.aclose()
        finally:
            with self._lock:
                unfinished = self._started and not self._completed and not self._aborted
            if unfinished:
                await self._record_stream_end()

    def get_metrics(self) -> StreamWrapperMetrics:
        """Current measurements of this stream."""
        with self._lock:
            ttft_ms = 0.0
            if self._first_chunk_time is not None and self._start_time is not None:
                ttft_ms = (self._first_chunk_time - self._start_time) * 1000.0

            duration_ms = 0.0
            tokens_per_second = 0.0
            if self._start_time is not None:
                end = self._last_chunk_time if self._last_chunk_time is not None else time.perf_counter()
                duration_ms = (end - self._start_time) * 1000.0
                if duration_ms > 0:
                    tokens_per_second = self._tokens_received / (duration_ms / 1000.0)

            return StreamWrapperMetrics(
                time_to_first_token_ms=ttft_ms,
                tokens_per_second=tokens_per_second,
                chunks_received=self._chunks_received,
                duration_ms=duration_ms,
                stream_interruptions=self._interruptions,
                tokens_received=self._tokens_received,
                aborted=self._aborted,
            )

    # -------------------------------------------------------------------------
    # Event emission
    # -------------------------------------------------------------------------

    def _event(self, event_type: MetricEventType, **fields) -> MetricEvent:
        return MetricEvent(
            type=event_type,
            provider_name=self.provider_name,
            provider_type=self.provider_type,
            model_id=self.model_id,
            is_streaming=True,
            stream_session_id=self.session_id,
            **fields,
        )

    async def _emit_stream_start(self, ttft_ms: float) -> None:
        event = self._event(MetricEventType.STREAM_START, time_to_first_token_ms=ttft_ms)
        if self._start_timestamp is not None:
            event.timestamp = self._start_timestamp
        await self._collector.try_record(event)

    async def _emit_chunk_event(self, chunk_index: int, tokens: int) -> None:
        await self._collector.try_record(
            self._event(MetricEventType.STREAM_CHUNK, stream_chunk_index=chunk_index, output_tokens=tokens)
        )

    async def _record_stream_end(self) -> None:
        if not self._compare_and_set("_completed"):
            return
        with self._lock:
            if self._aborted:
                return
        metrics = self.get_metrics()
        logger.debug(
            f"Stream {self.session_id} ended: {metrics.chunks_received} chunks, "
            f"{metrics.tokens_received} tokens in {metrics.duration_ms:.1f}ms"
        )
        await self._collector.try_record(
            self._event(
                MetricEventType.STREAM_END,
                latency_ms=metrics.duration_ms,
                tokens_used=metrics.tokens_received,
                output_tokens=metrics.tokens_received,
                tokens_per_second=metrics.tokens_per_second,
                metadata={
                    "chunks_received": metrics.chunks_received,
                    "stream_interruptions": metrics.stream_interruptions,
                },
            )
        )

    async def _record_stream_abort(self, error: BaseException) -> None:
        if not self._compare_and_set("_aborted"):
            return
        with self._lock:
            # An aborted stream can no longer end normally
            already_completed = self._completed
            self._completed = True
        if already_completed:
            return
        metrics = self.get_metrics()
        error_type = categorize_stream_error(error)
        logger.debug(f"Stream {self.session_id} aborted ({error_type}): {error}")
        await self._collector.try_record(
            self._event(
                MetricEventType.STREAM_ABORT,
                latency_ms=metrics.duration_ms,
                tokens_used=metrics.tokens_received,
                output_tokens=metrics.tokens_received,
                error_type=error_type,
                error_message=str(error),
                metadata={
                    "chunks_received": metrics.chunks_received,
                    "stream_interruptions": metrics.stream_interruptions,
                },
            )
        )


def wrap_stream(
    stream: ChatStream,
    collector: MetricsCollector,
    provider_name: str,
    model_id: str,
    provider_type: str = "",
    emit_chunk_events: bool = False,
) -> MetricsStreamWrapper:
    """Convenience constructor for :class:`MetricsStreamWrapper`."""
    return MetricsStreamWrapper(
        StreamWrapperConfig(
            stream=stream,
            collector=collector,
            provider_name=provider_name,
            model_id=model_id,
            provider_type=provider_type,
            emit_chunk_events=emit_chunk_events,
        )
    )
