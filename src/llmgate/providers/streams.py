# src/llmgate/providers/streams.py
"""
Chat completion streams.

A :class:`ChatStream` is a single-consumer async iterator of
:class:`~llmgate.models.Chunk` objects. It ends after yielding a chunk with
``done=True`` or when the underlying source is exhausted; every read after
the end raises ``StopAsyncIteration`` again. ``aclose`` is idempotent, and
streams are async context managers.

Usage:
    >>> async with await provider.generate_chat_completion(request) as stream:
    ...     async for chunk in stream:
    ...         print(chunk.text(), end="")
"""

from __future__ import annotations

import abc
import asyncio
from typing import Any, AsyncIterable, AsyncIterator, Dict, Iterable, Optional, Tuple

from ..models import Chunk, Usage


class ChatStream(abc.ABC):
    """Abstract base for all chat completion streams."""

    def __aiter__(self) -> "ChatStream":
        return self

    @abc.abstractmethod
    async def __anext__(self) -> Chunk:
        """Return the next chunk or raise ``StopAsyncIteration`` at the end."""

    async def aclose(self) -> None:
        """Release the underlying resources. Idempotent."""

    async def __aenter__(self) -> "ChatStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


class IteratorChatStream(ChatStream):
    """
    Adapts any async iterable of chunks (e.g. an async generator parsing
    an HTTP response) to the :class:`ChatStream` contract.
    """

    def __init__(self, source: AsyncIterable[Chunk]):
        self._source = source
        self._iterator: Optional[AsyncIterator[Chunk]] = None
        self._finished = False
        self._closed = False

    async def __anext__(self) -> Chunk:
        if self._finished or self._closed:
            raise StopAsyncIteration
        if self._iterator is None:
            self._iterator = self._source.__aiter__()
        try:
            chunk = await self._iterator.__anext__()
        except StopAsyncIteration:
            self._finished = True
            raise
        if chunk.done:
            self._finished = True
        return chunk

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        closer = getattr(self._iterator or self._source, "aclose", None)
        if closer is not None:
            await closer()


class ListChatStream(ChatStream):
    """
    Stream over a fixed list of chunks, optionally paced by ``delay``
    seconds before each chunk. An ``error`` is raised after the chunks are
    exhausted, which is useful for canned and replayed responses.
    """

    def __init__(self, chunks: Iterable[Chunk], delay: float = 0.0, error: Optional[BaseException] = None):
        self._chunks = list(chunks)
        self._delay = delay
        self._error = error
        self._position = 0
        self._finished = False
        self.closed = False

    async def __anext__(self) -> Chunk:
        if self._finished or self.closed:
            raise StopAsyncIteration
        if self._position >= len(self._chunks):
            if self._error is not None:
                error, self._error = self._error, None
                self._finished = True
                raise error
            self._finished = True
            raise StopAsyncIteration
        if self._delay > 0:
            await asyncio.sleep(self._delay)
        chunk = self._chunks[self._position]
        self._position += 1
        if chunk.done:
            self._finished = True
        return chunk

    async def aclose(self) -> None:
        self.closed = True


class MetadataStampingStream(ChatStream):
    """
    Adds a metadata key to every chunk of an inner stream.

    Existing keys are never overwritten, so stacked wrappers keep the
    values stamped closest to the source.
    """

    def __init__(self, inner: ChatStream, stamps: Dict[str, Any]):
        self.inner = inner
        self._stamps = dict(stamps)

    async def __anext__(self) -> Chunk:
        chunk = await self.inner.__anext__()
        for key, value in self._stamps.items():
            chunk.metadata.setdefault(key, value)
        return chunk

    async def aclose(self) -> None:
        await self.inner.aclose()


async def collect_stream(stream: ChatStream) -> Tuple[str, Optional[Usage]]:
    """
    Drain a stream into its concatenated text and the last reported usage.

    The stream is closed afterwards, even on error.
    """
    parts = []
    usage: Optional[Usage] = None
    try:
        async for chunk in stream:
            text = chunk.text()
            if text:
                parts.append(text)
            if chunk.usage is not None and chunk.usage.total_tokens > 0:
                usage = chunk.usage
            if chunk.done:
                break
    finally:
        await stream.aclose()
    return "".join(parts), usage
