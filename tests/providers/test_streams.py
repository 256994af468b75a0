# tests/providers/test_streams.py
"""Tests for chat stream helpers."""

import pytest

from llmgate.models import Chunk, ChunkChoice, ChunkDelta, Usage
from llmgate.providers.streams import (
    ChatStream,
    IteratorChatStream,
    ListChatStream,
    MetadataStampingStream,
    collect_stream,
)


def chunk(text, done=False, usage=None):
    return Chunk(choices=[ChunkChoice(delta=ChunkDelta(content=text))], done=done, usage=usage)


class TestIteratorChatStream:
    """Tests for IteratorChatStream."""

    @pytest.mark.asyncio
    async def test_stops_after_done_chunk(self):
        """Test the stream ends at the done chunk even if the source continues."""

        async def source():
            yield chunk("a")
            yield chunk("b", done=True)
            yield chunk("never")

        stream = IteratorChatStream(source())
        texts = [c.text() async for c in stream]

        assert texts == ["a", "b"]
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()

    @pytest.mark.asyncio
    async def test_exhausted_source_ends_stream(self):
        """Test source exhaustion ends the stream and further reads stay ended."""

        async def source():
            yield chunk("only")

        stream = IteratorChatStream(source())
        assert [c.text() async for c in stream] == ["only"]
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()

    @pytest.mark.asyncio
    async def test_aclose_closes_generator(self):
        """Test closing releases the underlying generator."""
        released = []

        async def source():
            try:
                yield chunk("a")
                yield chunk("b")
            finally:
                released.append(True)

        stream = IteratorChatStream(source())
        async with stream:
            first = await stream.__anext__()
            assert first.text() == "a"

        assert released == [True]
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_source_error_propagates(self):
        """Test errors from the source surface to the reader."""

        async def source():
            yield chunk("a")
            raise ConnectionError("reset")

        stream = IteratorChatStream(source())
        await stream.__anext__()
        with pytest.raises(ConnectionError):
            await stream.__anext__()


class TestListChatStream:
    """Tests for ListChatStream."""

    @pytest.mark.asyncio
    async def test_yields_chunks(self):
        """Test chunks are served in order."""
        stream = ListChatStream([chunk("a"), chunk("b")], delay=0.001)
        assert [c.text() async for c in stream] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_error_after_chunks(self):
        """Test the configured error is raised once after the chunks."""
        stream = ListChatStream([chunk("a")], error=ConnectionError("lost"))
        await stream.__anext__()
        with pytest.raises(ConnectionError):
            await stream.__anext__()
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()

    @pytest.mark.asyncio
    async def test_closed_stream_is_ended(self):
        """Test reads after close end the stream."""
        stream = ListChatStream([chunk("a"), chunk("b")])
        await stream.aclose()
        assert stream.closed
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()

    def test_is_chat_stream(self):
        """Test the stream implements the ChatStream contract."""
        assert isinstance(ListChatStream([]), ChatStream)


class TestMetadataStampingStream:
    """Tests for MetadataStampingStream."""

    @pytest.mark.asyncio
    async def test_stamps_every_chunk(self):
        """Test every chunk receives the stamps."""
        stream = MetadataStampingStream(ListChatStream([chunk("a"), chunk("b", done=True)]), {"origin": "p1"})
        chunks = [c async for c in stream]
        assert [c.metadata["origin"] for c in chunks] == ["p1", "p1"]

    @pytest.mark.asyncio
    async def test_inner_stamps_win(self):
        """Test stacked wrappers keep the value stamped closest to the source."""
        inner = MetadataStampingStream(ListChatStream([chunk("a")]), {"origin": "inner"})
        outer = MetadataStampingStream(inner, {"origin": "outer", "extra": 1})
        result = await outer.__anext__()
        assert result.metadata == {"origin": "inner", "extra": 1}

    @pytest.mark.asyncio
    async def test_aclose_closes_inner(self):
        """Test closing propagates to the inner stream."""
        inner = ListChatStream([chunk("a")])
        await MetadataStampingStream(inner, {}).aclose()
        assert inner.closed


class TestCollectStream:
    """Tests for collect_stream."""

    @pytest.mark.asyncio
    async def test_collects_text_and_usage(self):
        """Test text concatenation and last non-empty usage."""
        stream = ListChatStream(
            [
                chunk("Hello", usage=Usage(total_tokens=0)),
                chunk(", ", usage=Usage(prompt_tokens=2, completion_tokens=1, total_tokens=3)),
                chunk("world", done=True),
            ]
        )
        text, usage = await collect_stream(stream)

        assert text == "Hello, world"
        assert usage.total_tokens == 3
        assert stream.closed

    @pytest.mark.asyncio
    async def test_closes_on_error(self):
        """Test the stream is closed when reading fails."""
        stream = ListChatStream([chunk("a")], error=RuntimeError("boom"))
        with pytest.raises(RuntimeError):
            await collect_stream(stream)
        assert stream.closed

    @pytest.mark.asyncio
    async def test_empty_stream(self):
        """Test an empty stream yields no text and no usage."""
        assert await collect_stream(ListChatStream([])) == ("", None)
