"""Tests for stream fan-out."""

import asyncio

import pytest

from asset_gateway.storage.streams import iter_bytes, tee_stream

from helpers import read_all


class _CountingSource:
    """Async byte source that records how many chunks were pulled."""

    def __init__(self, chunks):
        self.chunks = list(chunks)
        self.pulled = 0

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.pulled >= len(self.chunks):
            raise StopAsyncIteration
        chunk = self.chunks[self.pulled]
        self.pulled += 1
        return chunk


async def _failing_source():
    yield b"first"
    raise RuntimeError("store connection reset")


class TestIterBytes:
    """Test chunked iteration over bytes."""

    @pytest.mark.asyncio
    async def test_chunks(self):
        chunks = [c async for c in iter_bytes(b"abcdefg", chunk_size=3)]
        assert chunks == [b"abc", b"def", b"g"]

    @pytest.mark.asyncio
    async def test_empty(self):
        assert await read_all(iter_bytes(b"")) == b""


class TestTeeStream:
    """Test splitting one stream into independent readers."""

    @pytest.mark.asyncio
    async def test_both_readers_get_everything(self):
        first, second = tee_stream(iter_bytes(b"x" * 1000, chunk_size=64))

        a, b = await asyncio.gather(read_all(first), read_all(second))

        assert a == b"x" * 1000
        assert b == b"x" * 1000

    @pytest.mark.asyncio
    async def test_sequential_consumption(self):
        """One reader may finish before the other starts."""
        first, second = tee_stream(iter_bytes(b"abcdef", chunk_size=2))

        assert await read_all(first) == b"abcdef"
        assert await read_all(second) == b"abcdef"

    @pytest.mark.asyncio
    async def test_source_pulled_lazily(self):
        """Chunks are pulled on demand, not buffered up front."""
        source = _CountingSource([b"a", b"b", b"c", b"d"])
        first, second = tee_stream(source)

        assert await first.__anext__() == b"a"
        assert source.pulled == 1
        assert await second.__anext__() == b"a"
        assert source.pulled == 1

    @pytest.mark.asyncio
    async def test_closed_reader_does_not_stall_other(self):
        first, second = tee_stream(iter_bytes(b"abcdef", chunk_size=2))

        assert await first.__anext__() == b"ab"
        await first.aclose()

        assert await read_all(second) == b"abcdef"

    @pytest.mark.asyncio
    async def test_source_error_reaches_both_readers(self):
        first, second = tee_stream(_failing_source())

        with pytest.raises(RuntimeError, match="connection reset"):
            await read_all(first)
        with pytest.raises(RuntimeError, match="connection reset"):
            await read_all(second)

    @pytest.mark.asyncio
    async def test_three_way_split(self):
        readers = tee_stream(iter_bytes(b"hello world", chunk_size=4), n=3)

        results = await asyncio.gather(*(read_all(r) for r in readers))

        assert results == [b"hello world"] * 3

    @pytest.mark.asyncio
    async def test_closing_unstarted_reader_stops_buffering(self):
        """A reader closed before it was iterated no longer queues chunks."""
        first, second = tee_stream(iter_bytes(b"x" * 1000, chunk_size=100))

        await second.aclose()

        assert await read_all(first) == b"x" * 1000
        assert second.closed
        assert len(second._tee._buffers[1]) == 0
        assert await read_all(second) == b""

    @pytest.mark.asyncio
    async def test_exhausted_reader_is_closed(self):
        first, second = tee_stream(iter_bytes(b"abc"))

        await read_all(first)

        assert first.closed
        assert not second.closed
