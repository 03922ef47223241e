"""Async byte stream helpers."""

import asyncio
from collections import deque
from typing import AsyncIterator, Deque, List, Optional, Tuple

CHUNK_SIZE = 64 * 1024


async def iter_bytes(data: bytes, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Yield ``data`` in chunks."""
    for i in range(0, len(data), chunk_size):
        yield data[i : i + chunk_size]


class _Tee:
    """Shared state behind the readers returned by :func:`tee_stream`.

    Whichever reader is ahead pulls the next chunk from the source and
    queues it for the others, so memory use is bounded by how far the
    readers drift apart rather than by the payload size. A reader that is
    closed, whether or not it was ever iterated, stops receiving chunks.
    """

    def __init__(self, source: AsyncIterator[bytes], n: int):
        self._source = source.__aiter__()
        self._buffers: List[Deque[bytes]] = [deque() for _ in range(n)]
        self._open = [True] * n
        self._lock = asyncio.Lock()
        self._done = False
        self._error: Optional[BaseException] = None

    async def _next(self, index: int) -> Optional[bytes]:
        while True:
            buffer = self._buffers[index]
            if buffer:
                return buffer.popleft()
            if self._error is not None:
                raise self._error
            if self._done:
                return None

            async with self._lock:
                # Another reader may have pulled while we waited
                if buffer or self._done or self._error is not None:
                    continue
                try:
                    chunk = await self._source.__anext__()
                except StopAsyncIteration:
                    self._done = True
                    continue
                except Exception as e:
                    self._error = e
                    raise

                for i, other in enumerate(self._buffers):
                    if i != index and self._open[i]:
                        other.append(chunk)
                return chunk

    def close(self, index: int) -> None:
        self._open[index] = False
        self._buffers[index].clear()


class TeeReader:
    """One of the streams returned by :func:`tee_stream`."""

    def __init__(self, tee: _Tee, index: int):
        self._tee = tee
        self._index = index

    @property
    def closed(self) -> bool:
        return not self._tee._open[self._index]

    def __aiter__(self) -> "TeeReader":
        return self

    async def __anext__(self) -> bytes:
        if self.closed:
            raise StopAsyncIteration
        try:
            chunk = await self._tee._next(self._index)
        except BaseException:
            self.close()
            raise
        if chunk is None:
            self.close()
            raise StopAsyncIteration
        return chunk

    def close(self) -> None:
        """Stop queueing chunks for this reader and drop any it holds."""
        self._tee.close(self._index)

    async def aclose(self) -> None:
        self.close()


def tee_stream(source: AsyncIterator[bytes], n: int = 2) -> Tuple[TeeReader, ...]:
    """Split one byte stream into ``n`` independently consumable streams.

    Args:
        source: Stream to fan out; must not be consumed elsewhere
        n: Number of readers

    Returns:
        Tuple of ``n`` readers, each yielding every chunk of source
    """
    tee = _Tee(source, n)
    return tuple(TeeReader(tee, i) for i in range(n))
