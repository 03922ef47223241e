"""Helpers shared by the test modules."""

from typing import AsyncIterator


async def read_all(stream: AsyncIterator[bytes]) -> bytes:
    """Drain a byte stream into memory."""
    return b"".join([chunk async for chunk in stream])
