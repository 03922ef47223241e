"""In-process asset store for local development and tests."""

import asyncio
import hashlib
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional

from ..errors import ConflictError
from .base import ABSENT, ByteStream, ObjectMetadata, PresentNoBody, PresentWithBody, StoreFetch
from .http import clamp_range, evaluate_preconditions, parse_range_header, range_bounds
from .streams import iter_bytes

logger = logging.getLogger(__name__)


@dataclass
class _StoredObject:
    metadata: ObjectMetadata
    data: bytes


class InMemoryAssetStore:
    """Dict-backed store with the same range and precondition handling as R2.

    Writes are exclusive: putting onto an existing key raises ConflictError.
    """

    def __init__(self):
        self._objects: Dict[str, _StoredObject] = {}
        self._lock = asyncio.Lock()

    def __contains__(self, key: str) -> bool:
        return key in self._objects

    def __len__(self) -> int:
        return len(self._objects)

    def read(self, key: str) -> Optional[bytes]:
        """Return the stored bytes for ``key``, for inspection."""
        obj = self._objects.get(key)
        return obj.data if obj else None

    async def head(self, key: str) -> Optional[ObjectMetadata]:
        obj = self._objects.get(key)
        return replace(obj.metadata) if obj else None

    async def get(
        self,
        key: str,
        range_header: Optional[str] = None,
        conditions: Optional[Mapping[str, str]] = None,
    ) -> StoreFetch:
        obj = self._objects.get(key)
        if obj is None:
            return ABSENT

        metadata = replace(obj.metadata)
        if conditions and evaluate_preconditions(
            conditions, metadata.etag, metadata.uploaded
        ):
            return PresentNoBody(metadata)

        data = obj.data
        spec = parse_range_header(range_header)
        if spec is not None:
            metadata.range = clamp_range(spec, metadata.size)
            start, end = range_bounds(metadata.range, metadata.size)
            data = data[start : end + 1]

        return PresentWithBody(metadata, iter_bytes(data))

    async def put(
        self, key: str, body: ByteStream, http_metadata: Mapping[str, str]
    ) -> ObjectMetadata:
        data = b"".join([chunk async for chunk in body])

        async with self._lock:
            if key in self._objects:
                raise ConflictError()
            metadata = ObjectMetadata(
                key=key,
                size=len(data),
                etag=hashlib.md5(data).hexdigest(),
                http_metadata=dict(http_metadata),
                uploaded=datetime.now(timezone.utc),
            )
            self._objects[key] = _StoredObject(metadata, data)

        logger.debug(f"Stored {key} ({metadata.size} bytes)")
        return replace(metadata)

    async def delete(self, key: str) -> None:
        self._objects.pop(key, None)
