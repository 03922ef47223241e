"""Upload, download and batch delete handlers for image and video assets."""

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Set, Union

from ..errors import ConflictError, InvalidContentTypeError, NotFoundError
from ..models import DeleteFailure, DeleteOutcome, UploadResponse
from ..storage.base import (
    AssetResponse,
    AssetStore,
    ByteStream,
    PresentNoBody,
    PresentWithBody,
    ResponseCache,
)
from ..storage.http import (
    IMMUTABLE_CACHE_CONTROL,
    conditional_headers,
    content_range,
    format_http_date,
    http_metadata_from_headers,
    range_bounds,
)
from ..storage.keys import DEFAULT_PREFIX, resolve_object_name, strip_extension
from ..storage.streams import TeeReader, tee_stream
from .background import BackgroundTasks

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPE_PREFIXES = ("image/", "video/")


def _lower_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    return {name.lower(): value for name, value in headers.items()}


def split_asset_ids(asset_ids: Union[str, Sequence[str]]) -> List[str]:
    """Split a comma separated id list, trimming and stripping extensions.

    Args:
        asset_ids: "a.png, b" style string, or an already split sequence

    Returns:
        Ids in input order, empty segments dropped
    """
    if isinstance(asset_ids, str):
        asset_ids = asset_ids.split(",")
    ids = []
    for asset_id in asset_ids:
        asset_id = asset_id.strip()
        if asset_id:
            ids.append(strip_extension(asset_id))
    return ids


class AssetService:
    """Asset access on top of an injected store and response cache.

    Holds no per-request state. Besides the store and the cache, the only
    state shared between requests tracks cache writes still in flight, so
    a delete can discard a write that would bring the asset back.
    """

    def __init__(
        self,
        store: AssetStore,
        cache: Optional[ResponseCache] = None,
        background: Optional[BackgroundTasks] = None,
        key_prefix: str = DEFAULT_PREFIX,
    ):
        """Initialize asset service.

        Args:
            store: Durable blob store
            cache: Response cache, or None to disable caching
            background: Runner for detached cache writes
            key_prefix: Storage key namespace
        """
        self.store = store
        self.cache = cache
        self.background = background or BackgroundTasks()
        self.key_prefix = key_prefix
        # In-flight cache writes per key, and keys deleted during one
        self._pending_writes: Dict[str, int] = {}
        self._stale_writes: Set[str] = set()

    def object_name(self, asset_id: str) -> str:
        return resolve_object_name(asset_id, self.key_prefix)

    def cache_key(self, object_name: str) -> str:
        # Reads and invalidations share this key; variants are negotiated
        # by the cache from the request headers.
        return object_name

    async def upload(
        self, asset_id: str, headers: Mapping[str, str], body: ByteStream
    ) -> UploadResponse:
        """Store a new asset. Existing assets are never replaced.

        Args:
            asset_id: Client asset id, extension optional
            headers: Request headers; Content-Type is required
            body: Request body stream

        Returns:
            UploadResponse

        Raises:
            InvalidContentTypeError: If Content-Type is not image/* or video/*
            ConflictError: If an asset already exists under this name
        """
        request_headers = _lower_headers(headers)
        content_type = request_headers.get("content-type", "")
        if not content_type.startswith(ALLOWED_CONTENT_TYPE_PREFIXES):
            raise InvalidContentTypeError()

        object_name = self.object_name(asset_id)
        if await self.store.head(object_name) is not None:
            raise ConflictError()

        metadata = await self.store.put(
            object_name, body, http_metadata_from_headers(request_headers)
        )
        logger.info(f"Uploaded asset {asset_id} as {object_name} ({metadata.size} bytes)")
        return UploadResponse()

    async def _lookup_cached(
        self, cache_key: str, headers: Mapping[str, str]
    ) -> Optional[AssetResponse]:
        if self.cache is None:
            return None
        try:
            return await self.cache.lookup(cache_key, headers)
        except Exception as e:
            logger.error(f"Cache lookup failed for {cache_key}: {e}")
            return None

    async def download(
        self, asset_id: str, headers: Mapping[str, str]
    ) -> AssetResponse:
        """Serve an asset, from the cache when possible.

        On a cache miss the Range and If-* headers are forwarded to the store.
        Complete 200 responses are written back to the cache in the
        background while the client is streamed its own copy of the body.

        Args:
            asset_id: Client asset id, extension optional
            headers: Request headers

        Returns:
            200, 206 or 304 response

        Raises:
            NotFoundError: If no asset is stored under this name
            RangeNotSatisfiableError: If the range lies outside the asset
        """
        request_headers = _lower_headers(headers)
        object_name = self.object_name(asset_id)
        cache_key = self.cache_key(object_name)

        cached = await self._lookup_cached(cache_key, request_headers)
        if cached is not None:
            return cached

        fetched = await self.store.get(
            object_name,
            range_header=request_headers.get("range"),
            conditions=conditional_headers(request_headers),
        )

        if isinstance(fetched, PresentNoBody):
            not_modified_headers = {
                "cache-control": IMMUTABLE_CACHE_CONTROL,
                "etag": fetched.metadata.http_etag,
            }
            if fetched.metadata.uploaded is not None:
                not_modified_headers["last-modified"] = format_http_date(
                    fetched.metadata.uploaded
                )
            return AssetResponse(status_code=304, headers=not_modified_headers)
        if not isinstance(fetched, PresentWithBody):
            raise NotFoundError()

        metadata = fetched.metadata
        response_headers: Dict[str, str] = {}
        metadata.write_http_metadata(response_headers)
        response_headers["cache-control"] = IMMUTABLE_CACHE_CONTROL
        response_headers["etag"] = metadata.http_etag
        if metadata.uploaded is not None:
            response_headers["last-modified"] = format_http_date(metadata.uploaded)
        response_headers["accept-ranges"] = "bytes"

        # The store does not report Content-Range, so derive it from the
        # range it applied.
        range_value = content_range(metadata.range, metadata.size)
        if range_value:
            response_headers["content-range"] = range_value
            start, end = range_bounds(metadata.range, metadata.size)
        else:
            start, end = 0, metadata.size - 1
        response_headers["content-length"] = str(end - start + 1)

        status_code = 206 if range_value else 200
        if status_code != 200 or self.cache is None:
            return AssetResponse(status_code, response_headers, fetched.body)

        client_body, cache_body = tee_stream(fetched.body)
        self._spawn_cache_write(
            cache_key, AssetResponse(200, dict(response_headers), cache_body)
        )
        return AssetResponse(200, response_headers, client_body)

    def _spawn_cache_write(self, cache_key: str, response: AssetResponse) -> None:
        task = self.background.spawn(
            self._write_cache(cache_key, response),
            name=f"cache-insert:{cache_key}",
        )
        self._pending_writes[cache_key] = self._pending_writes.get(cache_key, 0) + 1
        task.add_done_callback(
            lambda _: self._finish_cache_write(cache_key, response.body)
        )

    async def _write_cache(self, cache_key: str, response: AssetResponse) -> None:
        await self.cache.insert(cache_key, response)
        if cache_key in self._stale_writes:
            # The asset was deleted while its body was being cached
            await self.cache.invalidate(cache_key)
            logger.info(f"Discarded cache entry for deleted asset {cache_key}")

    def _finish_cache_write(self, cache_key: str, body: TeeReader) -> None:
        # Runs even if the write never started, so the client's reads stop
        # queueing chunks for the cache copy.
        body.close()
        remaining = self._pending_writes.pop(cache_key, 1) - 1
        if remaining:
            self._pending_writes[cache_key] = remaining
        else:
            self._stale_writes.discard(cache_key)

    async def delete_many(
        self, asset_ids: Union[str, Sequence[str]]
    ) -> DeleteOutcome:
        """Delete several assets, each independently of the others.

        Args:
            asset_ids: Comma separated ids or a sequence of ids

        Returns:
            DeleteOutcome listing successes and failures in input order
        """
        outcome = DeleteOutcome()

        for asset_id in split_asset_ids(asset_ids):
            try:
                object_name = self.object_name(asset_id)
                if await self.store.head(object_name) is None:
                    outcome.failed.append(DeleteFailure(id=asset_id, reason="Asset not found"))
                    continue

                await self.store.delete(object_name)
                if self.cache is not None:
                    cache_key = self.cache_key(object_name)
                    if cache_key in self._pending_writes:
                        self._stale_writes.add(cache_key)
                    await self.cache.invalidate(cache_key)

                outcome.succeeded.append(asset_id)
            except Exception as e:
                logger.warning(f"Failed to delete asset {asset_id}: {e}")
                outcome.failed.append(
                    DeleteFailure(id=asset_id, reason=str(e) or "Unknown error")
                )

        logger.info(
            f"Batch delete: {len(outcome.succeeded)} succeeded, {len(outcome.failed)} failed"
        )
        return outcome
