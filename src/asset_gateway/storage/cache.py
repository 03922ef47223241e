"""Local disk cache for complete download responses."""

import asyncio
import hashlib
import json
import logging
import os
from pathlib import Path
from typing import AsyncIterator, Mapping, Optional

from ..errors import RangeNotSatisfiableError
from .base import AssetResponse
from .http import (
    clamp_range,
    conditional_headers,
    content_range,
    evaluate_preconditions,
    parse_http_date,
    parse_range_header,
    range_bounds,
)
from .streams import CHUNK_SIZE

logger = logging.getLogger(__name__)

# Headers that describe the complete body, so never replayed verbatim
_PER_RESPONSE_HEADERS = {"content-length", "content-range"}


class ResponseCacheManager:
    """Stores full (200) responses on disk and answers variants from them.

    Each entry is a ``<hash>.json`` header file plus a ``<hash>.bin`` body
    file. Range and ``If-*`` request headers are negotiated against the
    cached full response, so one entry per asset serves every variant and
    a single invalidation removes them all.
    """

    def __init__(self, cache_dir: Path):
        """Initialize cache manager.

        Args:
            cache_dir: Root directory for cache storage
        """
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _paths(self, key: str):
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.cache_dir / f"{digest}.json", self.cache_dir / f"{digest}.bin"

    def _load_entry(self, key: str) -> Optional[dict]:
        meta_file, body_file = self._paths(key)
        if not meta_file.exists() or not body_file.exists():
            return None
        try:
            return json.loads(meta_file.read_text())
        except (json.JSONDecodeError, IOError):
            return None

    async def lookup(
        self, key: str, headers: Mapping[str, str]
    ) -> Optional[AssetResponse]:
        """Find a cached response matching the request headers.

        Args:
            key: Cache key
            headers: Incoming request headers

        Returns:
            200, 206 or 304 response, or None on a miss. Requests whose
            preconditions fail or whose range cannot be served are treated
            as misses and left to the store.
        """
        entry = self._load_entry(key)
        if entry is None:
            return None

        cached_headers = dict(entry["headers"])
        size = entry["size"]
        request_headers = {name.lower(): value for name, value in headers.items()}

        last_modified = cached_headers.get("last-modified")
        status = evaluate_preconditions(
            conditional_headers(request_headers),
            cached_headers.get("etag", ""),
            parse_http_date(last_modified) if last_modified else None,
        )
        if status == 412:
            return None
        if status == 304:
            return AssetResponse(
                status_code=304,
                headers={
                    name: value
                    for name, value in cached_headers.items()
                    if name in ("etag", "cache-control", "last-modified")
                },
            )

        start, end = 0, size - 1
        spec = parse_range_header(request_headers.get("range"))
        if spec is not None:
            try:
                spec = clamp_range(spec, size)
            except RangeNotSatisfiableError:
                return None
            start, end = range_bounds(spec, size)
            value = content_range(spec, size)
            if value:
                cached_headers["content-range"] = value

        cached_headers["content-length"] = str(end - start + 1)
        _, body_file = self._paths(key)
        logger.debug(f"Cache hit for {key}")
        return AssetResponse(
            status_code=206 if "content-range" in cached_headers else 200,
            headers=cached_headers,
            body=self._iter_file(body_file, start, end),
        )

    async def _iter_file(self, path: Path, start: int, end: int) -> AsyncIterator[bytes]:
        loop = asyncio.get_event_loop()
        with open(path, "rb") as f:
            f.seek(start)
            remaining = end - start + 1
            while remaining > 0:
                chunk = await loop.run_in_executor(
                    None, f.read, min(CHUNK_SIZE, remaining)
                )
                if not chunk:
                    break
                remaining -= len(chunk)
                yield chunk

    async def insert(self, key: str, response: AssetResponse) -> None:
        """Write a full response into the cache, consuming its body.

        Args:
            key: Cache key
            response: Complete 200 response

        Raises:
            ValueError: If the response is not a complete 200 response
        """
        if response.status_code != 200 or response.body is None:
            raise ValueError(f"Only complete 200 responses are cacheable, got {response.status_code}")

        meta_file, body_file = self._paths(key)
        tmp_body = self.cache_dir / f"{body_file.name}.{os.getpid()}.{id(response)}.tmp"
        loop = asyncio.get_event_loop()
        size = 0
        try:
            with open(tmp_body, "wb") as f:
                async for chunk in response.body:
                    await loop.run_in_executor(None, f.write, chunk)
                    size += len(chunk)
            os.replace(tmp_body, body_file)
        finally:
            if tmp_body.exists():
                tmp_body.unlink()

        headers = {
            name.lower(): value
            for name, value in response.headers.items()
            if name.lower() not in _PER_RESPONSE_HEADERS
        }
        # Header file goes last so readers never see a partial body
        meta_file.write_text(json.dumps({"key": key, "size": size, "headers": headers}))
        logger.debug(f"Cached {key} ({size} bytes)")

    async def invalidate(self, key: str) -> bool:
        """Remove a cached response.

        Args:
            key: Cache key

        Returns:
            True if an entry was removed
        """
        removed = False
        for path in self._paths(key):
            if path.exists():
                path.unlink()
                removed = True
        return removed
