"""R2/S3-compatible asset store."""

import asyncio
import logging
import os
import re
import tempfile
from typing import Any, Dict, Mapping, Optional

import boto3
from botocore.exceptions import ClientError

from ..errors import ConflictError, RangeNotSatisfiableError
from .base import ABSENT, ByteStream, ObjectMetadata, PresentNoBody, PresentWithBody, StoreFetch
from .http import (
    clamp_range,
    format_http_date,
    parse_http_date,
    parse_range_header,
    strip_etag,
)
from .streams import CHUNK_SIZE

logger = logging.getLogger(__name__)

# Stored HTTP metadata header -> boto3 parameter/response field
S3_METADATA_FIELDS = {
    "content-type": "ContentType",
    "content-language": "ContentLanguage",
    "content-disposition": "ContentDisposition",
    "content-encoding": "ContentEncoding",
    "cache-control": "CacheControl",
    "expires": "Expires",
}

# Conditional request header -> boto3 get_object parameter
S3_CONDITION_FIELDS = {
    "if-match": "IfMatch",
    "if-none-match": "IfNoneMatch",
    "if-modified-since": "IfModifiedSince",
    "if-unmodified-since": "IfUnmodifiedSince",
}

NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
NOT_MODIFIED_CODES = {"304", "NotModified", "412", "PreconditionFailed"}
WRITE_CONFLICT_CODES = {"412", "PreconditionFailed", "ConditionalRequestConflict"}
INVALID_RANGE_CODES = {"416", "InvalidRange"}

# Upload bodies larger than this are spooled to disk before sending
SPOOL_MAX_SIZE = 8 * 1024 * 1024

_CONTENT_RANGE_RE = re.compile(r"^bytes \d+-\d+/(\d+)$")


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def _metadata_from_response(key: str, response: Dict[str, Any]) -> ObjectMetadata:
    """Build ObjectMetadata from a head_object/get_object response."""
    http_metadata = {}
    for header, field_name in S3_METADATA_FIELDS.items():
        value = response.get(field_name)
        if value is None:
            continue
        if header == "expires" and hasattr(value, "tzinfo"):
            value = format_http_date(value)
        http_metadata[header] = str(value)

    size = response.get("ContentLength", 0)
    match = _CONTENT_RANGE_RE.match(response.get("ContentRange") or "")
    if match:
        size = int(match.group(1))

    return ObjectMetadata(
        key=key,
        size=size,
        etag=strip_etag(response.get("ETag", "")),
        http_metadata=http_metadata,
        uploaded=response.get("LastModified"),
    )


class R2AssetStore:
    """Asset store backed by an R2 (or any S3-compatible) bucket.

    Credentials default to ASSET_R2_ACCESS_KEY_ID / ASSET_R2_SECRET_ACCESS_KEY
    from the environment. boto3 is synchronous, so every call runs in the
    default executor.
    """

    def __init__(
        self,
        bucket: str,
        endpoint_url: str,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
    ):
        """Initialize R2 store.

        Args:
            bucket: R2 bucket name
            endpoint_url: R2 endpoint URL
            access_key_id: Access key, overrides the environment
            secret_access_key: Secret key, overrides the environment
        """
        access_key = access_key_id or os.environ.get("ASSET_R2_ACCESS_KEY_ID", "")
        secret_key = secret_access_key or os.environ.get("ASSET_R2_SECRET_ACCESS_KEY", "")

        if not access_key or not secret_key:
            raise ValueError(
                "ASSET_R2_ACCESS_KEY_ID and ASSET_R2_SECRET_ACCESS_KEY must be set"
            )

        self.bucket = bucket
        self.s3 = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
        )

    async def _call(self, method: str, **kwargs) -> Dict[str, Any]:
        loop = asyncio.get_event_loop()
        fn = getattr(self.s3, method)
        return await loop.run_in_executor(None, lambda: fn(**kwargs))

    async def head(self, key: str) -> Optional[ObjectMetadata]:
        """Fetch object metadata.

        Args:
            key: Storage key

        Returns:
            ObjectMetadata, or None if the object does not exist
        """
        try:
            response = await self._call("head_object", Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in NOT_FOUND_CODES:
                return None
            raise
        return _metadata_from_response(key, response)

    async def get(
        self,
        key: str,
        range_header: Optional[str] = None,
        conditions: Optional[Mapping[str, str]] = None,
    ) -> StoreFetch:
        """Read an object, letting the bucket apply range and preconditions.

        Args:
            key: Storage key
            range_header: Incoming Range header, forwarded as-is when valid
            conditions: Lower-cased If-* request headers

        Returns:
            ABSENT, PresentNoBody or PresentWithBody

        Raises:
            RangeNotSatisfiableError: If the bucket rejects the range
        """
        kwargs: Dict[str, Any] = {"Bucket": self.bucket, "Key": key}

        spec = parse_range_header(range_header)
        if spec is not None:
            kwargs["Range"] = range_header.strip()

        for header, param in S3_CONDITION_FIELDS.items():
            value = (conditions or {}).get(header)
            if value is None:
                continue
            if header.endswith("-since"):
                value = parse_http_date(value)
                if value is None:
                    continue
            kwargs[param] = value

        try:
            response = await self._call("get_object", **kwargs)
        except ClientError as e:
            code = _error_code(e)
            if code in NOT_FOUND_CODES:
                return ABSENT
            if code in NOT_MODIFIED_CODES:
                metadata = await self.head(key)
                return PresentNoBody(metadata) if metadata else ABSENT
            if code in INVALID_RANGE_CODES:
                metadata = await self.head(key)
                raise RangeNotSatisfiableError(metadata.size if metadata else 0)
            raise

        metadata = _metadata_from_response(key, response)
        if spec is not None:
            metadata.range = clamp_range(spec, metadata.size)

        return PresentWithBody(metadata, self._iter_body(response["Body"]))

    async def _iter_body(self, body) -> ByteStream:
        loop = asyncio.get_event_loop()
        try:
            while True:
                chunk = await loop.run_in_executor(None, body.read, CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
        finally:
            await loop.run_in_executor(None, body.close)

    async def put(
        self, key: str, body: ByteStream, http_metadata: Mapping[str, str]
    ) -> ObjectMetadata:
        """Upload an object, refusing to replace an existing one.

        The write carries ``If-None-Match: *`` so a concurrent upload that
        got there first surfaces as a conflict instead of being overwritten.

        Args:
            key: Storage key
            body: Request body stream
            http_metadata: Lower-cased HTTP headers to store with the object

        Returns:
            Metadata of the written object

        Raises:
            ConflictError: If the key already exists
        """
        extra: Dict[str, Any] = {}
        for header, field_name in S3_METADATA_FIELDS.items():
            value = http_metadata.get(header)
            if value is None:
                continue
            if header == "expires":
                value = parse_http_date(value)
                if value is None:
                    continue
            extra[field_name] = value

        with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE) as f:
            async for chunk in body:
                f.write(chunk)
            size = f.tell()
            f.seek(0)

            try:
                response = await self._call(
                    "put_object",
                    Bucket=self.bucket,
                    Key=key,
                    Body=f,
                    IfNoneMatch="*",
                    **extra,
                )
            except ClientError as e:
                if _error_code(e) in WRITE_CONFLICT_CODES:
                    raise ConflictError() from e
                raise

        logger.info(f"Uploaded s3://{self.bucket}/{key} ({size} bytes)")
        return ObjectMetadata(
            key=key,
            size=size,
            etag=strip_etag(response.get("ETag", "")),
            http_metadata=dict(http_metadata),
        )

    async def delete(self, key: str) -> None:
        await self._call("delete_object", Bucket=self.bucket, Key=key)
        logger.info(f"Deleted s3://{self.bucket}/{key}")
