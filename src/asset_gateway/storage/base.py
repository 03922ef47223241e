"""Contracts for the blob store and response cache collaborators."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterator, Dict, Mapping, MutableMapping, Optional, Protocol, Union

from .http import RangeSpec, quote_etag

ByteStream = AsyncIterator[bytes]


@dataclass
class ObjectMetadata:
    """Metadata of a stored asset object."""

    key: str
    size: int
    etag: str
    http_metadata: Dict[str, str] = field(default_factory=dict)
    uploaded: Optional[datetime] = None
    # Range the store applied when reading the body, already clamped to size
    range: Optional[RangeSpec] = None

    @property
    def http_etag(self) -> str:
        return quote_etag(self.etag)

    def write_http_metadata(self, headers: MutableMapping[str, str]) -> None:
        """Copy the stored HTTP metadata into response headers."""
        for name, value in self.http_metadata.items():
            headers[name] = value


@dataclass(frozen=True)
class Absent:
    """No object is stored under the key."""


@dataclass
class PresentNoBody:
    """Object exists but its preconditions short-circuited the read."""

    metadata: ObjectMetadata


@dataclass
class PresentWithBody:
    """Object exists; body holds the full or ranged payload."""

    metadata: ObjectMetadata
    body: ByteStream


StoreFetch = Union[Absent, PresentNoBody, PresentWithBody]

ABSENT = Absent()


@dataclass
class AssetResponse:
    """Framework independent HTTP response produced by the asset handlers."""

    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[ByteStream] = None


class AssetStore(Protocol):
    """Durable keyed blob store (R2/S3 semantics)."""

    async def head(self, key: str) -> Optional[ObjectMetadata]:
        ...

    async def get(
        self,
        key: str,
        range_header: Optional[str] = None,
        conditions: Optional[Mapping[str, str]] = None,
    ) -> StoreFetch:
        """Read an object, applying the range and ``If-*`` preconditions.

        A failed precondition yields PresentNoBody rather than an error.
        """
        ...

    async def put(
        self, key: str, body: ByteStream, http_metadata: Mapping[str, str]
    ) -> ObjectMetadata:
        ...

    async def delete(self, key: str) -> None:
        ...


class ResponseCache(Protocol):
    """Cache of complete download responses."""

    async def lookup(
        self, key: str, headers: Mapping[str, str]
    ) -> Optional[AssetResponse]:
        """Return a response for the request headers, negotiating range and
        conditional variants from the cached full response."""
        ...

    async def insert(self, key: str, response: AssetResponse) -> None:
        ...

    async def invalidate(self, key: str) -> bool:
        ...
