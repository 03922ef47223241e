"""HTTP range and precondition helpers shared by stores and the response cache."""

import email.utils
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional, Tuple, Union

from ..errors import RangeNotSatisfiableError

# Assets never change once uploaded, so they can be cached basically forever.
IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"

# Request headers persisted with an object and replayed on download.
HTTP_METADATA_HEADERS = (
    "content-type",
    "content-language",
    "content-disposition",
    "content-encoding",
    "cache-control",
    "expires",
)

_RANGE_RE = re.compile(r"^bytes=(\d*)-(\d*)$")


@dataclass(frozen=True)
class OffsetRange:
    """``bytes=offset-`` or ``bytes=offset-end`` expressed as offset/length."""

    offset: int = 0
    length: Optional[int] = None


@dataclass(frozen=True)
class SuffixRange:
    """``bytes=-N``: the last N bytes of the object."""

    suffix: int


RangeSpec = Union[OffsetRange, SuffixRange]


def parse_range_header(header: Optional[str]) -> Optional[RangeSpec]:
    """Parse a single-range ``Range`` header.

    Multi-range and malformed headers are ignored (None), so the caller
    falls back to a full response.

    Args:
        header: Range header value, e.g. "bytes=0-99"

    Returns:
        Parsed RangeSpec or None
    """
    if not header:
        return None

    m = _RANGE_RE.match(header.strip())
    if not m:
        return None

    start_str, end_str = m.group(1), m.group(2)
    if not start_str:
        if not end_str:
            return None
        return SuffixRange(int(end_str))

    start = int(start_str)
    if not end_str:
        return OffsetRange(offset=start)

    end = int(end_str)
    if end < start:
        return None
    return OffsetRange(offset=start, length=end - start + 1)


def clamp_range(spec: RangeSpec, size: int) -> RangeSpec:
    """Clamp a requested range to what an object of ``size`` bytes can serve.

    Raises:
        RangeNotSatisfiableError: If no byte of the object is covered
    """
    if isinstance(spec, SuffixRange):
        if size == 0 or spec.suffix == 0:
            raise RangeNotSatisfiableError(size)
        return SuffixRange(min(spec.suffix, size))

    if spec.offset >= size:
        raise RangeNotSatisfiableError(size)
    if spec.length is None or spec.offset + spec.length > size:
        return OffsetRange(offset=spec.offset, length=size - spec.offset)
    return spec


def range_bounds(spec: Optional[RangeSpec], size: int) -> Tuple[int, int]:
    """Inclusive ``(start, end)`` byte bounds of ``spec`` within the object."""
    if spec is None:
        return 0, size - 1
    if isinstance(spec, SuffixRange):
        return size - spec.suffix, size - 1
    start = spec.offset or 0
    end = start + spec.length - 1 if spec.length else size - 1
    return start, end


def content_range(spec: Optional[RangeSpec], size: int) -> Optional[str]:
    """Build the ``Content-Range`` header value for an applied range.

    Suffix ranges always produce a header. Offset ranges only do when they
    cover less than the whole object.

    Args:
        spec: Range the store applied, or None for a full read
        size: Total object size in bytes

    Returns:
        e.g. "bytes 900-999/1000", or None for a complete body
    """
    if spec is None:
        return None

    start, end = range_bounds(spec, size)
    if isinstance(spec, SuffixRange) or start != 0 or end != size - 1:
        return f"bytes {start}-{end}/{size}"
    return None


def quote_etag(etag: str) -> str:
    """Return the quoted form of an etag, as sent in the ETag header."""
    if etag.startswith('"') or etag.startswith("W/"):
        return etag
    return f'"{etag}"'


def strip_etag(etag: str) -> str:
    """Strip surrounding quotes and an optional W/ prefix from an etag."""
    etag = etag.strip()
    if etag.startswith("W/"):
        etag = etag[2:]
    if etag.startswith('"') and etag.endswith('"'):
        etag = etag[1:-1]
    return etag


def conditional_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    """Pick the ``If-*`` headers out of a request, keyed in lower case."""
    return {
        name.lower(): value
        for name, value in headers.items()
        if name.lower().startswith("if-")
    }


def http_metadata_from_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    """Pick the headers that are stored alongside an uploaded object."""
    return {
        name.lower(): value
        for name, value in headers.items()
        if name.lower() in HTTP_METADATA_HEADERS
    }


def parse_http_date(value: str) -> Optional[datetime]:
    """Parse an HTTP date header value, or return None if it is malformed."""
    try:
        date = email.utils.parsedate_to_datetime(value)
    except (ValueError, TypeError):
        return None
    if date.tzinfo is None:
        # "-0000" zones parse as naive
        date = date.replace(tzinfo=timezone.utc)
    return date


def format_http_date(value: datetime) -> str:
    """Format a timezone aware datetime as an HTTP date."""
    return email.utils.format_datetime(value.astimezone(timezone.utc), usegmt=True)


def _etag_listed(header: str, etag: str) -> bool:
    if header.strip() == "*":
        return True
    return etag in [strip_etag(t) for t in header.split(",")]


def evaluate_preconditions(
    conditions: Mapping[str, str],
    etag: str,
    last_modified: Optional[datetime] = None,
) -> Optional[int]:
    """Evaluate ``If-*`` headers against an object's etag and upload time.

    Evaluation order:
        1. If-Match -> 412 on mismatch
        2. If-Unmodified-Since -> 412 if modified after date
        3. If-None-Match -> 304 on match
        4. If-Modified-Since -> 304 if not modified (only without If-None-Match)

    Args:
        conditions: Lower-cased conditional headers
        etag: Object etag, quoted or not
        last_modified: Object upload time (timezone aware)

    Returns:
        304 or 412 when a precondition short-circuits the read, else None
    """
    obj_etag = strip_etag(etag)
    if last_modified is not None:
        # HTTP dates have second resolution
        last_modified = last_modified.replace(microsecond=0)

    if_match = conditions.get("if-match")
    if if_match is not None and not _etag_listed(if_match, obj_etag):
        return 412

    if_unmodified_since = conditions.get("if-unmodified-since")
    if if_unmodified_since is not None and if_match is None:
        date = parse_http_date(if_unmodified_since)
        if date is not None and last_modified is not None and last_modified > date:
            return 412

    if_none_match = conditions.get("if-none-match")
    if if_none_match is not None and _etag_listed(if_none_match, obj_etag):
        return 304

    if_modified_since = conditions.get("if-modified-since")
    if if_modified_since is not None and if_none_match is None:
        date = parse_http_date(if_modified_since)
        if date is not None and last_modified is not None and last_modified <= date:
            return 304

    return None
