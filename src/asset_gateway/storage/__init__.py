"""Storage layer: object naming, blob stores and the response cache."""

from .base import (
    ABSENT,
    Absent,
    AssetResponse,
    AssetStore,
    ObjectMetadata,
    PresentNoBody,
    PresentWithBody,
    ResponseCache,
    StoreFetch,
)
from .cache import ResponseCacheManager
from .keys import resolve_object_name, strip_extension
from .memory import InMemoryAssetStore
from .r2 import R2AssetStore
from .streams import tee_stream

__all__ = [
    "ABSENT",
    "Absent",
    "AssetResponse",
    "AssetStore",
    "InMemoryAssetStore",
    "ObjectMetadata",
    "PresentNoBody",
    "PresentWithBody",
    "R2AssetStore",
    "ResponseCache",
    "ResponseCacheManager",
    "StoreFetch",
    "resolve_object_name",
    "strip_extension",
    "tee_stream",
]
