"""Asset handlers and background work."""

from .assets import AssetService, split_asset_ids
from .background import BackgroundTasks

__all__ = [
    "AssetService",
    "BackgroundTasks",
    "split_asset_ids",
]
