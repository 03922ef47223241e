"""Shared fixtures for asset gateway tests."""

import pytest

from asset_gateway.services.assets import AssetService
from asset_gateway.services.background import BackgroundTasks
from asset_gateway.storage.cache import ResponseCacheManager
from asset_gateway.storage.memory import InMemoryAssetStore


@pytest.fixture
def store():
    """Create an empty in-memory asset store."""
    return InMemoryAssetStore()


@pytest.fixture
def cache(tmp_path):
    """Create a response cache in a temporary directory."""
    return ResponseCacheManager(tmp_path / "cache")


@pytest.fixture
def service(store, cache):
    """Create an asset service wired to the in-memory store and disk cache."""
    return AssetService(store, cache=cache, background=BackgroundTasks())


@pytest.fixture
def payload():
    """1000 bytes of distinguishable data."""
    return bytes(i % 251 for i in range(1000))
