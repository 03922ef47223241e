"""Health check endpoint."""

import logging

from fastapi import APIRouter

from .. import __version__
from ..config import settings
from . import assets

logger = logging.getLogger(__name__)
router = APIRouter()


def check_cache_access() -> dict:
    """Check if the response cache directory is writable.

    Returns:
        Status dictionary
    """
    if not settings.CACHE_ENABLED:
        return {"status": "disabled"}
    try:
        test_file = settings.CACHE_DIR / ".health_check"
        test_file.write_text("ok")
        test_file.unlink()
        return {"status": "healthy", "path": str(settings.CACHE_DIR)}
    except Exception as e:
        logger.warning(f"Cache health check failed: {e}")
        return {"status": "unhealthy", "error": str(e)}


def check_r2_connection() -> dict:
    """Check if R2 is configured.

    Returns:
        Status dictionary
    """
    if not settings.ASSET_R2_ENDPOINT_URL:
        return {"status": "not_configured", "store": "memory"}
    if not settings.ASSET_R2_ACCESS_KEY_ID or not settings.ASSET_R2_SECRET_ACCESS_KEY:
        return {"status": "missing_credentials"}
    return {"status": "configured", "bucket": settings.ASSET_R2_BUCKET}


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint.

    Returns:
        Service health status
    """
    service = assets.asset_service
    return {
        "status": "healthy" if service is not None else "starting",
        "version": __version__,
        "services": {
            "r2": check_r2_connection(),
            "cache": check_cache_access(),
            "background_tasks": len(service.background) if service else 0,
        },
    }
