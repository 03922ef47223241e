"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from . import __version__
from .config import Settings, settings
from .errors import AssetGatewayError
from .logging_config import setup_logging
from .routes import assets, health
from .routes.assets import set_asset_service
from .services.assets import AssetService
from .services.background import BackgroundTasks
from .storage.cache import ResponseCacheManager
from .storage.memory import InMemoryAssetStore
from .storage.r2 import R2AssetStore

logger = logging.getLogger(__name__)


def build_asset_service(config: Settings) -> AssetService:
    """Wire the asset service to its store and cache.

    Args:
        config: Service settings

    Returns:
        AssetService backed by R2 when configured, else an in-memory store
    """
    if config.ASSET_R2_ENDPOINT_URL:
        store = R2AssetStore(
            config.ASSET_R2_BUCKET,
            config.ASSET_R2_ENDPOINT_URL,
            access_key_id=config.ASSET_R2_ACCESS_KEY_ID,
            secret_access_key=config.ASSET_R2_SECRET_ACCESS_KEY,
        )
        logger.info(f"Using R2 bucket {config.ASSET_R2_BUCKET}")
    else:
        store = InMemoryAssetStore()
        logger.warning("ASSET_R2_ENDPOINT_URL not set, assets are kept in memory")

    cache = ResponseCacheManager(config.CACHE_DIR) if config.CACHE_ENABLED else None

    return AssetService(
        store,
        cache=cache,
        background=BackgroundTasks(),
        key_prefix=config.ASSET_KEY_PREFIX,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan.

    Args:
        app: FastAPI application

    Yields:
        None
    """
    setup_logging(settings.LOG_LEVEL)

    # Startup
    service = build_asset_service(settings)
    set_asset_service(service)

    yield

    # Shutdown: let in-flight cache writes finish
    await service.background.drain(settings.BACKGROUND_DRAIN_TIMEOUT)
    set_asset_service(None)


app = FastAPI(
    title="Asset Gateway",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(health.router, prefix="/api")
app.include_router(assets.router, prefix="/api")


@app.exception_handler(AssetGatewayError)
async def asset_error_handler(request: Request, exc: AssetGatewayError) -> JSONResponse:
    """Render asset errors as JSON with their status code."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message},
        headers=exc.headers,
    )


@app.get("/")
async def root() -> dict:
    """Root endpoint.

    Returns:
        Service info
    """
    return {
        "message": "Asset Gateway",
        "version": __version__,
    }


def main() -> None:
    """Entry point for running the service directly."""
    import uvicorn

    uvicorn.run(
        "asset_gateway.main:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
    )


if __name__ == "__main__":
    main()
