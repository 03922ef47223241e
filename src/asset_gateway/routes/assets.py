"""Asset upload, download and delete endpoints."""

from typing import TYPE_CHECKING, Optional, Union

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from ..models import DeleteErrorResponse, DeleteResponse, UploadResponse

if TYPE_CHECKING:
    from ..services.assets import AssetService

router = APIRouter()

# Global asset service reference - set in main.py
asset_service: Optional["AssetService"] = None


def set_asset_service(service: Optional["AssetService"]) -> None:
    """Set the global asset service reference.

    Args:
        service: AssetService instance
    """
    global asset_service
    asset_service = service


def get_asset_service() -> "AssetService":
    """Return the configured asset service.

    Raises:
        HTTPException: If the service has not been initialized
    """
    if asset_service is None:
        raise HTTPException(500, "Asset service not initialized")
    return asset_service


@router.post("/uploads/{upload_id}", response_model=UploadResponse)
@router.put("/uploads/{upload_id}", response_model=UploadResponse)
async def upload_asset(upload_id: str, request: Request) -> UploadResponse:
    """Upload an image or video asset.

    Args:
        upload_id: Client asset id, extension optional
        request: Incoming request carrying Content-Type and the body

    Returns:
        Upload response
    """
    service = get_asset_service()
    return await service.upload(upload_id, request.headers, request.stream())


@router.get("/uploads/{upload_id}")
async def download_asset(upload_id: str, request: Request) -> Response:
    """Download an asset, honoring Range and If-* request headers.

    Args:
        upload_id: Client asset id, extension optional
        request: Incoming request

    Returns:
        Streaming 200/206 response, or an empty 304
    """
    service = get_asset_service()
    result = await service.download(upload_id, request.headers)

    if result.body is None:
        return Response(status_code=result.status_code, headers=result.headers)
    return StreamingResponse(
        result.body, status_code=result.status_code, headers=result.headers
    )


@router.delete(
    "/uploads/{upload_ids}",
    response_model=DeleteResponse,
    response_model_exclude_none=True,
    responses={404: {"model": DeleteErrorResponse}},
)
async def delete_assets(upload_ids: str) -> Union[DeleteResponse, JSONResponse]:
    """Delete one or more assets.

    Args:
        upload_ids: Comma separated asset ids

    Returns:
        Per-id results; 404 when every id failed
    """
    service = get_asset_service()
    outcome = await service.delete_many(upload_ids)

    if outcome.all_failed:
        return JSONResponse(
            status_code=404,
            content=DeleteErrorResponse(failed=outcome.failed).model_dump(),
        )

    return DeleteResponse(succeeded=outcome.succeeded, failed=outcome.failed or None)
