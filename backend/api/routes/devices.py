"""API routes for devices and their error codes."""

from fastapi import APIRouter, Depends, HTTPException, Path, status
from pydantic import BaseModel

from backend.db.deps import get_directory
from backend.db.store import StoreConfigurationError
from backend.directory.device_directory import DeviceDirectory
from backend.models.device import DeviceWithBrand, ErrorCode

router = APIRouter()


class ErrorCodeStorageRequest(BaseModel):
    brand_name: str
    model_name: str


class ErrorCodeStorageStatus(BaseModel):
    configured: bool


@router.get("/", response_model=list[DeviceWithBrand])
async def list_devices(
    directory: DeviceDirectory = Depends(get_directory),
) -> list[DeviceWithBrand]:
    """Return every device with its brand and route slug."""
    try:
        return await directory.list_devices()
    except StoreConfigurationError as error:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(error),
        ) from error


@router.get("/by-slug/{slug}", response_model=DeviceWithBrand)
async def get_device_by_slug(
    slug: str = Path(..., description="Route slug, e.g. joule-victorum"),
    directory: DeviceDirectory = Depends(get_directory),
) -> DeviceWithBrand:
    device = await directory.get_device_by_slug(slug)
    if device is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Device not found")
    return device


@router.get("/{device_id}", response_model=DeviceWithBrand)
async def get_device(
    device_id: str,
    directory: DeviceDirectory = Depends(get_directory),
) -> DeviceWithBrand:
    device = await directory.get_device(device_id)
    if device is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Device not found")
    return device


@router.get("/{device_id}/error-codes", response_model=list[ErrorCode])
async def list_error_codes(
    device_id: str,
    directory: DeviceDirectory = Depends(get_directory),
) -> list[ErrorCode]:
    """Return error codes sorted by code."""
    return await directory.list_error_codes(device_id)


@router.post("/{device_id}/error-code-storage", response_model=ErrorCodeStorageStatus)
async def ensure_error_code_storage(
    device_id: str,
    payload: ErrorCodeStorageRequest,
    directory: DeviceDirectory = Depends(get_directory),
) -> ErrorCodeStorageStatus:
    configured = await directory.ensure_error_code_storage(
        device_id, payload.brand_name, payload.model_name
    )
    return ErrorCodeStorageStatus(configured=configured)
