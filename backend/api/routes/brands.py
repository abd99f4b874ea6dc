"""API routes for listing brands and their models."""

from fastapi import APIRouter, Depends

from backend.db.deps import get_directory
from backend.directory.device_directory import DeviceDirectory
from backend.models.device import Brand, Device

router = APIRouter()


@router.get("/", response_model=list[Brand])
async def list_brands(directory: DeviceDirectory = Depends(get_directory)) -> list[Brand]:
    """Return all brands sorted by name."""
    return await directory.list_brands()


@router.get("/{brand_id}/models", response_model=list[Device])
async def list_brand_models(
    brand_id: str,
    directory: DeviceDirectory = Depends(get_directory),
) -> list[Device]:
    """Return the models of one brand sorted by name."""
    return await directory.list_brand_models(brand_id)
