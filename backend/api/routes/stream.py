"""Websocket relaying device and metadata change notifications to a client."""

import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder

from backend.db.deps import get_directory
from backend.db.store import StoreConfigurationError
from backend.directory.device_directory import DeviceDirectory
from backend.models.device import DeviceWithBrand

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/devices/stream")
async def device_stream(
    websocket: WebSocket,
    directory: DeviceDirectory = Depends(get_directory),
) -> None:
    """Send the device list on connect and again after every change.

    Metadata changes are sent as a bare ``{"type": "metadata"}`` notice; the
    client refetches what it shows.
    """
    await websocket.accept()

    async def send_devices(devices: list[DeviceWithBrand]) -> None:
        await websocket.send_json({"type": "devices", "data": jsonable_encoder(devices)})

    async def send_metadata_notice() -> None:
        await websocket.send_json({"type": "metadata"})

    try:
        await send_devices(await directory.list_devices())
    except StoreConfigurationError as error:
        await websocket.close(code=1011, reason=str(error))
        return

    devices_subscription = directory.subscribe_devices(send_devices)
    metadata_subscription = directory.subscribe_metadata(send_metadata_notice)
    try:
        while True:
            # Clients only listen; inbound frames are read to notice disconnects.
            await websocket.receive_text()
    except WebSocketDisconnect as error:
        logger.info("Device stream client disconnected: %s", error.code)
    finally:
        devices_subscription.cancel()
        metadata_subscription.cancel()
