"""Fail-soft read facade over a device store.

Read failures never reach the caller as exceptions: they are logged and turned
into an empty list or ``None``. The one exception is ``list_devices`` on a
store without connection settings, which raises ``StoreConfigurationError``.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable
from typing import Any

from backend.db.store import (
    BRANDS_TABLE,
    ERROR_CODES_TABLE,
    METADATA_TABLES,
    MODELS_TABLE,
    DeviceStore,
    RowChange,
    StoreConfigurationError,
    StoreQueryError,
    Subscription,
)
from backend.models.device import Brand, Device, DeviceWithBrand, ErrorCode

from . import logger
from .slugs import has_brand_and_model, match_brand, match_model

DevicesCallback = Callable[[list[DeviceWithBrand]], Any]
MetadataCallback = Callable[[], Any]


async def _invoke(callback: Callable[..., Any], *args: Any) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class DeviceDirectory:
    """Reads brands, devices and error codes; relays store change notifications."""

    def __init__(self, store: DeviceStore) -> None:
        self.store = store

    async def list_devices(self) -> list[DeviceWithBrand]:
        """Return every device joined with its brand."""
        if not self.store.is_configured:
            message = (
                "Device store is not configured. Set SUPABASE_URL and "
                "SUPABASE_PUBLISHABLE_KEY, or DEVICE_DIRECTORY_DB_PATH."
            )
            logger.error("Error fetching devices: %s", message)
            raise StoreConfigurationError(message)

        try:
            models = await self.store.select(MODELS_TABLE)
            if not models:
                return []
            brands = await self.store.select(BRANDS_TABLE)
        except StoreQueryError as error:
            logger.warning("Error querying devices, returning empty list: %s", error)
            return []
        except Exception:  # noqa: BLE001 - listings degrade to empty
            logger.exception("Error fetching devices")
            return []

        try:
            brands_by_id = {row["id"]: Brand.model_validate(row) for row in brands}
            return [
                DeviceWithBrand.model_validate(
                    {**row, "brand": brands_by_id.get(row.get("brand_id"))}
                )
                for row in models
            ]
        except Exception:  # noqa: BLE001 - a malformed row empties the listing
            logger.exception("Error joining devices with brands")
            return []

    async def get_device(self, device_id: str) -> DeviceWithBrand | None:
        try:
            models = await self.store.select(MODELS_TABLE, filters={"id": device_id})
            if not models:
                return None
            device = Device.model_validate(models[0])

            brands = await self.store.select(BRANDS_TABLE, filters={"id": device.brand_id})
            if not brands:
                logger.error(
                    "Error fetching device %s: brand %s not found", device_id, device.brand_id
                )
                return None
            return DeviceWithBrand(**device.model_dump(), brand=Brand.model_validate(brands[0]))
        except Exception:  # noqa: BLE001 - lookups degrade to not found
            logger.exception("Error fetching device %s", device_id)
            return None

    async def get_device_by_slug(self, slug: str) -> DeviceWithBrand | None:
        """Resolve a route slug such as ``joule-victorum`` to its device."""
        try:
            if not has_brand_and_model(slug):
                return None

            brands = [Brand.model_validate(row) for row in await self.store.select(BRANDS_TABLE)]
            brand = match_brand(slug, brands)
            if brand is None:
                return None

            rows = await self.store.select(MODELS_TABLE, filters={"brand_id": brand.id})
            models = [Device.model_validate(row) for row in rows]
            device = match_model(slug, brand.name, models)
            if device is None:
                return None
            return DeviceWithBrand(**device.model_dump(), brand=brand)
        except Exception:  # noqa: BLE001 - lookups degrade to not found
            logger.exception("Error fetching device by slug %r", slug)
            return None

    async def list_error_codes(self, device_id: str) -> list[ErrorCode]:
        """Return error codes ordered by code.

        The error code table has no device column yet, so every code is
        returned whatever ``device_id`` is.
        """
        try:
            rows = await self.store.select(ERROR_CODES_TABLE, order_by="code")
            return [ErrorCode.model_validate(row) for row in rows]
        except Exception:  # noqa: BLE001 - listings degrade to empty
            logger.exception("Error fetching error codes for device %s", device_id)
            return []

    async def list_brands(self) -> list[Brand]:
        try:
            rows = await self.store.select(BRANDS_TABLE, order_by="name")
            return [Brand.model_validate(row) for row in rows]
        except Exception:  # noqa: BLE001 - listings degrade to empty
            logger.exception("Error fetching brands")
            return []

    async def list_brand_models(self, brand_id: str) -> list[Device]:
        try:
            rows = await self.store.select(
                MODELS_TABLE, filters={"brand_id": brand_id}, order_by="name"
            )
            return [Device.model_validate(row) for row in rows]
        except Exception:  # noqa: BLE001 - listings degrade to empty
            logger.exception("Error fetching models for brand %s", brand_id)
            return []

    async def ensure_error_code_storage(
        self, device_id: str, brand_name: str, model_name: str
    ) -> bool:
        """Make sure a device has somewhere to keep its error codes.

        Codes live in the shared error code table, so there is nothing to
        create; this only records that the device was set up.
        """
        try:
            logger.info(
                "Error code storage configured for device %s: %s %s",
                device_id,
                brand_name,
                model_name,
            )
            return True
        except Exception:  # noqa: BLE001 - reported as a failed setup
            logger.exception("Error configuring error code storage for device %s", device_id)
            return False

    def subscribe_devices(self, callback: DevicesCallback) -> Subscription:
        """Call ``callback`` with a fresh device list after every brand or model change.

        Must be called from within a running event loop. Cancel the returned
        handle to stop the notifications.
        """

        async def refresh(change: RowChange) -> None:
            logger.debug("%s on %s, refreshing devices", change.event_type, change.table)
            try:
                devices = await self.list_devices()
            except StoreConfigurationError:
                return
            if handle.active:
                await _invoke(callback, devices)

        handle = Subscription.group(
            [
                self.store.subscribe(BRANDS_TABLE, refresh),
                self.store.subscribe(MODELS_TABLE, refresh),
            ]
        )
        return handle

    def subscribe_metadata(self, on_change: MetadataCallback) -> Subscription:
        """Call ``on_change`` after any change to categories, tags, media or urls."""

        async def notify(change: RowChange) -> None:
            logger.debug("%s on %s, notifying metadata listener", change.event_type, change.table)
            if handle.active:
                await _invoke(on_change)

        handle = Subscription.group(
            [self.store.subscribe(table, notify) for table in METADATA_TABLES]
        )
        return handle
