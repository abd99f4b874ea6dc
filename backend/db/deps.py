"""Store dependencies for FastAPI routes."""

from functools import lru_cache
import logging

from fastapi import Depends

from backend.config import get_settings
from backend.db.local import LocalStore
from backend.db.postgrest import NOT_CONFIGURED_MESSAGE, PostgrestStore
from backend.db.store import DeviceStore
from backend.directory.device_directory import DeviceDirectory

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_store() -> DeviceStore:
    """Build the process-wide store from the environment."""
    settings = get_settings()
    if settings.local_db_path is not None:
        logger.info("Using local device store at %s", settings.local_db_path)
        return LocalStore(settings.local_db_path)

    if not settings.remote_configured:
        # Reported once here; list_devices raises on every call afterwards.
        logger.error(NOT_CONFIGURED_MESSAGE)
    return PostgrestStore(settings.store_url, settings.store_key)


def get_directory(store: DeviceStore = Depends(get_store)) -> DeviceDirectory:
    return DeviceDirectory(store)


async def close_store() -> None:
    """Close the cached store, if one was created."""
    if get_store.cache_info().currsize:
        await get_store().close()
        get_store.cache_clear()
