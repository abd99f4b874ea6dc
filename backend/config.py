"""Environment-driven settings for the device store."""

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
import os

STORE_URL_ENV_VARS = ("SUPABASE_URL", "VITE_SUPABASE_URL")
STORE_KEY_ENV_VARS = ("SUPABASE_PUBLISHABLE_KEY", "VITE_SUPABASE_PUBLISHABLE_KEY")
LOCAL_DB_ENV_VAR = "DEVICE_DIRECTORY_DB_PATH"


def _first_env(names: tuple[str, ...]) -> str | None:
    for name in names:
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return None


@dataclass(frozen=True)
class StoreSettings:
    store_url: str | None = None
    store_key: str | None = None
    local_db_path: Path | None = None

    @property
    def remote_configured(self) -> bool:
        return bool(self.store_url and self.store_key)


@lru_cache(maxsize=1)
def get_settings() -> StoreSettings:
    """Read store settings once; the local DuckDB path wins over the hosted store."""
    local_db = os.environ.get(LOCAL_DB_ENV_VAR)
    return StoreSettings(
        store_url=_first_env(STORE_URL_ENV_VARS),
        store_key=_first_env(STORE_KEY_ENV_VARS),
        local_db_path=Path(local_db).expanduser() if local_db else None,
    )
