"""Remote device store speaking the PostgREST dialect of the hosted database."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx

from backend.db.realtime import RealtimeClient
from backend.db.store import (
    EVENT_ANY,
    ChangeListener,
    StoreConfigurationError,
    StoreQueryError,
    Subscription,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_SCHEMA = "public"
NOT_CONFIGURED_MESSAGE = (
    "Device store is not configured (SUPABASE_URL or SUPABASE_PUBLISHABLE_KEY missing). "
    "Set the env vars or point DEVICE_DIRECTORY_DB_PATH at a local DuckDB file."
)


def _format_filter_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def build_query_params(
    filters: Mapping[str, Any] | None = None,
    order_by: str | None = None,
    ascending: bool = True,
) -> dict[str, str]:
    """Translate equality filters and ordering into PostgREST query parameters."""
    params: dict[str, str] = {"select": "*"}
    for column, value in (filters or {}).items():
        operator = "is" if value is None else "eq"
        params[column] = f"{operator}.{_format_filter_value(value)}"
    if order_by:
        params["order"] = f"{order_by}.{'asc' if ascending else 'desc'}"
    return params


def query_error_from_response(response: httpx.Response) -> StoreQueryError:
    """Build a StoreQueryError from a PostgREST error body."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        return StoreQueryError(
            body.get("message") or response.reason_phrase or "Query failed",
            code=body.get("code"),
            details=body.get("details"),
            hint=body.get("hint"),
            status_code=response.status_code,
        )
    return StoreQueryError(
        response.text or response.reason_phrase or "Query failed",
        status_code=response.status_code,
    )


class PostgrestStore:
    """Device store backed by the hosted database's REST and realtime endpoints."""

    def __init__(
        self,
        url: str | None,
        api_key: str | None,
        *,
        schema: str = DEFAULT_SCHEMA,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        realtime: RealtimeClient | None = None,
    ) -> None:
        self.url = url.rstrip("/") if url else None
        self.api_key = api_key
        self.schema = schema
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._realtime = realtime

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.api_key)

    def _require_configured(self) -> None:
        if not self.is_configured:
            raise StoreConfigurationError(NOT_CONFIGURED_MESSAGE)

    def _http(self) -> httpx.AsyncClient:
        self._require_configured()
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=f"{self.url}/rest/v1",
                headers={
                    "apikey": self.api_key,
                    "Authorization": f"Bearer {self.api_key}",
                    "Accept": "application/json",
                    "Accept-Profile": self.schema,
                },
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def _realtime_client(self) -> RealtimeClient:
        self._require_configured()
        if self._realtime is None:
            self._realtime = RealtimeClient(self.url, self.api_key, schema=self.schema)
        return self._realtime

    async def select(
        self,
        table: str,
        *,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
    ) -> list[dict[str, Any]]:
        params = build_query_params(filters, order_by, ascending)
        response = await self._http().get(f"/{table}", params=params)
        if response.is_error:
            raise query_error_from_response(response)

        payload = response.json()
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise StoreQueryError(
                f"Unexpected payload from table {table!r}: {type(payload).__name__}",
                status_code=response.status_code,
            )
        logger.debug("Fetched %s rows from %s", len(payload), table)
        return payload

    def subscribe(
        self, table: str, listener: ChangeListener, event: str = EVENT_ANY
    ) -> Subscription:
        return self._realtime_client().subscribe(table, listener, event)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        if self._realtime is not None:
            await self._realtime.close()
