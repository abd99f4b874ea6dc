"""Store interface shared by the remote and local device stores."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger(__name__)

EVENT_INSERT = "INSERT"
EVENT_UPDATE = "UPDATE"
EVENT_DELETE = "DELETE"
EVENT_ANY = "*"
EVENT_TYPES = (EVENT_INSERT, EVENT_UPDATE, EVENT_DELETE, EVENT_ANY)

BRANDS_TABLE = "brands"
MODELS_TABLE = "models"
ERROR_CODES_TABLE = "error_codes_db"
METADATA_TABLES = ("categories", "tags", "media", "urls")


class StoreError(Exception):
    """Base class for store failures."""


class StoreConfigurationError(StoreError):
    """Connection settings for the store are missing."""


class StoreQueryError(StoreError):
    """The store answered a query with an error object."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: str | None = None,
        hint: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details
        self.hint = hint
        self.status_code = status_code

    def __str__(self) -> str:
        parts = [self.message]
        if self.code:
            parts.append(f"code={self.code}")
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        return " ".join(parts)


@dataclass(frozen=True)
class RowChange:
    """A row-level change pushed by the store."""

    table: str
    event_type: str
    new: dict[str, Any] = field(default_factory=dict)
    old: dict[str, Any] = field(default_factory=dict)


ChangeListener = Callable[[RowChange], Any]


def matches_event(subscribed: str, event_type: str) -> bool:
    return subscribed == EVENT_ANY or subscribed == event_type.upper()


class Subscription:
    """Owned handle for a live change listener.

    ``cancel`` is idempotent; once it returns, the owner of the handle will not
    be called again.
    """

    def __init__(self, on_cancel: Callable[[], None] | None = None) -> None:
        self._on_cancel = on_cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        if self._on_cancel is not None:
            self._on_cancel()

    @classmethod
    def group(cls, subscriptions: Iterable["Subscription"]) -> "Subscription":
        """Combine several handles into one that releases all of them."""
        members = list(subscriptions)

        def cancel_all() -> None:
            for member in members:
                member.cancel()

        return cls(cancel_all)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cancel()


class DeviceStore(Protocol):
    """Query and push-notification surface the device directory relies on."""

    @property
    def is_configured(self) -> bool: ...

    async def select(
        self,
        table: str,
        *,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
    ) -> list[dict[str, Any]]: ...

    def subscribe(
        self, table: str, listener: ChangeListener, event: str = EVENT_ANY
    ) -> Subscription: ...

    async def close(self) -> None: ...


def dispatch_change(
    listener: ChangeListener, change: RowChange, pending: set[asyncio.Task]
) -> None:
    """Call ``listener`` and schedule its result when it is awaitable."""
    try:
        result = listener(change)
    except Exception:  # noqa: BLE001 - a failing listener must not break the feed
        logger.exception("Change listener for table %s failed", change.table)
        return

    if inspect.isawaitable(result):
        task = asyncio.ensure_future(result)
        pending.add(task)
        task.add_done_callback(lambda done: _finish_listener_task(done, pending, change))


def _finish_listener_task(
    task: asyncio.Future, pending: set[asyncio.Task], change: RowChange
) -> None:
    pending.discard(task)
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(
            "Change listener for table %s failed: %s",
            change.table,
            error,
            exc_info=error,
        )


__all__ = [
    "BRANDS_TABLE",
    "ChangeListener",
    "DeviceStore",
    "ERROR_CODES_TABLE",
    "EVENT_ANY",
    "EVENT_DELETE",
    "EVENT_INSERT",
    "EVENT_TYPES",
    "EVENT_UPDATE",
    "METADATA_TABLES",
    "MODELS_TABLE",
    "RowChange",
    "StoreConfigurationError",
    "StoreError",
    "StoreQueryError",
    "Subscription",
    "dispatch_change",
    "matches_event",
]
