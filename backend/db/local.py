"""Local device store on an embedded DuckDB file.

Mirrors the hosted schema closely enough for offline development and tests.
Writes made through this store notify its subscribers the same way the hosted
realtime feed does.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import duckdb

from backend.db.store import (
    EVENT_ANY,
    EVENT_DELETE,
    EVENT_INSERT,
    EVENT_UPDATE,
    ChangeListener,
    RowChange,
    StoreQueryError,
    Subscription,
    dispatch_change,
    matches_event,
)

logger = logging.getLogger(__name__)

_TIMESTAMPS = {
    "created_at": "TIMESTAMP",
    "updated_at": "TIMESTAMP",
}

SCHEMA: dict[str, dict[str, str]] = {
    "brands": {
        "id": "VARCHAR PRIMARY KEY",
        "name": "VARCHAR NOT NULL",
        "description": "VARCHAR",
        "logo_url": "VARCHAR",
        **_TIMESTAMPS,
    },
    "models": {
        "id": "VARCHAR PRIMARY KEY",
        "brand_id": "VARCHAR NOT NULL",
        "name": "VARCHAR NOT NULL",
        "description": "VARCHAR",
        "specs": "JSON",
        **_TIMESTAMPS,
    },
    "error_codes_db": {
        "id": "VARCHAR PRIMARY KEY",
        "code": "VARCHAR NOT NULL",
        "meaning": "VARCHAR",
        "description": "VARCHAR",
        **_TIMESTAMPS,
    },
    "categories": {"id": "VARCHAR PRIMARY KEY", "name": "VARCHAR", **_TIMESTAMPS},
    "tags": {"id": "VARCHAR PRIMARY KEY", "name": "VARCHAR", **_TIMESTAMPS},
    "media": {
        "id": "VARCHAR PRIMARY KEY",
        "model_id": "VARCHAR",
        "url": "VARCHAR",
        "kind": "VARCHAR",
        **_TIMESTAMPS,
    },
    "urls": {
        "id": "VARCHAR PRIMARY KEY",
        "model_id": "VARCHAR",
        "url": "VARCHAR",
        "label": "VARCHAR",
        **_TIMESTAMPS,
    },
}

JSON_COLUMNS = {("models", "specs")}


def _columns(table: str) -> dict[str, str]:
    try:
        return SCHEMA[table]
    except KeyError:
        raise StoreQueryError(f"Unknown table {table!r}", code="42P01") from None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _check_column(table: str, column: str) -> None:
    if column not in _columns(table):
        raise StoreQueryError(
            f"Column {column!r} does not exist on {table!r}", code="42703"
        )


class LocalStore:
    """DuckDB-backed device store."""

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)
        self._connection = duckdb.connect(self.db_path)
        self._listeners: dict[str, list[tuple[str, ChangeListener, Subscription]]] = {}
        self._pending: set[asyncio.Task] = set()
        self._create_schema()

    @property
    def is_configured(self) -> bool:
        return True

    def _create_schema(self) -> None:
        for table, columns in SCHEMA.items():
            column_sql = ", ".join(f"{name} {ddl}" for name, ddl in columns.items())
            self._connection.execute(f"CREATE TABLE IF NOT EXISTS {table} ({column_sql})")
        logger.debug("Ensured local schema in %s", self.db_path)

    def _execute(self, sql: str, params: list[Any]) -> list[dict[str, Any]]:
        cursor = self._connection.cursor()
        try:
            try:
                result = cursor.execute(sql, params)
            except duckdb.Error as error:
                raise StoreQueryError(str(error)) from error
            if result.description is None:
                return []
            names = [column[0] for column in result.description]
            return [dict(zip(names, row)) for row in result.fetchall()]
        finally:
            cursor.close()

    def _decode(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        for column in row:
            if (table, column) in JSON_COLUMNS and isinstance(row[column], str):
                row[column] = json.loads(row[column])
        return row

    def _encode(self, table: str, values: Mapping[str, Any]) -> dict[str, Any]:
        encoded = {}
        for column, value in values.items():
            _check_column(table, column)
            if (table, column) in JSON_COLUMNS and value is not None:
                value = json.dumps(value)
            encoded[column] = value
        return encoded

    async def select(
        self,
        table: str,
        *,
        filters: Mapping[str, Any] | None = None,
        order_by: str | None = None,
        ascending: bool = True,
    ) -> list[dict[str, Any]]:
        _columns(table)
        conditions: list[str] = []
        params: list[Any] = []
        for column, value in (filters or {}).items():
            _check_column(table, column)
            if value is None:
                conditions.append(f"{column} IS NULL")
            else:
                conditions.append(f"{column} = ?")
                params.append(value)

        sql = f"SELECT * FROM {table}"
        if conditions:
            sql += f" WHERE {' AND '.join(conditions)}"
        if order_by:
            _check_column(table, order_by)
            sql += f" ORDER BY {order_by} {'ASC' if ascending else 'DESC'}"
        else:
            # Insertion order stands in for the hosted table's natural order.
            sql += " ORDER BY rowid"

        rows = await asyncio.to_thread(self._execute, sql, params)
        return [self._decode(table, row) for row in rows]

    async def insert(self, table: str, values: Mapping[str, Any]) -> dict[str, Any]:
        """Insert one row and return it as stored."""
        now = _utcnow()
        row = {"id": str(uuid.uuid4()), "created_at": now, "updated_at": now, **values}
        encoded = self._encode(table, row)
        columns = ", ".join(encoded)
        placeholders = ", ".join("?" for _ in encoded)
        stored = await asyncio.to_thread(
            self._execute,
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders}) RETURNING *",
            list(encoded.values()),
        )
        new = self._decode(table, stored[0])
        self._notify(RowChange(table=table, event_type=EVENT_INSERT, new=new))
        return new

    async def update(
        self, table: str, row_id: str, values: Mapping[str, Any]
    ) -> dict[str, Any] | None:
        """Update one row by id; returns the new row or None when it does not exist."""
        old_rows = await self.select(table, filters={"id": row_id})
        if not old_rows:
            return None
        changes = {**values}
        if "updated_at" in _columns(table):
            changes.setdefault("updated_at", _utcnow())
        encoded = self._encode(table, changes)
        assignments = ", ".join(f"{column} = ?" for column in encoded)
        stored = await asyncio.to_thread(
            self._execute,
            f"UPDATE {table} SET {assignments} WHERE id = ? RETURNING *",
            [*encoded.values(), row_id],
        )
        new = self._decode(table, stored[0])
        self._notify(RowChange(table=table, event_type=EVENT_UPDATE, new=new, old=old_rows[0]))
        return new

    async def delete(self, table: str, row_id: str) -> bool:
        old_rows = await self.select(table, filters={"id": row_id})
        if not old_rows:
            return False
        await asyncio.to_thread(
            self._execute, f"DELETE FROM {table} WHERE id = ?", [row_id]
        )
        self._notify(RowChange(table=table, event_type=EVENT_DELETE, old=old_rows[0]))
        return True

    def subscribe(
        self, table: str, listener: ChangeListener, event: str = EVENT_ANY
    ) -> Subscription:
        _columns(table)
        handle = Subscription(lambda: self._remove_listener(table, handle))
        self._listeners.setdefault(table, []).append((event.upper(), listener, handle))
        return handle

    def _remove_listener(self, table: str, handle: Subscription) -> None:
        self._listeners[table] = [
            entry for entry in self._listeners.get(table, []) if entry[2] is not handle
        ]

    def _notify(self, change: RowChange) -> None:
        for event, listener, handle in list(self._listeners.get(change.table, ())):
            if handle.active and matches_event(event, change.event_type):
                dispatch_change(listener, change, self._pending)

    async def close(self) -> None:
        for entries in list(self._listeners.values()):
            for _, _, handle in list(entries):
                handle.cancel()
        pending = [task for task in self._pending if not task.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._connection.close()
