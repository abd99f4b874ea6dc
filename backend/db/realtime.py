"""Realtime change feed for the hosted database (Phoenix channels over websockets)."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode, urlsplit, urlunsplit

import websockets
from websockets.exceptions import WebSocketException

from backend.db.store import (
    EVENT_ANY,
    ChangeListener,
    RowChange,
    Subscription,
    dispatch_change,
    matches_event,
)

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "1.0.0"
HEARTBEAT_INTERVAL = 25.0
RECONNECT_DELAY = 5.0


def realtime_endpoint(url: str, api_key: str) -> str:
    """Derive the websocket endpoint from the store's https URL."""
    parts = urlsplit(url.rstrip("/"))
    scheme = "wss" if parts.scheme == "https" else "ws"
    path = f"{parts.path}/realtime/v1/websocket"
    query = urlencode({"apikey": api_key, "vsn": PROTOCOL_VERSION})
    return urlunsplit((scheme, parts.netloc, path, query, ""))


@dataclass
class _Channel:
    topic: str
    table: str
    event: str
    listener: ChangeListener
    handle: Subscription | None = None
    join_ref: str | None = None


class RealtimeClient:
    """Single websocket connection multiplexing one channel per subscription.

    The connection is opened lazily by the first ``subscribe`` call, which must
    happen inside a running event loop. Channels are re-joined after every
    reconnect until they are cancelled.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        *,
        schema: str = "public",
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
        reconnect_delay: float = RECONNECT_DELAY,
    ) -> None:
        self.endpoint = realtime_endpoint(url, api_key)
        self.api_key = api_key
        self.schema = schema
        self.heartbeat_interval = heartbeat_interval
        self.reconnect_delay = reconnect_delay
        self._channels: dict[str, _Channel] = {}
        self._refs = itertools.count(1)
        self._topics = itertools.count(1)
        self._outbox: asyncio.Queue[str] | None = None
        self._runner: asyncio.Task | None = None
        self._connected = False
        self._closed = False
        self._pending: set[asyncio.Task] = set()

    @property
    def connected(self) -> bool:
        return self._connected

    def subscribe(
        self, table: str, listener: ChangeListener, event: str = EVENT_ANY
    ) -> Subscription:
        topic = f"realtime:{table}-changes-{next(self._topics)}"
        channel = _Channel(topic=topic, table=table, event=event.upper(), listener=listener)
        channel.handle = Subscription(lambda: self._leave(topic))
        self._channels[topic] = channel
        self._ensure_running()
        if self._connected:
            self._send(self._join_frame(channel))
        logger.debug("Subscribed to %s events on %s (%s)", event, table, topic)
        return channel.handle

    def _leave(self, topic: str) -> None:
        channel = self._channels.pop(topic, None)
        if channel is None:
            return
        if self._connected:
            self._send(self._frame(topic, "phx_leave", {}, join_ref=channel.join_ref))
        logger.debug("Left realtime channel %s", topic)

    def _ensure_running(self) -> None:
        if self._closed:
            raise RuntimeError("Realtime client is closed")
        if self._runner is None or self._runner.done():
            self._outbox = asyncio.Queue()
            self._runner = asyncio.get_running_loop().create_task(self._run())

    def _frame(
        self,
        topic: str,
        event: str,
        payload: dict[str, Any],
        *,
        join_ref: str | None = None,
    ) -> str:
        message = {
            "topic": topic,
            "event": event,
            "payload": payload,
            "ref": str(next(self._refs)),
        }
        if join_ref is not None:
            message["join_ref"] = join_ref
        return json.dumps(message)

    def _join_frame(self, channel: _Channel) -> str:
        channel.join_ref = str(next(self._refs))
        payload = {
            "config": {
                "broadcast": {"ack": False, "self": False},
                "presence": {"key": ""},
                "postgres_changes": [
                    {"event": channel.event, "schema": self.schema, "table": channel.table}
                ],
            },
            "access_token": self.api_key,
        }
        return self._frame(channel.topic, "phx_join", payload, join_ref=channel.join_ref)

    def _send(self, frame: str) -> None:
        if self._outbox is not None:
            self._outbox.put_nowait(frame)

    async def _run(self) -> None:
        while not self._closed:
            try:
                async with websockets.connect(self.endpoint) as connection:
                    logger.info("Realtime connection established")
                    await self._serve(connection)
            except asyncio.CancelledError:
                raise
            except (WebSocketException, OSError) as error:
                logger.warning("Realtime connection lost: %s", error)
            except Exception:  # noqa: BLE001 - the feed must outlive a bad frame
                logger.exception("Realtime connection failed, reconnecting")
            finally:
                self._connected = False

            if not self._closed:
                await asyncio.sleep(self.reconnect_delay)

    async def _serve(self, connection: Any) -> None:
        # Frames queued while offline refer to dead joins; rejoin from scratch.
        while self._outbox is not None and not self._outbox.empty():
            self._outbox.get_nowait()
        self._connected = True
        for channel in list(self._channels.values()):
            self._send(self._join_frame(channel))

        tasks = [
            asyncio.create_task(self._pump_outbox(connection)),
            asyncio.create_task(self._heartbeat()),
        ]
        try:
            async for raw in connection:
                self.handle_frame(raw)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _pump_outbox(self, connection: Any) -> None:
        while True:
            frame = await self._outbox.get()
            await connection.send(frame)

    async def _heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            self._send(self._frame("phoenix", "heartbeat", {}))

    def handle_frame(self, raw: str | bytes) -> None:
        """Route one inbound frame to the channel that owns its topic."""
        try:
            message = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring malformed realtime frame: %r", raw)
            return

        if not isinstance(message, dict):
            logger.warning("Ignoring realtime frame that is not an object: %r", raw)
            return

        event = message.get("event")
        topic = message.get("topic")
        payload = message.get("payload")
        if not isinstance(payload, dict):
            payload = {}

        if event == "phx_reply" and payload.get("status") not in (None, "ok"):
            logger.error("Realtime channel %s rejected: %s", topic, payload.get("response"))
            return
        if event == "system" and payload.get("status") == "error":
            logger.error("Realtime channel %s error: %s", topic, payload.get("message"))
            return
        if event != "postgres_changes":
            return

        channel = self._channels.get(topic) if isinstance(topic, str) else None
        if channel is None or channel.handle is None or not channel.handle.active:
            return

        data = payload.get("data")
        if not isinstance(data, dict):
            logger.warning("Ignoring change on %s without a data object", topic)
            return
        event_type = str(data.get("eventType") or data.get("type") or "").upper()
        if not event_type:
            logger.warning("Ignoring change on %s without an event type", topic)
            return
        if not matches_event(channel.event, event_type):
            return

        new = data.get("new") or data.get("record")
        old = data.get("old") or data.get("old_record")
        table = data.get("table")
        change = RowChange(
            table=table if isinstance(table, str) and table else channel.table,
            event_type=event_type,
            new=new if isinstance(new, dict) else {},
            old=old if isinstance(old, dict) else {},
        )
        dispatch_change(channel.listener, change, self._pending)

    async def close(self) -> None:
        self._closed = True
        for channel in list(self._channels.values()):
            if channel.handle is not None:
                channel.handle.cancel()
        if self._runner is not None:
            self._runner.cancel()
            await asyncio.gather(self._runner, return_exceptions=True)
            self._runner = None
        for task in list(self._pending):
            task.cancel()
        await asyncio.gather(*self._pending, return_exceptions=True)
