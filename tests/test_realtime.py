import asyncio
import json

import websockets

from backend.db.realtime import RealtimeClient, realtime_endpoint


def _change_frame(topic, table, event_type, new=None, old=None):
    return json.dumps(
        {
            "topic": topic,
            "event": "postgres_changes",
            "payload": {
                "ids": [1],
                "data": {
                    "schema": "public",
                    "table": table,
                    "commit_timestamp": "2026-01-01T00:00:00Z",
                    "eventType": event_type,
                    "new": new or {},
                    "old": old or {},
                    "errors": None,
                },
            },
            "ref": None,
        }
    )


def test_realtime_endpoint():
    assert realtime_endpoint("https://demo.supabase.co/", "key") == (
        "wss://demo.supabase.co/realtime/v1/websocket?apikey=key&vsn=1.0.0"
    )
    assert realtime_endpoint("http://localhost:54321", "k").startswith("ws://localhost:54321/")


def test_frames_route_to_subscribed_channel_until_cancelled():
    async def scenario():
        client = RealtimeClient("http://127.0.0.1:9", "key", reconnect_delay=60)
        brand_changes, model_deletes = [], []
        brands = client.subscribe("brands", brand_changes.append)
        client.subscribe("models", model_deletes.append, event="delete")
        try:
            client.handle_frame(_change_frame("realtime:brands-changes-1", "brands", "INSERT", new={"id": "b1"}))
            client.handle_frame(_change_frame("realtime:models-changes-2", "models", "UPDATE"))
            client.handle_frame(_change_frame("realtime:models-changes-2", "models", "DELETE", old={"id": "m1"}))
            client.handle_frame("not json")

            brands.cancel()
            client.handle_frame(_change_frame("realtime:brands-changes-1", "brands", "UPDATE"))
        finally:
            await client.close()
        return brand_changes, model_deletes

    brand_changes, model_deletes = asyncio.run(scenario())

    assert [(c.table, c.event_type, c.new) for c in brand_changes] == [("brands", "INSERT", {"id": "b1"})]
    assert [(c.event_type, c.old) for c in model_deletes] == [("DELETE", {"id": "m1"})]


def test_coroutine_listeners_are_scheduled():
    async def scenario():
        client = RealtimeClient("http://127.0.0.1:9", "key", reconnect_delay=60)
        done = asyncio.Event()

        async def listener(change):
            done.set()

        client.subscribe("tags", listener)
        try:
            client.handle_frame(_change_frame("realtime:tags-changes-1", "tags", "INSERT"))
            await asyncio.wait_for(done.wait(), timeout=5)
        finally:
            await client.close()

    asyncio.run(scenario())


class FakeRealtimeServer:
    """Local websocket server recording every frame the client sends."""

    def __init__(self):
        self.frames = asyncio.Queue()
        self.connections = []

    async def _handler(self, websocket):
        self.connections.append(websocket)
        async for raw in websocket:
            await self.frames.put(json.loads(raw))

    async def __aenter__(self):
        self._server = await websockets.serve(self._handler, "127.0.0.1", 0)
        port = self._server.sockets[0].getsockname()[1]
        self.url = f"http://127.0.0.1:{port}"
        return self

    async def __aexit__(self, *exc_info):
        self._server.close()
        await self._server.wait_closed()

    async def next_frame(self, event):
        while True:
            frame = await asyncio.wait_for(self.frames.get(), timeout=5)
            if frame["event"] == event:
                return frame


def test_connection_lifecycle_join_heartbeat_rejoin_and_leave():
    async def scenario():
        async with FakeRealtimeServer() as server:
            client = RealtimeClient(server.url, "key", heartbeat_interval=0.05, reconnect_delay=0.05)
            changes = asyncio.Queue()
            handle = client.subscribe("brands", changes.put_nowait)
            try:
                join = await server.next_frame("phx_join")
                assert join["topic"] == "realtime:brands-changes-1"
                assert join["payload"]["access_token"] == "key"
                assert join["payload"]["config"]["postgres_changes"] == [
                    {"event": "*", "schema": "public", "table": "brands"}
                ]

                heartbeat = await server.next_frame("heartbeat")
                assert heartbeat["topic"] == "phoenix"

                await server.connections[0].close()
                rejoin = await server.next_frame("phx_join")
                assert rejoin["topic"] == join["topic"]
                assert len(server.connections) == 2

                await server.connections[1].send(
                    _change_frame("realtime:brands-changes-1", "brands", "INSERT", new={"id": "b1"})
                )
                change = await asyncio.wait_for(changes.get(), timeout=5)
                assert change.new == {"id": "b1"}

                handle.cancel()
                leave = await server.next_frame("phx_leave")
                assert leave["topic"] == join["topic"]
                assert leave["join_ref"] == rejoin["join_ref"]
            finally:
                await client.close()

    asyncio.run(scenario())


def test_malformed_change_frames_do_not_stop_the_feed():
    async def scenario():
        async with FakeRealtimeServer() as server:
            client = RealtimeClient(server.url, "key", heartbeat_interval=30, reconnect_delay=0.05)
            changes = asyncio.Queue()
            client.subscribe("brands", changes.put_nowait)
            try:
                await server.next_frame("phx_join")
                connection = server.connections[0]
                topic = "realtime:brands-changes-1"
                for bad in (
                    {"topic": topic, "event": "postgres_changes", "payload": {"data": "oops"}},
                    {"topic": topic, "event": "postgres_changes", "payload": {"data": []}},
                    {"topic": topic, "event": "postgres_changes", "payload": "oops"},
                    {"topic": ["not", "a", "topic"], "event": "postgres_changes", "payload": {}},
                    {"topic": topic, "event": "postgres_changes", "payload": {"data": {"table": "brands"}}},
                    ["not", "an", "object"],
                ):
                    await connection.send(json.dumps(bad))
                await connection.send(_change_frame(topic, "brands", "UPDATE", new={"id": "b1"}))

                change = await asyncio.wait_for(changes.get(), timeout=5)
                assert change.event_type == "UPDATE"
                assert changes.empty()
                assert client.connected
                assert len(server.connections) == 1
            finally:
                await client.close()

    asyncio.run(scenario())


def test_handle_frame_drops_changes_without_event_type():
    async def scenario():
        client = RealtimeClient("http://127.0.0.1:9", "key", reconnect_delay=60)
        seen = []
        client.subscribe("brands", seen.append)
        try:
            client.handle_frame(json.dumps({
                "topic": "realtime:brands-changes-1",
                "event": "postgres_changes",
                "payload": {"data": {"table": "brands", "new": {"id": "b1"}}},
            }))
            client.handle_frame(json.dumps({
                "topic": "realtime:brands-changes-1",
                "event": "postgres_changes",
                "payload": {"data": {"eventType": "DELETE", "old": "not-a-row"}},
            }))
        finally:
            await client.close()
        return seen

    seen = asyncio.run(scenario())
    assert [(c.table, c.event_type, c.old) for c in seen] == [("brands", "DELETE", {})]
