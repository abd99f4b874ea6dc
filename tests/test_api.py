import pytest
from fastapi.testclient import TestClient

from backend.api.app import app
from backend.db.deps import get_directory
from backend.db.postgrest import PostgrestStore
from backend.directory.device_directory import DeviceDirectory


@pytest.fixture
def client(store, catalog):
    app.dependency_overrides[get_directory] = lambda: DeviceDirectory(store)
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_list_devices_includes_route_slugs(client):
    response = client.get("/devices/")

    assert response.status_code == 200
    slugs = sorted(device["route_slug"] for device in response.json())
    assert slugs == ["ice-age-x1", "ice-cube", "joule-samurai-plus", "joule-victorum"]


def test_get_device_by_slug(client, catalog):
    response = client.get("/devices/by-slug/joule-victorum")

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == catalog["models"][("Joule", "Victorum")]["id"]
    assert body["brand"]["name"] == "Joule"
    assert body["specs"] == {"kw": 8, "refrigerant": "R290"}


def test_unknown_slug_is_404(client):
    assert client.get("/devices/by-slug/abc").status_code == 404
    assert client.get("/devices/by-slug/joule-nothing").status_code == 404


def test_get_device_by_id(client, catalog):
    device_id = catalog["models"][("Ice", "Cube")]["id"]
    assert client.get(f"/devices/{device_id}").json()["route_slug"] == "ice-cube"
    assert client.get("/devices/missing").status_code == 404


def test_error_codes_sorted(client, catalog):
    device_id = catalog["models"][("Ice", "Cube")]["id"]
    codes = client.get(f"/devices/{device_id}/error-codes").json()
    assert [c["code"] for c in codes] == ["A1", "E02", "E10"]


def test_ensure_error_code_storage(client):
    response = client.post(
        "/devices/d1/error-code-storage",
        json={"brand_name": "Joule", "model_name": "Victorum"},
    )
    assert response.json() == {"configured": True}


def test_brands_and_models(client, catalog):
    assert [b["name"] for b in client.get("/brands/").json()] == ["Ice", "Ice Age", "Joule"]

    joule_id = catalog["brands"]["Joule"]["id"]
    models = client.get(f"/brands/{joule_id}/models").json()
    assert [m["name"] for m in models] == ["Samurai Plus", "Victorum"]


def test_device_stream_sends_snapshot_on_connect(client):
    with client.websocket_connect("/devices/stream") as websocket:
        message = websocket.receive_json()

    assert message["type"] == "devices"
    assert len(message["data"]) == 4


def test_list_devices_unconfigured_store_is_503():
    app.dependency_overrides[get_directory] = lambda: DeviceDirectory(PostgrestStore(None, None))
    try:
        with TestClient(app) as client:
            response = client.get("/devices/")
            brands = client.get("/brands/")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 503
    assert "not configured" in response.json()["detail"]
    assert brands.json() == []


def test_device_stream_relays_changes_and_releases_listeners(client, store, catalog):
    joule_id = catalog["brands"]["Joule"]["id"]

    with client.websocket_connect("/devices/stream") as websocket:
        assert len(websocket.receive_json()["data"]) == 4

        client.portal.call(store.insert, "models", {"brand_id": joule_id, "name": "Aurora"})
        message = websocket.receive_json()
        assert message["type"] == "devices"
        assert "joule-aurora" in {device["route_slug"] for device in message["data"]}

        client.portal.call(store.insert, "tags", {"name": "outdoor"})
        assert websocket.receive_json() == {"type": "metadata"}

    tables = ("brands", "models", "categories", "tags", "media", "urls")
    assert all(not store._listeners.get(table) for table in tables)
