import asyncio

import pytest

from backend.db.local import LocalStore

CATALOG = {
    "Joule": ["Victorum", "Samurai Plus"],
    "Ice": ["Cube"],
    "Ice Age": ["X1"],
}
ERROR_CODES = [
    {"code": "E10", "meaning": "High pressure"},
    {"code": "A1", "meaning": "Sensor fault"},
    {"code": "E02", "meaning": "Low flow"},
]


async def _seed(store: LocalStore) -> dict:
    rows = {"brands": {}, "models": {}}
    for brand_name, model_names in CATALOG.items():
        brand = await store.insert("brands", {"name": brand_name})
        rows["brands"][brand_name] = brand
        for model_name in model_names:
            model = await store.insert(
                "models",
                {"brand_id": brand["id"], "name": model_name, "specs": {"kw": 8, "refrigerant": "R290"}},
            )
            rows["models"][(brand_name, model_name)] = model
    for code in ERROR_CODES:
        await store.insert("error_codes_db", code)
    return rows


@pytest.fixture
def store():
    store = LocalStore()
    yield store
    asyncio.run(store.close())


@pytest.fixture
def catalog(store):
    """Seed the store; returns the inserted brand and model rows keyed by name."""
    return asyncio.run(_seed(store))
