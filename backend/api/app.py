"""FastAPI application entrypoint."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.api.routes import brands
from backend.api.routes import devices
from backend.api.routes import stream
from backend.db.deps import close_store


@asynccontextmanager
async def lifespan(_: FastAPI):
    yield
    await close_store()


app = FastAPI(title="Heat Pump Device Directory API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(devices.router, prefix="/devices", tags=["devices"])
app.include_router(brands.router, prefix="/brands", tags=["brands"])
app.include_router(stream.router, tags=["stream"])


@app.get("/health", tags=["health"])
def healthcheck() -> dict[str, str]:
    """Simple health endpoint for uptime probes."""
    return {"status": "ok"}
