"""
TubeStream API - FastAPI application entry point.

Resolves YouTube videos into deciphered, ranked format catalogs and relays
the selected stream with ranged resume or live HLS polling.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .core.player_cache import get_player_store
from .routes.api import router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if get_settings().debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown events."""
    logger.info("TubeStream API starting up...")

    settings = get_settings()
    logger.info(f"Debug mode: {settings.debug}")
    logger.info(
        f"Transfers: window={settings.dl_chunk_size} bytes, retries={settings.max_retries}, "
        f"probe={settings.probe_content_length}"
    )

    yield

    logger.info(f"TubeStream API shutting down ({len(get_player_store())} cached players)...")


app = FastAPI(
    title="TubeStream API",
    description=(
        "Resolves YouTube videos into playable formats: deciphers signatures with the "
        "site's own player code, selects a format by quality tier and content filter, "
        "and streams it with range resume or live HLS polling."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# CORS: use CORS_ORIGINS env (comma-separated) for explicit origins; empty = "*" without credentials (safe default)
_origins = [o.strip() for o in get_settings().cors_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins if _origins else ["*"],
    allow_credentials=bool(_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router, prefix="/api")


@app.get("/", tags=["root"])
async def root():
    return {
        "name": "TubeStream API",
        "version": "1.0.0",
        "docs": "/docs",
        "endpoints": {
            "info": "/api/info/{video}",
            "choose": "/api/choose/{video}",
            "stream": "/api/stream/{video}",
            "health": "/api/health",
        },
    }


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "tubestream.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
