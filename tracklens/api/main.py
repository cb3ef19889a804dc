"""
FastAPI application entry-point.

  uvicorn tracklens.api.main:app --reload
"""
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tracklens.api.routers import exports, queries
from tracklens.core.config import get_settings
from tracklens.core.logging import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    settings = get_settings()
    logger.info("TrackLens API up | backend=%s | log_level=%s", settings.query_backend, settings.log_level)
    yield
    logger.info("TrackLens API shutting down")


app = FastAPI(
    title="TrackLens",
    version="0.1.0",
    description="Analytics over tracked tasks, custom fields, counters and timers",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(queries.router, prefix="/queries", tags=["Queries"])
app.include_router(exports.router, prefix="/exports", tags=["Exports"])


@app.get("/health")
def health():
    return {"status": "ok", "backend": get_settings().query_backend}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("tracklens.api.main:app", host="0.0.0.0", port=get_settings().api_port)
