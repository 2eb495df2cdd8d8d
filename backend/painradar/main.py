from __future__ import annotations

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from painradar.core.config import settings
from painradar.modules.ideas.router import router as ideas_router
from painradar.modules.notifications.router import router as notifications_router
from painradar.modules.queue.router import router as queue_router
from painradar.modules.queue.store import get_store

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("Starting Pain Radar API", queue_backend=settings.queue_backend)
    yield
    await get_store().close()
    logger.info("Shutting down Pain Radar API")


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/api/docs",
    openapi_url="/api/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(queue_router, prefix=settings.api_prefix)
app.include_router(ideas_router, prefix=settings.api_prefix)
app.include_router(notifications_router, prefix=settings.api_prefix)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
