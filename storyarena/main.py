"""
StoryArena battle service.

Wires the routers together and renders every classified failure through
one exception handler.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib.metadata import version as pkg_version

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storyarena.api import (
    ai_battles_router,
    cards_router,
    friends_router,
    health_router,
    matches_router,
    matchmaking_router,
    stats_router,
)
from storyarena.config import settings
from storyarena.db.database import init_db
from storyarena.models.failure import KnownError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    await init_db()
    yield


app = FastAPI(
    title=settings.app_name,
    version=pkg_version("storyarena"),
    lifespan=lifespan,
)


@app.exception_handler(KnownError)
async def known_error_handler(request: Request, exc: KnownError) -> JSONResponse:
    """Render every classified failure in the response envelope."""
    logger.info(
        "%s %s failed: %s",
        request.method,
        request.url.path,
        exc.kind.value,
        extra={"failure_kind": exc.kind.value, "detail": exc.detail},
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(mode="json"),
    )


app.include_router(ai_battles_router)
app.include_router(cards_router)
app.include_router(friends_router)
app.include_router(health_router)
app.include_router(matches_router)
app.include_router(matchmaking_router)
app.include_router(stats_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
