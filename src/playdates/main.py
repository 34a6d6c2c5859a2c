"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from fastapi import FastAPI

from playdates.config import Settings, get_settings
from playdates.database import close_db, get_session_factory, init_db
from playdates.email.service import EmailService
from playdates.games.router import router as games_router
from playdates.health.router import router as health_router
from playdates.middleware import setup_middleware
from playdates.redis_client import close_redis, get_redis, init_redis
from playdates.reminders.queue import ArqNoticeQueue, InlineNoticeQueue, NoticeQueue

logger = structlog.get_logger()


async def _build_notice_queue(settings: Settings) -> tuple[NoticeQueue, ArqRedis | None]:
    """Notice queue for the configured delivery mode, plus the arq pool to close (if any)."""
    mode = settings.notice_delivery.lower()
    if mode == "arq":
        pool = await create_pool(RedisSettings.from_dsn(settings.arq_redis_url))
        return ArqNoticeQueue(pool), pool
    if mode == "inline":
        return InlineNoticeQueue(get_session_factory(), EmailService(redis=get_redis())), None
    msg = f"Unsupported notice delivery mode: {mode}"
    raise ValueError(msg)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    queue, arq_pool = await _build_notice_queue(settings)
    app.state.notice_queue = queue
    logger.info("app_started", environment=settings.environment, notice_delivery=settings.notice_delivery)

    yield

    if arq_pool is not None:
        await arq_pool.aclose()
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Pickle Play Dates API",
        description="Game lifecycle, membership and reminders for pickleball meetups",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(games_router)

    return app


app = create_app()
