"""Reminder arq worker: fires due reminders and delivers game notices.

Import path for arq CLI: arq playdates.reminders.worker.WorkerSettings

- ``fire_due_reminders`` runs every minute, claims due reminder rows and
  dispatches them in-process.
- ``deliver_game_notice`` handles notices enqueued by the API
  (grace-window reminders, cancellations, full games, removals).
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

import redis.asyncio as aioredis
from arq import cron
from arq.connections import RedisSettings

from playdates.config import get_settings
from playdates.database import close_db, get_session_factory, init_db
from playdates.email.service import EmailService
from playdates.reminders.dispatcher import dispatch_notice
from playdates.reminders.queue import InlineNoticeQueue, Notice
from playdates.reminders.scheduler import fire_due

logger = logging.getLogger(__name__)


async def startup(ctx: dict[str, Any]) -> None:
    """Initialize DB, Redis and the email channel on worker startup."""
    settings = get_settings()
    await init_db(settings.database_url)

    redis_client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=10,
    )
    channel = EmailService(redis=redis_client)
    ctx["redis"] = redis_client
    ctx["channel"] = channel
    ctx["queue"] = InlineNoticeQueue(get_session_factory(), channel)
    logger.info("Reminder worker started")


async def shutdown(ctx: dict[str, Any]) -> None:
    """Clean up on worker shutdown."""
    redis_client: aioredis.Redis | None = ctx.get("redis")
    if redis_client:
        await redis_client.aclose()
    await close_db()
    logger.info("Reminder worker shut down")


async def fire_due_reminders(ctx: dict[str, Any]) -> int:
    """Cron task: claim reminders whose time has come and dispatch them."""
    settings = get_settings()
    async with get_session_factory()() as db:
        fired = await fire_due(
            db,
            ctx["queue"],
            now=datetime.now(timezone.utc),
            grace_minutes=settings.reminder_grace_minutes,
            limit=settings.reminder_sweep_batch_size,
        )
    if fired:
        logger.info("Fired %d reminder(s)", fired)
    return fired


async def deliver_game_notice(ctx: dict[str, Any], payload: dict[str, Any]) -> dict[str, Any]:
    """Job: deliver one notice enqueued by the API."""
    notice = Notice.from_payload(payload)
    async with get_session_factory()() as db:
        report = await dispatch_notice(db, notice, ctx["channel"])
    return asdict(report)


class WorkerSettings:
    """arq worker settings for reminders and notices."""

    functions = [deliver_game_notice]
    cron_jobs = [
        cron(fire_due_reminders, second=0, run_at_startup=True),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().arq_redis_url)
    max_jobs = 10
    job_timeout = 120
    allow_abort_jobs = True
