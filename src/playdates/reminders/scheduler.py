"""Reminder scheduler.

Each game has at most two pending reminders, keyed by ``(game_id, kind)``:
T-24h and T-1h before start. They are stored as rows in
``scheduled_reminders`` and written in the same transaction as the game
write that caused them, so the game's conditional write serialises every
registration and teardown for a key.

For each reminder, relative to ``now`` and the grace window (10 min):
    fire_at more than grace in the future   -> scheduled row
    fire_at within grace either side        -> dispatched immediately
    fire_at more than grace in the past     -> skipped
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from playdates.db.enums import REMINDER_NOTICES, NoticeKind, ReminderKind
from playdates.db.models import ScheduledReminder
from playdates.reminders.queue import Notice, NoticeQueue, enqueue_notices

logger = logging.getLogger(__name__)

REMINDER_OFFSETS: dict[ReminderKind, timedelta] = {
    ReminderKind.T_24H: timedelta(hours=24),
    ReminderKind.T_1H: timedelta(hours=1),
}

DEFAULT_GRACE_MINUTES = 10


class PlanAction(str, Enum):
    SCHEDULED = "scheduled"
    IMMEDIATE = "immediate"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ReminderPlan:
    kind: ReminderKind
    fire_at: datetime
    action: PlanAction


class GameEventKind(str, Enum):
    CREATED = "created"
    RESCHEDULED = "rescheduled"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class GameEvent:
    """Emitted by the lifecycle on create, reschedule and cancel."""

    kind: GameEventKind
    game_id: str
    start_time: datetime | None = None


def plan_reminders(
    start_time: datetime,
    now: datetime,
    grace_minutes: int = DEFAULT_GRACE_MINUTES,
) -> list[ReminderPlan]:
    """Decide, for both reminder kinds, whether to schedule, fire now or skip."""
    grace = timedelta(minutes=grace_minutes)
    plans: list[ReminderPlan] = []
    for kind, offset in REMINDER_OFFSETS.items():
        fire_at = start_time - offset
        until_fire = fire_at - now
        if until_fire > grace:
            action = PlanAction.SCHEDULED
        elif until_fire >= -grace:
            action = PlanAction.IMMEDIATE
        else:
            action = PlanAction.SKIPPED
        plans.append(ReminderPlan(kind=kind, fire_at=fire_at, action=action))
    return plans


async def list_reminders(db: AsyncSession, game_id: str) -> list[ScheduledReminder]:
    """Live reminders for a game, soonest first."""
    result = await db.execute(
        select(ScheduledReminder)
        .where(ScheduledReminder.game_id == game_id)
        .order_by(ScheduledReminder.fire_at.asc())
    )
    return list(result.scalars().all())


async def cancel_all(db: AsyncSession, game_id: str) -> int:
    """Tear down both reminders of a game. Idempotent. Returns rows removed."""
    result = await db.execute(
        delete(ScheduledReminder)
        .where(ScheduledReminder.game_id == game_id)
    )
    return result.rowcount


async def schedule(
    db: AsyncSession,
    game_id: str,
    start_time: datetime,
    now: datetime | None = None,
    grace_minutes: int = DEFAULT_GRACE_MINUTES,
) -> list[ReminderKind]:
    """Register reminders for ``start_time``, replacing any existing ones.

    Returns the kinds that fall inside the grace window and must be
    dispatched right away. Does not commit.
    """
    now = now or datetime.now(timezone.utc)
    await cancel_all(db, game_id)

    plans = plan_reminders(start_time, now, grace_minutes)
    immediate: list[ReminderKind] = []
    for plan in plans:
        if plan.action is PlanAction.SCHEDULED:
            db.add(ScheduledReminder(
                game_id=game_id,
                kind=plan.kind.value,
                fire_at=plan.fire_at,
                start_time=start_time,
                created_at=now,
            ))
        elif plan.action is PlanAction.IMMEDIATE:
            immediate.append(plan.kind)
        else:
            logger.debug("Skipping %s reminder for game %s (fire time long gone)", plan.kind.value, game_id)
    await db.flush()

    logger.info(
        "Reminders for game %s: %s",
        game_id,
        ", ".join(f"{p.kind.value}={p.action.value}" for p in plans),
    )
    return immediate


async def reschedule(
    db: AsyncSession,
    game_id: str,
    new_start_time: datetime,
    now: datetime | None = None,
    grace_minutes: int = DEFAULT_GRACE_MINUTES,
) -> list[ReminderKind]:
    """Tear down both reminders and schedule again for the new start time."""
    return await schedule(db, game_id, new_start_time, now, grace_minutes)


async def handle_game_event(
    db: AsyncSession,
    event: GameEvent,
    now: datetime | None = None,
    grace_minutes: int = DEFAULT_GRACE_MINUTES,
) -> list[Notice]:
    """Apply a lifecycle event to the reminder rows.

    Returns the notices to dispatch once the surrounding transaction commits.
    """
    if event.kind is GameEventKind.CANCELLED:
        removed = await cancel_all(db, event.game_id)
        logger.info("Cancelled %d reminder(s) for game %s", removed, event.game_id)
        return [Notice(event.game_id, NoticeKind.GAME_CANCELLED)]

    if event.start_time is None:
        msg = f"{event.kind.value} event for game {event.game_id} has no start time"
        raise ValueError(msg)

    if event.kind is GameEventKind.CREATED:
        kinds = await schedule(db, event.game_id, event.start_time, now, grace_minutes)
    else:
        kinds = await reschedule(db, event.game_id, event.start_time, now, grace_minutes)
    return [Notice(event.game_id, REMINDER_NOTICES[kind]) for kind in kinds]


async def claim_due(
    db: AsyncSession,
    now: datetime,
    grace_minutes: int = DEFAULT_GRACE_MINUTES,
    limit: int = 100,
) -> list[Notice]:
    """Claim reminders whose fire time has come, at most once each.

    A row is claimed by deleting it conditionally on its fire time, so a
    concurrent reschedule or a second sweeper makes the claim a no-op.
    Rows more than the grace window late are dropped without dispatch.
    Commits the claims.
    """
    result = await db.execute(
        select(ScheduledReminder)
        .where(ScheduledReminder.fire_at <= now)
        .order_by(ScheduledReminder.fire_at.asc())
        .limit(limit)
    )
    due = list(result.scalars().all())
    late_cutoff = now - timedelta(minutes=grace_minutes)

    notices: list[Notice] = []
    for row in due:
        game_id, kind, fire_at = row.game_id, ReminderKind(row.kind), row.fire_at
        claimed = await db.execute(
            delete(ScheduledReminder)
            .where(
                ScheduledReminder.game_id == game_id,
                ScheduledReminder.kind == kind.value,
                ScheduledReminder.fire_at == fire_at,
            )
        )
        if claimed.rowcount != 1:
            continue
        if fire_at < late_cutoff:
            logger.warning("Dropping %s reminder for game %s: %s late", kind.value, game_id, now - fire_at)
            continue
        notices.append(Notice(game_id, REMINDER_NOTICES[kind]))

    await db.commit()
    return notices


async def fire_due(
    db: AsyncSession,
    queue: NoticeQueue,
    now: datetime | None = None,
    grace_minutes: int = DEFAULT_GRACE_MINUTES,
    limit: int = 100,
) -> int:
    """Claim due reminders and hand them to the queue. Returns how many were handed over."""
    now = now or datetime.now(timezone.utc)
    notices = await claim_due(db, now, grace_minutes, limit)
    return await enqueue_notices(queue, notices)
