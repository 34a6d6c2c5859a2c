"""Game lifecycle: create, join, leave, remove, modify and cancel.

Every transition that reads then writes a game goes through
``_run_transition``: load the game, check the rules against that snapshot,
then write it back conditionally on the version that was read. If another
writer got there first the write matches no row, the whole attempt is
rolled back and retried against fresh state. Membership changes, the
game's participant count and reminder rows all land in the same commit.

Rules:
- 2 <= min <= max <= 8 participants, organizer enrolled at creation
- join/leave/remove close one hour before start
- a full game is ``closed``; it reopens when a place frees up
- ``cancelled`` and ``past`` are terminal; a transition that finds a game
  whose time has gone commits ``past`` and fails with GameEnded

Transitions return the committed game detached from the session, so a
later rejected call on the same session (which rolls back and expires
everything still attached) leaves it readable. Games from the read
functions stay attached.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from playdates.collaborators import ProfileStore, VenueDirectory, VenueInfo
from playdates.config import get_settings
from playdates.db.enums import GameStatus, NoticeKind, SkillTier
from playdates.db.models import Game, GameParticipant
from playdates.errors import (
    AlreadyCancelled,
    AlreadyMember,
    CannotRemoveOrganizer,
    CapacityBelowOccupancy,
    CapacityExceeded,
    Forbidden,
    GameCancelled,
    GameEnded,
    GameError,
    GameFull,
    GameNotFound,
    InternalError,
    JoinWindowClosed,
    NotAMember,
    OrganizerCannotLeave,
    ProfileNotFound,
    SkillIneligible,
    StaleGameError,
    ValidationError,
    VenueNotFound,
    VenueUnavailable,
)
from playdates.games import ledger
from playdates.games.eligibility import is_eligible, parse_tier, validate_skill_band
from playdates.games.status import (
    MAX_PARTICIPANTS,
    MIN_PARTICIPANTS,
    is_past,
    join_window_open,
    open_status,
    project_status,
    validate_transition,
)
from playdates.reminders.queue import Notice, NoticeQueue, enqueue_notices
from playdates.reminders.scheduler import GameEvent, GameEventKind, handle_game_event

logger = structlog.get_logger()

MODIFIABLE_FIELDS = frozenset({
    "start_time",
    "venue_id",
    "min_participants",
    "max_participants",
    "skill_min",
    "skill_max",
})
_CLEARABLE_FIELDS = frozenset({"skill_min", "skill_max"})

Attempt = Callable[[Game], Awaitable[list[Notice]]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Validation helpers ──


def _field_error(errors: list[dict[str, Any]], field: str, message: str) -> None:
    errors.append({"field": field, "message": message})


def _check_start_time(errors: list[dict[str, Any]], start_time: datetime, now: datetime) -> None:
    if start_time.tzinfo is None:
        _field_error(errors, "start_time", "Start time must include a timezone")
    elif start_time <= now:
        _field_error(errors, "start_time", "Game time must be in the future")


def _check_capacity_bounds(errors: list[dict[str, Any]], min_participants: int, max_participants: int) -> None:
    if not MIN_PARTICIPANTS <= min_participants <= MAX_PARTICIPANTS:
        _field_error(
            errors, "min_participants",
            f"Minimum participants must be between {MIN_PARTICIPANTS} and {MAX_PARTICIPANTS}",
        )
    if not MIN_PARTICIPANTS <= max_participants <= MAX_PARTICIPANTS:
        _field_error(
            errors, "max_participants",
            f"Maximum participants must be between {MIN_PARTICIPANTS} and {MAX_PARTICIPANTS}",
        )
    if min_participants > max_participants:
        _field_error(errors, "max_participants", "Maximum participants must be greater than or equal to minimum")


def _check_skill_band(errors: list[dict[str, Any]], skill_min: SkillTier | None, skill_max: SkillTier | None) -> None:
    try:
        validate_skill_band(skill_min, skill_max)
    except ValidationError as e:
        errors.extend(e.errors)


async def _require_venue(venues: VenueDirectory, venue_id: str) -> VenueInfo:
    venue = await venues.get_venue(venue_id)
    if venue is None:
        raise VenueNotFound
    if not venue.is_available:
        raise VenueUnavailable
    return venue


def _can_manage(game: Game, acting_user_id: str, is_admin: bool) -> bool:
    return acting_user_id == game.organizer_id or is_admin


def effective_status(game: Game, now: datetime | None = None) -> GameStatus:
    """The game's status as observed now (the stored one, or ``past`` once its time has gone)."""
    return project_status(game.status, game.start_time, now or _utcnow(), get_settings().past_grace_minutes)


# ── Store access ──


async def _load_game(db: AsyncSession, game_id: str) -> Game:
    result = await db.execute(
        select(Game).where(Game.id == game_id).execution_options(populate_existing=True)
    )
    game = result.scalar_one_or_none()
    if game is None:
        raise GameNotFound
    return game


async def _write_game(db: AsyncSession, game: Game, now: datetime, **values: Any) -> None:
    """Write ``values`` only if the game is still at the version that was read."""
    if "status" in values:
        validate_transition(game.status, values["status"])
        values["status"] = GameStatus(values["status"]).value
    result = await db.execute(
        update(Game)
        .where(Game.id == game.id, Game.version == game.version)
        .values(version=game.version + 1, updated_at=max(now, game.updated_at), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise StaleGameError(game.id, game.version)


async def _ensure_not_ended(db: AsyncSession, game: Game, now: datetime) -> None:
    """Raise for terminal games, committing ``past`` if this is the first to notice."""
    status = GameStatus(game.status)
    if status is GameStatus.CANCELLED:
        raise GameCancelled
    if status is GameStatus.PAST:
        raise GameEnded
    if is_past(game.start_time, now, get_settings().past_grace_minutes):
        await _write_game(db, game, now, status=GameStatus.PAST)
        await db.commit()
        logger.info("game_marked_past", game_id=game.id, start_time=game.start_time.isoformat())
        raise GameEnded


def _ensure_join_window(game: Game, now: datetime) -> None:
    if not join_window_open(game.start_time, now, get_settings().join_cutoff_minutes):
        raise JoinWindowClosed


async def _run_transition(db: AsyncSession, game_id: str, attempt: Attempt, action: str) -> tuple[Game, list[Notice]]:
    """Run ``attempt`` with optimistic retries and commit it."""
    max_attempts = get_settings().transition_max_attempts
    for attempt_no in range(1, max_attempts + 1):
        try:
            game = await _load_game(db, game_id)
            notices = await attempt(game)
            await db.commit()
        except StaleGameError:
            await db.rollback()
            logger.warning("game_write_conflict", game_id=game_id, action=action, attempt=attempt_no)
            continue
        except GameError:
            await db.rollback()
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("game_store_error", game_id=game_id, action=action, exc_info=e)
            raise InternalError("Game store unavailable") from e
        game = await _load_game(db, game_id)
        db.expunge(game)
        return game, notices

    logger.error("game_write_retries_exhausted", game_id=game_id, action=action, attempts=max_attempts)
    raise InternalError("Game was changed concurrently, please try again")


# ── Transitions ──


async def create_game(
    db: AsyncSession,
    organizer_id: str,
    start_time: datetime,
    venue_id: str,
    *,
    venues: VenueDirectory,
    profiles: ProfileStore,
    min_participants: int | None = None,
    max_participants: int | None = None,
    skill_min: SkillTier | None = None,
    skill_max: SkillTier | None = None,
    queue: NoticeQueue | None = None,
    now: datetime | None = None,
) -> Game:
    """Create a game and enroll the organizer as its first participant."""
    settings = get_settings()
    now = now or _utcnow()
    if min_participants is None:
        min_participants = settings.default_min_participants
    if max_participants is None:
        max_participants = settings.default_max_participants

    errors: list[dict[str, Any]] = []
    _check_start_time(errors, start_time, now)
    _check_capacity_bounds(errors, min_participants, max_participants)
    _check_skill_band(errors, skill_min, skill_max)
    if errors:
        raise ValidationError(errors[0]["message"], errors=errors)

    venue = await _require_venue(venues, venue_id)
    organizer = await profiles.get_profile(organizer_id)
    if organizer is None:
        raise ProfileNotFound

    try:
        game = Game(
            organizer_id=organizer_id,
            start_time=start_time,
            venue_id=venue.venue_id,
            venue_name=venue.name,
            venue_address=venue.address,
            min_participants=min_participants,
            max_participants=max_participants,
            current_participants=1,
            status=GameStatus.SCHEDULED.value,
            skill_min=skill_min.value if skill_min else None,
            skill_max=skill_max.value if skill_max else None,
            version=1,
            created_at=now,
            updated_at=now,
        )
        db.add(game)
        await db.flush()

        await ledger.add_participant(
            db, game.id, max_participants, organizer_id, organizer.display_name, now, organizer.skill_rating,
        )
        notices = await handle_game_event(
            db, GameEvent(GameEventKind.CREATED, game.id, start_time), now, settings.reminder_grace_minutes,
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("game_store_error", action="create", exc_info=e)
        raise InternalError("Game store unavailable") from e

    logger.info(
        "game_created",
        game_id=game.id,
        organizer_id=organizer_id,
        venue_id=venue.venue_id,
        start_time=start_time.isoformat(),
    )
    db.expunge(game)
    await enqueue_notices(queue, notices)
    return game


async def join_game(
    db: AsyncSession,
    game_id: str,
    user_id: str,
    *,
    profiles: ProfileStore,
    queue: NoticeQueue | None = None,
    now: datetime | None = None,
) -> Game:
    """Enroll a user; the game closes when the last place is taken."""
    now = now or _utcnow()

    async def attempt(game: Game) -> list[Notice]:
        await _ensure_not_ended(db, game, now)
        _ensure_join_window(game, now)
        if game.current_participants >= game.max_participants:
            raise GameFull
        if await ledger.get_participant(db, game.id, user_id) is not None:
            raise AlreadyMember

        profile = await profiles.get_profile(user_id)
        if profile is None:
            raise ProfileNotFound
        if not is_eligible(profile.skill_rating, parse_tier(game.skill_min), parse_tier(game.skill_max)):
            raise SkillIneligible

        new_count = game.current_participants + 1
        new_status = open_status(new_count, game.max_participants)
        await _write_game(db, game, now, current_participants=new_count, status=new_status)
        try:
            await ledger.add_participant(
                db, game.id, game.max_participants, user_id, profile.display_name, now, profile.skill_rating,
            )
        except CapacityExceeded as e:
            # The count we read no longer matches the ledger
            raise StaleGameError(game.id, game.version) from e

        if new_status is GameStatus.CLOSED:
            return [Notice(game.id, NoticeKind.GAME_FULL)]
        return []

    game, notices = await _run_transition(db, game_id, attempt, "join")
    logger.info(
        "participant_joined",
        game_id=game_id,
        user_id=user_id,
        current_participants=game.current_participants,
        status=game.status,
    )
    await enqueue_notices(queue, notices)
    return game


async def leave_game(
    db: AsyncSession,
    game_id: str,
    user_id: str,
    *,
    now: datetime | None = None,
) -> Game:
    """Drop a participant at their own request. The organizer must cancel instead."""
    now = now or _utcnow()

    async def attempt(game: Game) -> list[Notice]:
        if user_id == game.organizer_id:
            raise OrganizerCannotLeave
        await _ensure_not_ended(db, game, now)
        _ensure_join_window(game, now)
        await _drop_participant(db, game, user_id, now)
        return []

    game, _ = await _run_transition(db, game_id, attempt, "leave")
    logger.info(
        "participant_left",
        game_id=game_id,
        user_id=user_id,
        current_participants=game.current_participants,
        status=game.status,
    )
    return game


async def remove_participant(
    db: AsyncSession,
    game_id: str,
    acting_user_id: str,
    target_user_id: str,
    *,
    is_admin: bool = False,
    queue: NoticeQueue | None = None,
    now: datetime | None = None,
) -> Game:
    """Remove another participant. Organizer or admin only."""
    now = now or _utcnow()

    async def attempt(game: Game) -> list[Notice]:
        if not _can_manage(game, acting_user_id, is_admin):
            raise Forbidden("Only the organizer or an admin can remove participants")
        await _ensure_not_ended(db, game, now)
        if target_user_id == game.organizer_id:
            raise CannotRemoveOrganizer
        _ensure_join_window(game, now)
        await _drop_participant(db, game, target_user_id, now)
        return [Notice(game.id, NoticeKind.PARTICIPANT_REMOVED, recipient_id=target_user_id)]

    game, notices = await _run_transition(db, game_id, attempt, "remove")
    logger.info(
        "participant_removed",
        game_id=game_id,
        user_id=target_user_id,
        removed_by=acting_user_id,
        current_participants=game.current_participants,
        status=game.status,
    )
    await enqueue_notices(queue, notices)
    return game


async def _drop_participant(db: AsyncSession, game: Game, user_id: str, now: datetime) -> None:
    if await ledger.get_participant(db, game.id, user_id) is None:
        raise NotAMember
    new_count = game.current_participants - 1
    await _write_game(
        db, game, now,
        current_participants=new_count,
        status=open_status(new_count, game.max_participants),
    )
    live_count = await ledger.remove_participant(db, game.id, user_id)
    if live_count != new_count:
        raise StaleGameError(game.id, game.version)


async def modify_game(
    db: AsyncSession,
    game_id: str,
    acting_user_id: str,
    changes: Mapping[str, Any],
    *,
    venues: VenueDirectory,
    queue: NoticeQueue | None = None,
    now: datetime | None = None,
) -> Game:
    """Apply a partial update. Organizer only.

    ``changes`` holds only the fields the caller sent; ``None`` clears a
    skill bound. A new start time re-derives both reminders.
    """
    settings = get_settings()
    now = now or _utcnow()

    unknown = set(changes) - MODIFIABLE_FIELDS
    if unknown:
        raise ValidationError(
            f"Fields cannot be modified: {', '.join(sorted(unknown))}",
            errors=[{"field": f, "message": "Field cannot be modified"} for f in sorted(unknown)],
        )
    errors: list[dict[str, Any]] = []
    for field in sorted(set(changes) - _CLEARABLE_FIELDS):
        if changes[field] is None:
            _field_error(errors, field, "Field cannot be cleared")
    if errors:
        raise ValidationError(errors[0]["message"], errors=errors)

    rescheduled = False

    async def attempt(game: Game) -> list[Notice]:
        nonlocal rescheduled
        if acting_user_id != game.organizer_id:
            raise Forbidden("Only the organizer can modify this game")
        await _ensure_not_ended(db, game, now)
        venue: VenueInfo | None = None
        if "venue_id" in changes:
            venue = await _require_venue(venues, changes["venue_id"])

        start_time = changes.get("start_time", game.start_time)
        min_participants = changes.get("min_participants", game.min_participants)
        max_participants = changes.get("max_participants", game.max_participants)
        skill_min = changes["skill_min"] if "skill_min" in changes else parse_tier(game.skill_min)
        skill_max = changes["skill_max"] if "skill_max" in changes else parse_tier(game.skill_max)

        field_errors: list[dict[str, Any]] = []
        if "start_time" in changes:
            _check_start_time(field_errors, start_time, now)
        _check_capacity_bounds(field_errors, min_participants, max_participants)
        _check_skill_band(field_errors, skill_min, skill_max)
        if field_errors:
            raise ValidationError(field_errors[0]["message"], errors=field_errors)
        if max_participants < game.current_participants:
            raise CapacityBelowOccupancy

        values: dict[str, Any] = {
            "start_time": start_time,
            "min_participants": min_participants,
            "max_participants": max_participants,
            "skill_min": skill_min.value if skill_min else None,
            "skill_max": skill_max.value if skill_max else None,
            "status": open_status(game.current_participants, max_participants),
        }
        if venue is not None:
            values.update(venue_id=venue.venue_id, venue_name=venue.name, venue_address=venue.address)

        rescheduled = start_time != game.start_time
        await _write_game(db, game, now, **values)
        if rescheduled:
            return await handle_game_event(
                db, GameEvent(GameEventKind.RESCHEDULED, game.id, start_time), now, settings.reminder_grace_minutes,
            )
        return []

    game, notices = await _run_transition(db, game_id, attempt, "modify")
    logger.info(
        "game_modified",
        game_id=game_id,
        acting_user_id=acting_user_id,
        fields=sorted(changes),
        rescheduled=rescheduled,
    )
    await enqueue_notices(queue, notices)
    return game


async def cancel_game(
    db: AsyncSession,
    game_id: str,
    acting_user_id: str,
    *,
    is_admin: bool = False,
    queue: NoticeQueue | None = None,
    now: datetime | None = None,
) -> Game:
    """Cancel a game, tear down its reminders and notify its participants."""
    settings = get_settings()
    now = now or _utcnow()

    async def attempt(game: Game) -> list[Notice]:
        if not _can_manage(game, acting_user_id, is_admin):
            raise Forbidden("Only the organizer or an admin can cancel this game")
        if game.status == GameStatus.CANCELLED.value:
            raise AlreadyCancelled
        await _ensure_not_ended(db, game, now)

        await _write_game(db, game, now, status=GameStatus.CANCELLED)
        return await handle_game_event(
            db, GameEvent(GameEventKind.CANCELLED, game.id), now, settings.reminder_grace_minutes,
        )

    game, notices = await _run_transition(db, game_id, attempt, "cancel")
    logger.info("game_cancelled", game_id=game_id, acting_user_id=acting_user_id, is_admin=is_admin)
    await enqueue_notices(queue, notices)
    return game


# ── Reads ──


async def get_game(db: AsyncSession, game_id: str) -> Game:
    """Get a game by ID, refreshed from the store. Raises GameNotFound."""
    return await _load_game(db, game_id)


def ensure_can_manage(game: Game, acting_user_id: str, is_admin: bool = False) -> None:
    """Raise Forbidden unless the user organizes the game or is an admin."""
    if not _can_manage(game, acting_user_id, is_admin):
        raise Forbidden


async def list_available_games(
    db: AsyncSession,
    venue_id: str | None = None,
    now: datetime | None = None,
) -> list[Game]:
    """Open games with a free place that have not started, soonest first."""
    now = now or _utcnow()
    query = (
        select(Game)
        .where(
            Game.status == GameStatus.SCHEDULED.value,
            Game.start_time > now,
            Game.current_participants < Game.max_participants,
        )
        .order_by(Game.start_time.asc())
        .execution_options(populate_existing=True)
    )
    if venue_id is not None:
        query = query.where(Game.venue_id == venue_id)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_user_schedule(
    db: AsyncSession,
    user_id: str,
    range_: str = "upcoming",
    now: datetime | None = None,
) -> list[Game]:
    """Games the user is enrolled in.

    ``upcoming``: start time after now, soonest first.
    ``past``: start time at or before now, most recent first.
    """
    now = now or _utcnow()
    query = (
        select(Game)
        .join(GameParticipant, GameParticipant.game_id == Game.id)
        .where(GameParticipant.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    if range_ == "upcoming":
        query = query.where(Game.start_time > now).order_by(Game.start_time.asc())
    elif range_ == "past":
        query = query.where(Game.start_time <= now).order_by(Game.start_time.desc())
    else:
        raise ValidationError.for_field("range", "Range must be 'upcoming' or 'past'")
    result = await db.execute(query)
    return list(result.scalars().all())
