"""Games API: 10 endpoints.

Lifecycle transitions (6), game reads (3), user schedule (1).
Errors raised by the lifecycle are rendered by the GameError handler.
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from playdates.auth.dependencies import Identity, get_identity
from playdates.collaborators import ProfileStore, VenueDirectory
from playdates.database import get_session
from playdates.db.models import Game
from playdates.dependencies import get_notice_queue, get_profile_store, get_venue_directory
from playdates.games import lifecycle
from playdates.games.ledger import list_participants
from playdates.games.schemas import (
    CreateGameRequest,
    GameListResponse,
    GameResponse,
    ParticipantResponse,
    ReminderListResponse,
    ReminderResponse,
    ScheduleRange,
    UpdateGameRequest,
)
from playdates.reminders.queue import NoticeQueue
from playdates.reminders.scheduler import list_reminders

router = APIRouter(prefix="/api/v1", tags=["Games"])


# ── Helper ──


async def _build_game_response(
    db: AsyncSession,
    game: Game,
    include_participants: bool = False,
) -> GameResponse:
    """Build a GameResponse from the ORM model, with the status projected to now."""
    participants = None
    if include_participants:
        participants = [
            ParticipantResponse(
                user_id=p.user_id,
                display_name=p.display_name,
                skill_rating=p.skill_rating,
                joined_at=p.joined_at,
            )
            for p in await list_participants(db, game.id)
        ]

    return GameResponse(
        id=game.id,
        organizer_id=game.organizer_id,
        start_time=game.start_time,
        venue_id=game.venue_id,
        venue_name=game.venue_name,
        venue_address=game.venue_address,
        min_participants=game.min_participants,
        max_participants=game.max_participants,
        current_participants=game.current_participants,
        status=lifecycle.effective_status(game),
        skill_min=game.skill_min,
        skill_max=game.skill_max,
        created_at=game.created_at,
        updated_at=game.updated_at,
        participants=participants,
    )


# ── Game Endpoints ──


@router.post("/games", response_model=GameResponse, status_code=201)
async def create_game_endpoint(
    body: CreateGameRequest,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_session),
    venues: VenueDirectory = Depends(get_venue_directory),
    profiles: ProfileStore = Depends(get_profile_store),
    queue: NoticeQueue | None = Depends(get_notice_queue),
):
    """Create a game. The caller becomes organizer and first participant."""
    game = await lifecycle.create_game(
        db,
        identity.user_id,
        body.start_time,
        body.venue_id,
        venues=venues,
        profiles=profiles,
        min_participants=body.min_participants,
        max_participants=body.max_participants,
        skill_min=body.skill_min,
        skill_max=body.skill_max,
        queue=queue,
    )
    return await _build_game_response(db, game, include_participants=True)


@router.get("/games", response_model=GameListResponse)
async def list_games_endpoint(
    venue_id: str | None = Query(None),
    _identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_session),
):
    """List games that can still be joined, soonest first."""
    games = await lifecycle.list_available_games(db, venue_id=venue_id)
    items = [await _build_game_response(db, g) for g in games]
    return GameListResponse(games=items, total=len(items))


@router.get("/games/{game_id}", response_model=GameResponse)
async def get_game_endpoint(
    game_id: str,
    _identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_session),
):
    """Game detail with its participants."""
    game = await lifecycle.get_game(db, game_id)
    return await _build_game_response(db, game, include_participants=True)


@router.patch("/games/{game_id}", response_model=GameResponse)
async def update_game_endpoint(
    game_id: str,
    body: UpdateGameRequest,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_session),
    venues: VenueDirectory = Depends(get_venue_directory),
    queue: NoticeQueue | None = Depends(get_notice_queue),
):
    """Modify a game (organizer only)."""
    game = await lifecycle.modify_game(
        db, game_id, identity.user_id, body.changes(), venues=venues, queue=queue,
    )
    return await _build_game_response(db, game, include_participants=True)


@router.post("/games/{game_id}/join", response_model=GameResponse)
async def join_game_endpoint(
    game_id: str,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_session),
    profiles: ProfileStore = Depends(get_profile_store),
    queue: NoticeQueue | None = Depends(get_notice_queue),
):
    """Join a game."""
    game = await lifecycle.join_game(db, game_id, identity.user_id, profiles=profiles, queue=queue)
    return await _build_game_response(db, game, include_participants=True)


@router.post("/games/{game_id}/leave", response_model=GameResponse)
async def leave_game_endpoint(
    game_id: str,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_session),
):
    """Leave a game. Organizers cancel instead."""
    game = await lifecycle.leave_game(db, game_id, identity.user_id)
    return await _build_game_response(db, game, include_participants=True)


@router.delete("/games/{game_id}/participants/{user_id}", response_model=GameResponse)
async def remove_participant_endpoint(
    game_id: str,
    user_id: str,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_session),
    queue: NoticeQueue | None = Depends(get_notice_queue),
):
    """Remove a participant (organizer or admin)."""
    game = await lifecycle.remove_participant(
        db, game_id, identity.user_id, user_id, is_admin=identity.is_admin, queue=queue,
    )
    return await _build_game_response(db, game, include_participants=True)


@router.post("/games/{game_id}/cancel", response_model=GameResponse)
async def cancel_game_endpoint(
    game_id: str,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_session),
    queue: NoticeQueue | None = Depends(get_notice_queue),
):
    """Cancel a game (organizer or admin)."""
    game = await lifecycle.cancel_game(db, game_id, identity.user_id, is_admin=identity.is_admin, queue=queue)
    return await _build_game_response(db, game, include_participants=True)


@router.get("/games/{game_id}/reminders", response_model=ReminderListResponse)
async def list_reminders_endpoint(
    game_id: str,
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_session),
):
    """Pending reminders of a game (organizer or admin)."""
    game = await lifecycle.get_game(db, game_id)
    lifecycle.ensure_can_manage(game, identity.user_id, identity.is_admin)
    reminders = await list_reminders(db, game_id)
    return ReminderListResponse(
        game_id=game_id,
        reminders=[
            ReminderResponse(kind=r.kind, fire_at=r.fire_at, start_time=r.start_time)
            for r in reminders
        ],
    )


# ── User Schedule ──


@router.get("/users/me/games", response_model=GameListResponse)
async def my_schedule_endpoint(
    range_: ScheduleRange = Query("upcoming", alias="range"),
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_session),
):
    """The caller's games: upcoming (soonest first) or past (most recent first)."""
    now = datetime.now(timezone.utc)
    games = await lifecycle.get_user_schedule(db, identity.user_id, range_, now=now)
    items = [await _build_game_response(db, g) for g in games]
    return GameListResponse(games=items, total=len(items))
