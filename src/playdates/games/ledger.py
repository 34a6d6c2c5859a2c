"""Membership ledger: the set of participants of one game.

Uniqueness of ``(game_id, user_id)`` is enforced by the table's unique
constraint, so a double insert fails structurally even if two joins race
past the membership pre-check. Callers update ``Game.current_participants``
in the same transaction as every ledger change.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from playdates.db.enums import SkillTier
from playdates.db.models import GameParticipant
from playdates.errors import AlreadyMember, CapacityExceeded, NotAMember

logger = logging.getLogger(__name__)


async def get_participant(db: AsyncSession, game_id: str, user_id: str) -> GameParticipant | None:
    result = await db.execute(
        select(GameParticipant).where(
            GameParticipant.game_id == game_id,
            GameParticipant.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def count_participants(db: AsyncSession, game_id: str) -> int:
    result = await db.execute(
        select(func.count()).select_from(GameParticipant).where(GameParticipant.game_id == game_id)
    )
    return result.scalar_one()


async def list_participants(db: AsyncSession, game_id: str) -> list[GameParticipant]:
    """All participants of a game, earliest joiner first (ties by user id)."""
    result = await db.execute(
        select(GameParticipant)
        .where(GameParticipant.game_id == game_id)
        .order_by(GameParticipant.joined_at.asc(), GameParticipant.user_id.asc())
    )
    return list(result.scalars().all())


async def add_participant(
    db: AsyncSession,
    game_id: str,
    max_participants: int,
    user_id: str,
    display_name: str,
    joined_at: datetime,
    skill_rating: SkillTier | None = None,
) -> int:
    """Enroll a user. Returns the new live count.

    Raises AlreadyMember if the user is enrolled, CapacityExceeded if the
    game already holds ``max_participants``.
    """
    if await get_participant(db, game_id, user_id) is not None:
        raise AlreadyMember

    count = await count_participants(db, game_id)
    if count >= max_participants:
        raise CapacityExceeded

    db.add(GameParticipant(
        game_id=game_id,
        user_id=user_id,
        display_name=display_name,
        skill_rating=skill_rating.value if skill_rating is not None else None,
        joined_at=joined_at,
    ))
    try:
        await db.flush()
    except IntegrityError as e:
        # Lost an insert race for the same (game_id, user_id)
        raise AlreadyMember from e

    return count + 1


async def remove_participant(db: AsyncSession, game_id: str, user_id: str) -> int:
    """Drop a user's enrollment. Returns the new live count.

    Raises NotAMember if the user was not enrolled.
    """
    result = await db.execute(
        delete(GameParticipant).where(
            GameParticipant.game_id == game_id,
            GameParticipant.user_id == user_id,
        )
    )
    if result.rowcount == 0:
        raise NotAMember
    return await count_participants(db, game_id)
