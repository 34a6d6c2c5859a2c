"""Venue directory and profile store contracts.

Both are owned by other services; the game lifecycle and the dispatcher only
read them. The SQL-backed implementations read the shared ``venues`` and
``user_profiles`` tables.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from playdates.db.enums import SkillTier
from playdates.db.models import UserProfile, Venue
from playdates.errors import DependencyError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VenueInfo:
    venue_id: str
    name: str
    address: str
    is_approved: bool
    is_active: bool

    @property
    def is_available(self) -> bool:
        return self.is_approved and self.is_active


@dataclass(frozen=True)
class Profile:
    user_id: str
    display_name: str
    email: str | None = None
    skill_rating: SkillTier | None = None
    notification_prefs: dict[str, Any] = field(default_factory=dict)


class VenueDirectory(Protocol):
    async def get_venue(self, venue_id: str) -> VenueInfo | None: ...


class ProfileStore(Protocol):
    async def get_profile(self, user_id: str) -> Profile | None: ...


def _parse_tier(value: str | None) -> SkillTier | None:
    if value is None:
        return None
    try:
        return SkillTier(value)
    except ValueError:
        logger.warning("Ignoring unknown skill rating %r", value)
        return None


class SqlVenueDirectory:
    """Venue lookups against the shared ``venues`` table."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_venue(self, venue_id: str) -> VenueInfo | None:
        try:
            result = await self.db.execute(select(Venue).where(Venue.id == venue_id))
            venue = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.exception("Venue lookup failed for %s", venue_id)
            raise DependencyError("Venue directory is unavailable") from e
        if venue is None:
            return None
        return VenueInfo(
            venue_id=venue.id,
            name=venue.name,
            address=venue.address,
            is_approved=venue.is_approved,
            is_active=venue.is_active,
        )


class SqlProfileStore:
    """Profile lookups against the shared ``user_profiles`` table."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_profile(self, user_id: str) -> Profile | None:
        try:
            result = await self.db.execute(select(UserProfile).where(UserProfile.user_id == user_id))
            row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.exception("Profile lookup failed for %s", user_id)
            raise DependencyError("Profile store is unavailable") from e
        if row is None:
            return None
        return Profile(
            user_id=row.user_id,
            display_name=row.display_name,
            email=row.email,
            skill_rating=_parse_tier(row.skill_rating),
            notification_prefs=dict(row.notification_prefs or {}),
        )
