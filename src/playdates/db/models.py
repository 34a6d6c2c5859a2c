"""ORM models for games, participants, scheduled reminders and the collaborator tables.

``venues`` and ``user_profiles`` are owned by the venue directory and profile
services; this service only reads them.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from playdates.db.base import Base, UTCDateTime
from playdates.db.enums import GameStatus

_JSON = JSON().with_variant(JSONB, "postgresql")


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Collaborator tables (read-only here)
# ---------------------------------------------------------------------------


class Venue(Base):
    """Maps to the 'venues' table maintained by the venue directory."""

    __tablename__ = "venues"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    address: Mapped[str] = mapped_column(String(200), nullable=False)
    is_approved: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default="true")


class UserProfile(Base):
    """Maps to the 'user_profiles' table maintained by the profile service."""

    __tablename__ = "user_profiles"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(64), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    skill_rating: Mapped[str | None] = mapped_column(String(16), nullable=True)
    notification_prefs: Mapped[dict[str, Any] | None] = mapped_column(_JSON, nullable=True)


# ---------------------------------------------------------------------------
# Games
# ---------------------------------------------------------------------------


class Game(Base):
    """One scheduled meetup. ``version`` backs the conditional writes."""

    __tablename__ = "games"
    __table_args__ = (
        CheckConstraint("min_participants >= 2 AND min_participants <= max_participants", name="ck_games_min"),
        CheckConstraint("max_participants <= 8", name="ck_games_max"),
        CheckConstraint(
            "current_participants >= 0 AND current_participants <= max_participants",
            name="ck_games_occupancy",
        ),
        Index("ix_games_status_start", "status", "start_time"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    organizer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    start_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    # Venue reference plus denormalized display fields
    venue_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    venue_name: Mapped[str] = mapped_column(String(100), nullable=False)
    venue_address: Mapped[str] = mapped_column(String(200), nullable=False)

    min_participants: Mapped[int] = mapped_column(Integer, nullable=False)
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False)
    current_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=GameStatus.SCHEDULED.value)

    skill_min: Mapped[str | None] = mapped_column(String(16), nullable=True)
    skill_max: Mapped[str | None] = mapped_column(String(16), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class GameParticipant(Base):
    """Membership of one user in one game."""

    __tablename__ = "game_participants"
    __table_args__ = (
        UniqueConstraint("game_id", "user_id", name="uq_game_participants_game_user"),
        Index("ix_game_participants_user", "user_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    game_id: Mapped[str] = mapped_column(String(64), ForeignKey("games.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    display_name: Mapped[str] = mapped_column(String(64), nullable=False)
    skill_rating: Mapped[str | None] = mapped_column(String(16), nullable=True)
    joined_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


# ---------------------------------------------------------------------------
# Reminders
# ---------------------------------------------------------------------------


class ScheduledReminder(Base):
    """A pending one-shot reminder. The primary key is the callback identity."""

    __tablename__ = "scheduled_reminders"
    __table_args__ = (Index("ix_scheduled_reminders_fire_at", "fire_at"),)

    game_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("games.id", ondelete="CASCADE"), primary_key=True,
    )
    kind: Mapped[str] = mapped_column(String(8), primary_key=True)
    fire_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    start_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
