"""Pydantic schemas for game endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from playdates.db.enums import GameStatus, SkillTier


# --- Requests ---


class CreateGameRequest(BaseModel):
    start_time: datetime
    venue_id: str = Field(..., min_length=1, max_length=64)
    min_participants: int | None = None
    max_participants: int | None = None
    skill_min: SkillTier | None = None
    skill_max: SkillTier | None = None


class UpdateGameRequest(BaseModel):
    """Partial update. Only fields present in the body are applied; null clears a skill bound."""

    start_time: datetime | None = None
    venue_id: str | None = Field(None, min_length=1, max_length=64)
    min_participants: int | None = None
    max_participants: int | None = None
    skill_min: SkillTier | None = None
    skill_max: SkillTier | None = None

    def changes(self) -> dict[str, object]:
        return {name: getattr(self, name) for name in self.model_fields_set}


# --- Responses ---


class ParticipantResponse(BaseModel):
    user_id: str
    display_name: str
    skill_rating: SkillTier | None = None
    joined_at: datetime


class GameResponse(BaseModel):
    id: str
    organizer_id: str
    start_time: datetime
    venue_id: str
    venue_name: str
    venue_address: str
    min_participants: int
    max_participants: int
    current_participants: int
    status: GameStatus
    skill_min: SkillTier | None = None
    skill_max: SkillTier | None = None
    created_at: datetime
    updated_at: datetime
    participants: list[ParticipantResponse] | None = None  # Detail endpoints only


class GameListResponse(BaseModel):
    games: list[GameResponse]
    total: int


class ReminderResponse(BaseModel):
    kind: str
    fire_at: datetime
    start_time: datetime


class ReminderListResponse(BaseModel):
    game_id: str
    reminders: list[ReminderResponse]


ScheduleRange = Literal["upcoming", "past"]
