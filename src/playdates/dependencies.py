"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from playdates.collaborators import ProfileStore, SqlProfileStore, SqlVenueDirectory, VenueDirectory
from playdates.database import get_session
from playdates.reminders.queue import NoticeQueue


def get_venue_directory(db: AsyncSession = Depends(get_session)) -> VenueDirectory:  # noqa: B008
    """Venue directory backed by the request's session."""
    return SqlVenueDirectory(db)


def get_profile_store(db: AsyncSession = Depends(get_session)) -> ProfileStore:  # noqa: B008
    """Profile store backed by the request's session."""
    return SqlProfileStore(db)


def get_notice_queue(request: Request) -> NoticeQueue | None:
    """The notice queue set up at startup (None when delivery is not configured)."""
    return getattr(request.app.state, "notice_queue", None)
