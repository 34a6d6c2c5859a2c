"""Shared test fixtures."""

from __future__ import annotations

import os

os.environ["PLAYDATES_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["PLAYDATES_JWT_ALGORITHM"] = "HS256"
os.environ["PLAYDATES_JWT_SECRET"] = "test-secret-key-that-is-long-enough-for-hs256"
os.environ["PLAYDATES_NOTICE_DELIVERY"] = "inline"
os.environ["PLAYDATES_EMAIL_PROVIDER"] = "log"

from collections.abc import AsyncGenerator  # noqa: E402
from datetime import datetime, timedelta, timezone  # noqa: E402
from typing import Any  # noqa: E402

import jwt  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from playdates.collaborators import SqlProfileStore, SqlVenueDirectory  # noqa: E402
from playdates.config import get_settings  # noqa: E402
from playdates.database import close_db, create_schema, get_session_factory, init_db  # noqa: E402
from playdates.db.enums import SkillTier  # noqa: E402
from playdates.db.models import UserProfile, Venue  # noqa: E402
from playdates.reminders.queue import Notice  # noqa: E402

get_settings.cache_clear()


class RecordingNoticeQueue:
    """Notice queue that only remembers what it was given."""

    def __init__(self) -> None:
        self.notices: list[Notice] = []

    async def enqueue(self, notice: Notice) -> None:
        self.notices.append(notice)

    def kinds(self) -> list[str]:
        return [n.kind.value for n in self.notices]


class FakeChannel:
    """Notification channel that records sends and can be told to fail per address."""

    def __init__(self, raise_for: set[str] | None = None, refuse_for: set[str] | None = None) -> None:
        self.sent: list[dict[str, str]] = []
        self.raise_for = raise_for or set()
        self.refuse_for = refuse_for or set()

    async def send_email(self, to: str, subject: str, html_body: str, text_body: str) -> bool:
        if to in self.raise_for:
            msg = f"SMTP connection dropped for {to}"
            raise ConnectionError(msg)
        if to in self.refuse_for:
            return False
        self.sent.append({"to": to, "subject": subject, "html": html_body, "text": text_body})
        return True

    @property
    def recipients(self) -> list[str]:
        return [m["to"] for m in self.sent]


def make_token(user_id: str, groups: list[str] | None = None, expires_in: timedelta = timedelta(hours=1)) -> str:
    """Sign a token the way the identity provider would."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload: dict[str, Any] = {"sub": user_id, "iat": now, "exp": now + expires_in}
    if groups is not None:
        payload[settings.jwt_groups_claim] = groups
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def auth_headers(user_id: str, groups: list[str] | None = None) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id, groups)}"}


@pytest.fixture
def now() -> datetime:
    """A fixed 'current time' for a test, in UTC."""
    return datetime.now(timezone.utc).replace(microsecond=0)


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[None, None]:
    """Fresh in-memory schema per test."""
    await init_db(get_settings().database_url)
    await create_schema(drop_first=True)
    yield
    await close_db()


@pytest_asyncio.fixture
async def db_session(database: None) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session."""
    async with get_session_factory()() as session:
        yield session


@pytest.fixture
def venues(db_session: AsyncSession) -> SqlVenueDirectory:
    return SqlVenueDirectory(db_session)


@pytest.fixture
def profiles(db_session: AsyncSession) -> SqlProfileStore:
    return SqlProfileStore(db_session)


@pytest.fixture
def queue() -> RecordingNoticeQueue:
    return RecordingNoticeQueue()


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


async def add_venue(
    db: AsyncSession,
    venue_id: str = "venue-1",
    *,
    name: str = "Riverside Courts",
    address: str = "12 River Rd",
    is_approved: bool = True,
    is_active: bool = True,
) -> Venue:
    venue = Venue(id=venue_id, name=name, address=address, is_approved=is_approved, is_active=is_active)
    db.add(venue)
    await db.commit()
    return venue


async def add_profile(
    db: AsyncSession,
    user_id: str,
    *,
    display_name: str | None = None,
    email: str | None = "",
    skill: SkillTier | None = None,
    prefs: dict[str, Any] | None = None,
) -> UserProfile:
    profile = UserProfile(
        user_id=user_id,
        display_name=display_name or user_id.title(),
        email=f"{user_id}@example.com" if email == "" else email,
        skill_rating=skill.value if skill is not None else None,
        notification_prefs=prefs,
    )
    db.add(profile)
    await db.commit()
    return profile


@pytest_asyncio.fixture
async def venue(db_session: AsyncSession) -> Venue:
    """An approved, active venue."""
    return await add_venue(db_session)


@pytest_asyncio.fixture
async def organizer(db_session: AsyncSession) -> UserProfile:
    return await add_profile(db_session, "olivia", skill=SkillTier.FROM_3_5_TO_4)


@pytest_asyncio.fixture
async def client(database: None, queue: RecordingNoticeQueue) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client over the app, with notices recorded instead of delivered."""
    from playdates.main import create_app

    app = create_app()
    app.state.notice_queue = queue
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_venue(db_session: AsyncSession) -> Any:
    """Factory: ``await make_venue("venue-2", is_active=False)``."""

    async def _make(venue_id: str = "venue-1", **kwargs: Any) -> Venue:
        return await add_venue(db_session, venue_id, **kwargs)

    return _make


@pytest.fixture
def make_profile(db_session: AsyncSession) -> Any:
    """Factory: ``await make_profile("bob", skill=SkillTier.BELOW_3)``."""

    async def _make(user_id: str, **kwargs: Any) -> UserProfile:
        return await add_profile(db_session, user_id, **kwargs)

    return _make


@pytest.fixture
def auth() -> Any:
    """Factory for Authorization headers: ``auth("olivia")`` or ``auth("ada", groups=["admin"])``."""
    return auth_headers
