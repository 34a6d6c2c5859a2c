"""Notice queue: hands dispatch work to the delivery path.

A ``Notice`` is what the dispatcher delivers for one game: one of the two
reminders or a lifecycle notice. ``recipient_id`` narrows delivery to one
user; when it is None every current participant is addressed.

Notices are enqueued only after the lifecycle transaction has committed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from playdates.db.enums import NoticeKind

if TYPE_CHECKING:
    from arq.connections import ArqRedis

    from playdates.reminders.dispatcher import NotificationChannel

logger = logging.getLogger(__name__)

DELIVER_JOB = "deliver_game_notice"


@dataclass(frozen=True)
class Notice:
    game_id: str
    kind: NoticeKind
    recipient_id: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {"game_id": self.game_id, "kind": self.kind.value, "recipient_id": self.recipient_id}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> Notice:
        return cls(
            game_id=payload["game_id"],
            kind=NoticeKind(payload["kind"]),
            recipient_id=payload.get("recipient_id"),
        )


class NoticeQueue(Protocol):
    async def enqueue(self, notice: Notice) -> None: ...


class ArqNoticeQueue:
    """Enqueue notices as arq jobs for the reminder worker."""

    def __init__(self, pool: ArqRedis) -> None:
        self.pool = pool

    async def enqueue(self, notice: Notice) -> None:
        await self.pool.enqueue_job(DELIVER_JOB, notice.to_payload())


class InlineNoticeQueue:
    """Dispatch notices in-process, each in its own session."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        channel: NotificationChannel,
    ) -> None:
        self.session_factory = session_factory
        self.channel = channel

    async def enqueue(self, notice: Notice) -> None:
        from playdates.reminders.dispatcher import dispatch_notice

        async with self.session_factory() as db:
            await dispatch_notice(db, notice, self.channel)


async def enqueue_notices(queue: NoticeQueue | None, notices: Iterable[Notice]) -> int:
    """Best-effort enqueue after commit. Returns how many were accepted."""
    if queue is None:
        return 0
    accepted = 0
    for notice in notices:
        try:
            await queue.enqueue(notice)
            accepted += 1
        except Exception:
            logger.exception("Failed to enqueue %s notice for game %s", notice.kind.value, notice.game_id)
    return accepted
