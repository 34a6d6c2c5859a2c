"""Notice dispatcher: fan a notice out to the participants of a game.

Reads the game and its participants fresh at dispatch time. Reminders for a
cancelled game are dropped. Delivery is best effort: a failure for one
recipient is logged and counted, and the remaining recipients still get
their message. There is no retry queue.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from playdates.collaborators import ProfileStore, SqlProfileStore
from playdates.db.enums import REMINDER_NOTICES, GameStatus, NoticeKind
from playdates.db.models import Game
from playdates.email.service import render_template
from playdates.games.ledger import list_participants
from playdates.reminders.preferences import merge_preferences, should_deliver
from playdates.reminders.queue import Notice

logger = logging.getLogger(__name__)

_REMINDER_KINDS = frozenset(REMINDER_NOTICES.values())


class NotificationChannel(Protocol):
    async def send_email(self, to: str, subject: str, html_body: str, text_body: str) -> bool: ...


@dataclass
class DispatchReport:
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    aborted: bool = False


async def _recipient_ids(db: AsyncSession, game: Game, notice: Notice) -> list[str]:
    if notice.recipient_id is not None:
        return [notice.recipient_id]
    if notice.kind is NoticeKind.GAME_FULL:
        return [game.organizer_id]
    return [p.user_id for p in await list_participants(db, game.id)]


def _context(game: Game) -> dict[str, Any]:
    return {
        "start_time": game.start_time,
        "venue_name": game.venue_name,
        "venue_address": game.venue_address,
        "current_participants": game.current_participants,
        "max_participants": game.max_participants,
    }


async def dispatch_notice(
    db: AsyncSession,
    notice: Notice,
    channel: NotificationChannel,
    profiles: ProfileStore | None = None,
) -> DispatchReport:
    """Deliver one notice to every recipient whose preferences allow it."""
    profiles = profiles or SqlProfileStore(db)
    report = DispatchReport()

    result = await db.execute(select(Game).where(Game.id == notice.game_id))
    game = result.scalar_one_or_none()
    if game is None:
        logger.warning("Game %s not found for %s notice", notice.game_id, notice.kind.value)
        report.aborted = True
        return report

    if notice.kind in _REMINDER_KINDS and game.status == GameStatus.CANCELLED.value:
        logger.info("Game %s is cancelled, not sending %s", game.id, notice.kind.value)
        report.aborted = True
        return report

    context = _context(game)
    for user_id in await _recipient_ids(db, game, notice):
        try:
            profile = await profiles.get_profile(user_id)
            if profile is None or not profile.email:
                logger.info("Skipping %s for user %s: no email address", notice.kind.value, user_id)
                report.skipped += 1
                continue
            if not should_deliver(merge_preferences(profile.notification_prefs), notice.kind):
                logger.info("Skipping %s for user %s: disabled in preferences", notice.kind.value, user_id)
                report.skipped += 1
                continue

            subject, html_body, text_body = render_template(
                notice.kind, {**context, "display_name": profile.display_name},
            )
            if await channel.send_email(profile.email, subject, html_body, text_body):
                report.sent += 1
            else:
                logger.warning("Channel refused %s for user %s", notice.kind.value, user_id)
                report.failed += 1
        except Exception:
            logger.exception("Failed to send %s for game %s to user %s", notice.kind.value, game.id, user_id)
            report.failed += 1

    logger.info(
        "Dispatched %s for game %s: sent=%d skipped=%d failed=%d",
        notice.kind.value, game.id, report.sent, report.skipped, report.failed,
    )
    return report
