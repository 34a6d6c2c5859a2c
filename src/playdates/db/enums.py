"""Enumerations shared by the ORM models and the domain modules."""

from __future__ import annotations

from enum import Enum


class GameStatus(str, Enum):
    SCHEDULED = "scheduled"
    CLOSED = "closed"
    CANCELLED = "cancelled"
    PAST = "past"


TERMINAL_STATUSES = frozenset({GameStatus.CANCELLED, GameStatus.PAST})


class SkillTier(str, Enum):
    """Five ordered skill levels, lowest first. Declaration order is the ranking."""

    BELOW_3 = "Below 3"
    FROM_3_TO_3_5 = "3 to 3.5"
    FROM_3_5_TO_4 = "3.5 to 4"
    FROM_4_TO_4_5 = "4 to 4.5"
    ABOVE_4_5 = "Above 4.5"

    @property
    def rank(self) -> int:
        return _TIER_ORDER.index(self)


_TIER_ORDER: list[SkillTier] = list(SkillTier)


class ReminderKind(str, Enum):
    T_24H = "T-24h"
    T_1H = "T-1h"


class NoticeKind(str, Enum):
    """Everything the dispatcher can deliver: the two reminders plus lifecycle notices."""

    REMINDER_24H = "reminder_24h"
    REMINDER_1H = "reminder_1h"
    GAME_CANCELLED = "game_cancelled"
    GAME_FULL = "game_full"
    PARTICIPANT_REMOVED = "participant_removed"


REMINDER_NOTICES: dict[ReminderKind, NoticeKind] = {
    ReminderKind.T_24H: NoticeKind.REMINDER_24H,
    ReminderKind.T_1H: NoticeKind.REMINDER_1H,
}
