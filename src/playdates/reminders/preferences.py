"""Per-user notification preferences for game notices."""

from __future__ import annotations

from typing import Any

from playdates.db.enums import NoticeKind

# Defaults applied under whatever the profile stores
DEFAULT_PREFERENCES: dict[str, bool] = {
    "emailEnabled": True,
    "gameReminders": True,
    "gameCancellations": True,
    "gameUpdates": True,
}

PREFERENCE_MAP: dict[NoticeKind, str] = {
    NoticeKind.REMINDER_24H: "gameReminders",
    NoticeKind.REMINDER_1H: "gameReminders",
    NoticeKind.GAME_CANCELLED: "gameCancellations",
    NoticeKind.GAME_FULL: "gameUpdates",
    NoticeKind.PARTICIPANT_REMOVED: "gameUpdates",
}


def merge_preferences(stored: dict[str, Any] | None) -> dict[str, Any]:
    """Stored preferences override the defaults key by key."""
    merged: dict[str, Any] = dict(DEFAULT_PREFERENCES)
    if stored:
        merged.update(stored)
    return merged


def should_deliver(preferences: dict[str, Any], kind: NoticeKind) -> bool:
    """Check if a notice should be emailed given a user's preferences."""
    if not preferences.get("emailEnabled", True):
        return False

    pref_key = PREFERENCE_MAP.get(kind)
    if pref_key is None:
        return True

    return bool(preferences.get(pref_key, DEFAULT_PREFERENCES.get(pref_key, True)))
