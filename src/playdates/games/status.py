"""Time and capacity rules for a game's status.

The ``past`` rule lives here and nowhere else: reads project it, and every
transition consults it before writing.

State progression:
    scheduled <-> closed      (fills up / a place frees)
    scheduled | closed -> cancelled
    scheduled | closed -> past
"""

from __future__ import annotations

from datetime import datetime, timedelta

from playdates.db.enums import TERMINAL_STATUSES, GameStatus

MIN_PARTICIPANTS = 2
MAX_PARTICIPANTS = 8

VALID_TRANSITIONS: dict[GameStatus, list[GameStatus]] = {
    GameStatus.SCHEDULED: [GameStatus.CLOSED, GameStatus.CANCELLED, GameStatus.PAST],
    GameStatus.CLOSED: [GameStatus.SCHEDULED, GameStatus.CANCELLED, GameStatus.PAST],
    GameStatus.CANCELLED: [],
    GameStatus.PAST: [],
}


def is_past(start_time: datetime, now: datetime, grace_minutes: int = 0) -> bool:
    """A game is past once its start time is at or before ``now - grace``."""
    return start_time <= now - timedelta(minutes=grace_minutes)


def join_window_open(start_time: datetime, now: datetime, cutoff_minutes: int = 60) -> bool:
    """Join, leave and remove are allowed until ``cutoff_minutes`` before start."""
    return now < start_time - timedelta(minutes=cutoff_minutes)


def open_status(current_participants: int, max_participants: int) -> GameStatus:
    """Status of a non-terminal game given its occupancy."""
    if current_participants >= max_participants:
        return GameStatus.CLOSED
    return GameStatus.SCHEDULED


def project_status(status: GameStatus | str, start_time: datetime, now: datetime, grace_minutes: int = 0) -> GameStatus:
    """Status as observed at ``now``: a non-terminal game whose time has gone is past."""
    status = GameStatus(status)
    if status in TERMINAL_STATUSES:
        return status
    if is_past(start_time, now, grace_minutes):
        return GameStatus.PAST
    return status


def validate_transition(current: GameStatus | str, target: GameStatus | str) -> None:
    """Raise ValueError for a transition the state machine does not allow."""
    current, target = GameStatus(current), GameStatus(target)
    if current == target:
        return
    valid = VALID_TRANSITIONS[current]
    if target not in valid:
        raise ValueError(
            f"Invalid transition: {current.value} -> {target.value}. "
            f"Valid transitions: {[s.value for s in valid]}"
        )
