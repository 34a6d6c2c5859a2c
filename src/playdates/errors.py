"""Error kinds raised by game transitions.

Every error carries a stable ``kind`` string, an HTTP status code and a
human-readable message. The FastAPI handler in ``middleware.error_handler``
renders them as ``{"detail", "kind", "errors"}``.
"""

from __future__ import annotations

from typing import Any


class GameError(Exception):
    """Base exception for all game lifecycle errors."""

    kind = "game_error"
    status_code = 400
    default_message = "Request could not be completed"

    def __init__(self, message: str | None = None, errors: list[dict[str, Any]] | None = None) -> None:
        self.message = message or self.default_message
        self.errors = errors or []
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "kind": self.kind, "errors": self.errors}


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


class ValidationError(GameError):
    """Client-correctable input, with per-field details."""

    kind = "validation_error"
    status_code = 422
    default_message = "Validation error"

    @classmethod
    def for_field(cls, field: str, message: str) -> ValidationError:
        return cls(message, errors=[{"field": field, "message": message}])


class NotFoundError(GameError):
    kind = "not_found"
    status_code = 404
    default_message = "Not found"


class Forbidden(GameError):
    kind = "forbidden"
    status_code = 403
    default_message = "You are not allowed to perform this action"


class Conflict(GameError):
    """The request is incompatible with the game's current state."""

    kind = "conflict"
    status_code = 409
    default_message = "Request conflicts with the current game state"


class DependencyError(GameError):
    """A collaborator (venue directory, profile store) is unavailable."""

    kind = "dependency_error"
    status_code = 503
    default_message = "A required service is unavailable"


class InternalError(GameError):
    kind = "internal_error"
    status_code = 500
    default_message = "Internal server error"


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------


class GameNotFound(NotFoundError):
    kind = "game_not_found"
    default_message = "Game not found"


class VenueNotFound(NotFoundError):
    kind = "venue_not_found"
    default_message = "Venue not found"


class ProfileNotFound(NotFoundError):
    kind = "profile_not_found"
    default_message = "User profile not found"


class NotAMember(NotFoundError):
    kind = "not_a_member"
    default_message = "User is not a participant in this game"


# ---------------------------------------------------------------------------
# Conflicts
# ---------------------------------------------------------------------------


class AlreadyMember(Conflict):
    kind = "already_member"
    default_message = "User has already joined this game"


class CapacityExceeded(Conflict):
    kind = "capacity_exceeded"
    default_message = "Game has no free places"


class GameFull(Conflict):
    kind = "game_full"
    default_message = "Game is full"


class JoinWindowClosed(Conflict):
    kind = "join_window_closed"
    default_message = "Games can only be joined or left until one hour before start"


class SkillIneligible(Conflict):
    kind = "skill_ineligible"
    default_message = "Your skill rating is outside this game's skill band"


class OrganizerCannotLeave(Conflict):
    kind = "organizer_cannot_leave"
    default_message = "The organizer cannot leave the game; cancel it instead"


class CannotRemoveOrganizer(Conflict):
    kind = "cannot_remove_organizer"
    default_message = "The organizer cannot be removed from the game"


class CapacityBelowOccupancy(Conflict):
    kind = "capacity_below_occupancy"
    default_message = "Maximum participants cannot be lower than the current number of participants"


class AlreadyCancelled(Conflict):
    kind = "already_cancelled"
    default_message = "Game is already cancelled"


class GameCancelled(Conflict):
    kind = "game_cancelled"
    default_message = "Game has been cancelled"


class GameEnded(Conflict):
    kind = "game_ended"
    default_message = "Game has already started or ended"


class VenueUnavailable(Conflict):
    kind = "venue_unavailable"
    default_message = "Venue is not approved or not active"


# ---------------------------------------------------------------------------
# Internal
# ---------------------------------------------------------------------------


class StaleGameError(Exception):
    """A conditional write found the game changed since it was read.

    Never leaves the lifecycle module; the transition is retried against
    fresh state and surfaces as ``InternalError`` once attempts run out.
    """

    def __init__(self, game_id: str, expected_version: int) -> None:
        self.game_id = game_id
        self.expected_version = expected_version
        super().__init__(f"Game {game_id} changed since version {expected_version}")
