"""Integration tests: game lifecycle transitions against the store."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import inspect

from playdates.db.enums import GameStatus, NoticeKind, ReminderKind, SkillTier
from playdates.errors import (
    AlreadyCancelled,
    AlreadyMember,
    CannotRemoveOrganizer,
    CapacityBelowOccupancy,
    Forbidden,
    GameCancelled,
    GameEnded,
    GameFull,
    GameNotFound,
    JoinWindowClosed,
    NotAMember,
    OrganizerCannotLeave,
    ProfileNotFound,
    SkillIneligible,
    ValidationError,
    VenueNotFound,
    VenueUnavailable,
)
from playdates.games import ledger, lifecycle
from playdates.reminders.scheduler import list_reminders


@pytest.fixture
def create(db_session, venue, organizer, venues, profiles, queue, now):
    """Create a game organized by olivia at the default venue."""

    async def _create(start_in=timedelta(days=3), **kwargs):
        return await lifecycle.create_game(
            db_session,
            "olivia",
            now + start_in,
            kwargs.pop("venue_id", "venue-1"),
            venues=venues,
            profiles=profiles,
            queue=queue,
            now=now,
            **kwargs,
        )

    return _create


@pytest.fixture
def join(db_session, profiles, queue, now):

    async def _join(game_id, user_id, at=None):
        return await lifecycle.join_game(db_session, game_id, user_id, profiles=profiles, queue=queue, now=at or now)

    return _join


@pytest.fixture
def modify(db_session, venues, queue, now):

    async def _modify(game_id, changes, user="olivia", at=None):
        return await lifecycle.modify_game(
            db_session, game_id, user, changes, venues=venues, queue=queue, now=at or now,
        )

    return _modify


async def _assert_counts_match(db, game):
    assert await ledger.count_participants(db, game.id) == game.current_participants


class TestCreateGame:

    async def test_organizer_enrolled(self, db_session, create):
        game = await create()
        assert game.status == GameStatus.SCHEDULED.value
        assert game.current_participants == 1
        assert game.version == 1
        assert (game.min_participants, game.max_participants) == (4, 6)
        assert game.venue_name == "Riverside Courts"
        participants = await ledger.list_participants(db_session, game.id)
        assert [p.user_id for p in participants] == ["olivia"]
        assert participants[0].skill_rating == SkillTier.FROM_3_5_TO_4.value

    async def test_schedules_both_reminders(self, db_session, create, queue, now):
        game = await create(start_in=timedelta(days=3))
        reminders = await list_reminders(db_session, game.id)
        assert [(r.kind, r.fire_at) for r in reminders] == [
            (ReminderKind.T_24H.value, now + timedelta(days=2)),
            (ReminderKind.T_1H.value, now + timedelta(days=3, hours=-1)),
        ]
        assert queue.notices == []

    async def test_24h_reminder_inside_grace_fires_immediately(self, db_session, create, queue):
        game = await create(start_in=timedelta(hours=23, minutes=50))
        reminders = await list_reminders(db_session, game.id)
        assert [r.kind for r in reminders] == [ReminderKind.T_1H.value]
        assert queue.kinds() == [NoticeKind.REMINDER_24H.value]
        assert queue.notices[0].game_id == game.id

    async def test_start_time_must_be_future(self, create):
        with pytest.raises(ValidationError) as exc_info:
            await create(start_in=timedelta(0))
        assert exc_info.value.errors[0]["field"] == "start_time"

    @pytest.mark.parametrize(
        ("min_participants", "max_participants", "field"),
        [(1, 4, "min_participants"), (2, 9, "max_participants"), (5, 4, "max_participants")],
    )
    async def test_capacity_bounds(self, create, min_participants, max_participants, field):
        with pytest.raises(ValidationError) as exc_info:
            await create(min_participants=min_participants, max_participants=max_participants)
        assert field in [e["field"] for e in exc_info.value.errors]

    async def test_inverted_skill_band(self, create):
        with pytest.raises(ValidationError) as exc_info:
            await create(skill_min=SkillTier.ABOVE_4_5, skill_max=SkillTier.BELOW_3)
        assert exc_info.value.errors[0]["field"] == "skill_max"

    async def test_unknown_venue(self, create):
        with pytest.raises(VenueNotFound):
            await create(venue_id="nowhere")

    async def test_unapproved_venue(self, create, make_venue):
        await make_venue("venue-2", is_approved=False)
        with pytest.raises(VenueUnavailable):
            await create(venue_id="venue-2")

    async def test_inactive_venue(self, create, make_venue):
        await make_venue("venue-3", is_active=False)
        with pytest.raises(VenueUnavailable):
            await create(venue_id="venue-3")

    async def test_organizer_needs_profile(self, db_session, venue, venues, profiles, now):
        with pytest.raises(ProfileNotFound):
            await lifecycle.create_game(
                db_session, "nobody", now + timedelta(days=1), "venue-1", venues=venues, profiles=profiles, now=now,
            )


class TestJoinGame:

    async def test_fills_and_closes(self, db_session, create, join, make_profile, queue):
        """Second join fills a two-place game, third join is turned away."""
        await make_profile("sam")
        await make_profile("tia")
        game = await create(start_in=timedelta(hours=2), min_participants=2, max_participants=2)

        game = await join(game.id, "sam")
        assert game.current_participants == 2
        assert game.status == GameStatus.CLOSED.value
        assert game.version == 2
        await _assert_counts_match(db_session, game)
        assert NoticeKind.GAME_FULL.value in queue.kinds()

        with pytest.raises(GameFull):
            await join(game.id, "tia")
        await _assert_counts_match(db_session, await lifecycle.get_game(db_session, game.id))

    async def test_returned_games_survive_rejected_join(self, db_session, create, join, make_profile):
        """A rejected join rolls the session back; games handed out earlier keep their state."""
        await make_profile("sam")
        await make_profile("tia")
        created = await create(min_participants=2, max_participants=2)
        joined = await join(created.id, "sam")

        with pytest.raises(GameFull):
            await join(joined.id, "tia")

        assert inspect(created).detached
        assert inspect(joined).detached
        assert created.id == joined.id
        assert created.current_participants == 1
        assert joined.current_participants == 2
        assert joined.status == GameStatus.CLOSED.value

    async def test_skill_band_requires_rating(self, create, join, make_profile):
        await make_profile("sam", skill=None)
        game = await create(skill_min=SkillTier.FROM_3_TO_3_5, skill_max=SkillTier.FROM_4_TO_4_5)
        with pytest.raises(SkillIneligible):
            await join(game.id, "sam")

    async def test_skill_band_admits_matching_rating(self, create, join, make_profile):
        await make_profile("sam", skill=SkillTier.FROM_4_TO_4_5)
        game = await create(skill_min=SkillTier.FROM_3_TO_3_5, skill_max=SkillTier.FROM_4_TO_4_5)
        game = await join(game.id, "sam")
        assert game.current_participants == 2

    async def test_already_member(self, create, join):
        game = await create()
        with pytest.raises(AlreadyMember):
            await join(game.id, "olivia")

    async def test_join_window(self, create, join, make_profile, now):
        await make_profile("sam")
        game = await create(start_in=timedelta(hours=2))
        with pytest.raises(JoinWindowClosed):
            await join(game.id, "sam", at=now + timedelta(hours=1))

    async def test_unknown_game(self, join):
        with pytest.raises(GameNotFound):
            await join("missing", "sam")

    async def test_joiner_needs_profile(self, create, join):
        game = await create()
        with pytest.raises(ProfileNotFound):
            await join(game.id, "ghost")

    async def test_started_game_is_marked_past(self, db_session, create, join, make_profile, now):
        await make_profile("sam")
        game = await create(start_in=timedelta(hours=2))
        with pytest.raises(GameEnded):
            await join(game.id, "sam", at=now + timedelta(hours=2))

        game = await lifecycle.get_game(db_session, game.id)
        assert game.status == GameStatus.PAST.value
        assert game.version == 2

        with pytest.raises(GameEnded):
            await join(game.id, "sam", at=now + timedelta(hours=3))


class TestLeaveAndRemove:

    async def test_leave_reopens_closed_game(self, db_session, create, join, make_profile):
        await make_profile("sam")
        game = await create(min_participants=2, max_participants=2)
        await join(game.id, "sam")

        game = await lifecycle.leave_game(db_session, game.id, "sam")
        assert game.current_participants == 1
        assert game.status == GameStatus.SCHEDULED.value
        await _assert_counts_match(db_session, game)

    async def test_organizer_cannot_leave(self, db_session, create):
        game = await create()
        with pytest.raises(OrganizerCannotLeave):
            await lifecycle.leave_game(db_session, game.id, "olivia")

    async def test_leave_non_member(self, db_session, create):
        game = await create()
        with pytest.raises(NotAMember):
            await lifecycle.leave_game(db_session, game.id, "sam")

    async def test_leave_after_cutoff(self, db_session, create, join, make_profile, now):
        await make_profile("sam")
        game = await create(start_in=timedelta(hours=3))
        await join(game.id, "sam")
        with pytest.raises(JoinWindowClosed):
            await lifecycle.leave_game(db_session, game.id, "sam", now=now + timedelta(hours=2, minutes=30))

    async def test_remove_requires_organizer_or_admin(self, db_session, create, join, make_profile, queue):
        await make_profile("sam")
        await make_profile("mallory")
        game = await create(min_participants=2, max_participants=2)
        game = await join(game.id, "sam")
        assert game.status == GameStatus.CLOSED.value

        with pytest.raises(Forbidden):
            await lifecycle.remove_participant(db_session, game.id, "mallory", "sam", queue=queue)

        game = await lifecycle.remove_participant(db_session, game.id, "olivia", "sam", queue=queue)
        assert game.current_participants == 1
        assert game.status == GameStatus.SCHEDULED.value
        await _assert_counts_match(db_session, game)

        removed = [n for n in queue.notices if n.kind is NoticeKind.PARTICIPANT_REMOVED]
        assert len(removed) == 1
        assert removed[0].recipient_id == "sam"

    async def test_admin_can_remove(self, db_session, create, join, make_profile, queue):
        await make_profile("sam")
        game = await create()
        await join(game.id, "sam")
        game = await lifecycle.remove_participant(db_session, game.id, "ada", "sam", is_admin=True, queue=queue)
        assert game.current_participants == 1

    async def test_cannot_remove_organizer(self, db_session, create):
        game = await create()
        with pytest.raises(CannotRemoveOrganizer):
            await lifecycle.remove_participant(db_session, game.id, "ada", "olivia", is_admin=True)


class TestModifyGame:

    async def test_reschedule_replaces_reminders(self, db_session, create, modify, now):
        game = await create(start_in=timedelta(days=3))
        new_start = now + timedelta(days=5)

        game = await modify(game.id, {"start_time": new_start})
        assert game.start_time == new_start

        reminders = await list_reminders(db_session, game.id)
        assert [r.fire_at for r in reminders] == [new_start - timedelta(hours=24), new_start - timedelta(hours=1)]
        assert all(r.start_time == new_start for r in reminders)

    async def test_only_organizer(self, create, modify):
        game = await create()
        with pytest.raises(Forbidden):
            await modify(game.id, {"max_participants": 8}, user="sam")

    async def test_capacity_below_occupancy(self, create, modify, join, make_profile):
        for user in ("sam", "tia"):
            await make_profile(user)
        game = await create(min_participants=2, max_participants=4)
        await join(game.id, "sam")
        await join(game.id, "tia")
        with pytest.raises(CapacityBelowOccupancy):
            await modify(game.id, {"min_participants": 2, "max_participants": 2})

    async def test_raising_capacity_reopens(self, create, modify, join, make_profile):
        await make_profile("sam")
        game = await create(min_participants=2, max_participants=2)
        await join(game.id, "sam")
        game = await modify(game.id, {"max_participants": 4})
        assert game.status == GameStatus.SCHEDULED.value
        assert game.max_participants == 4

    async def test_clear_skill_bound(self, create, modify):
        game = await create(skill_min=SkillTier.FROM_3_TO_3_5, skill_max=SkillTier.FROM_4_TO_4_5)
        game = await modify(game.id, {"skill_max": None})
        assert game.skill_min == SkillTier.FROM_3_TO_3_5.value
        assert game.skill_max is None

    async def test_move_to_other_venue(self, create, modify, make_venue):
        await make_venue("venue-2", name="Hilltop Park", address="5 Hill St")
        game = await create()
        game = await modify(game.id, {"venue_id": "venue-2"})
        assert (game.venue_id, game.venue_name, game.venue_address) == ("venue-2", "Hilltop Park", "5 Hill St")

    async def test_unknown_field(self, create, modify):
        game = await create()
        with pytest.raises(ValidationError):
            await modify(game.id, {"organizer_id": "sam"})

    async def test_cannot_clear_start_time(self, create, modify):
        game = await create()
        with pytest.raises(ValidationError):
            await modify(game.id, {"start_time": None})

    async def test_new_start_must_be_future(self, create, modify, now):
        game = await create()
        with pytest.raises(ValidationError):
            await modify(game.id, {"start_time": now - timedelta(hours=1)})

    async def test_cancelled_game(self, db_session, create, modify, now):
        game = await create()
        await lifecycle.cancel_game(db_session, game.id, "olivia", now=now)
        with pytest.raises(GameCancelled):
            await modify(game.id, {"max_participants": 8})


class TestCancelGame:

    async def test_cancel_flow(self, db_session, create, join, make_profile, queue):
        """Organizer can't leave, cancels instead; the game then refuses joins."""
        await make_profile("sam")
        game = await create()

        with pytest.raises(OrganizerCannotLeave):
            await lifecycle.leave_game(db_session, game.id, "olivia")

        game = await lifecycle.cancel_game(db_session, game.id, "olivia", queue=queue)
        assert game.status == GameStatus.CANCELLED.value
        assert await list_reminders(db_session, game.id) == []
        assert queue.kinds() == [NoticeKind.GAME_CANCELLED.value]

        with pytest.raises(GameCancelled):
            await join(game.id, "sam")

    async def test_already_cancelled(self, db_session, create):
        game = await create()
        await lifecycle.cancel_game(db_session, game.id, "olivia")
        with pytest.raises(AlreadyCancelled):
            await lifecycle.cancel_game(db_session, game.id, "olivia")

    async def test_non_organizer_forbidden(self, db_session, create):
        game = await create()
        with pytest.raises(Forbidden):
            await lifecycle.cancel_game(db_session, game.id, "sam")

    async def test_admin_can_cancel(self, db_session, create):
        game = await create()
        game = await lifecycle.cancel_game(db_session, game.id, "ada", is_admin=True)
        assert game.status == GameStatus.CANCELLED.value

    async def test_cannot_cancel_started_game(self, db_session, create, now):
        game = await create(start_in=timedelta(hours=2))
        with pytest.raises(GameEnded):
            await lifecycle.cancel_game(db_session, game.id, "olivia", now=now + timedelta(hours=2, minutes=1))

    async def test_updated_at_never_decreases(self, db_session, create, now):
        game = await create()
        created_at = game.created_at
        game = await lifecycle.cancel_game(db_session, game.id, "olivia", now=now - timedelta(minutes=5))
        assert game.updated_at >= created_at


class TestReads:

    async def test_available_games(self, db_session, create, join, make_profile, now):
        await make_profile("sam")
        later = await create(start_in=timedelta(days=4))
        sooner = await create(start_in=timedelta(days=2))
        full = await create(start_in=timedelta(days=3), min_participants=2, max_participants=2)
        await join(full.id, "sam")
        cancelled = await create(start_in=timedelta(days=1))
        await lifecycle.cancel_game(db_session, cancelled.id, "olivia", now=now)

        games = await lifecycle.list_available_games(db_session, now=now)
        assert [g.id for g in games] == [sooner.id, later.id]
        assert await lifecycle.list_available_games(db_session, venue_id="venue-2", now=now) == []

    async def test_user_schedule(self, db_session, create, join, make_profile, now):
        await make_profile("sam")
        first = await create(start_in=timedelta(hours=3))
        second = await create(start_in=timedelta(days=2))
        await join(first.id, "sam")
        await join(second.id, "sam")

        upcoming = await lifecycle.get_user_schedule(db_session, "sam", "upcoming", now=now)
        assert [g.id for g in upcoming] == [first.id, second.id]

        later = now + timedelta(days=3)
        past = await lifecycle.get_user_schedule(db_session, "sam", "past", now=later)
        assert [g.id for g in past] == [second.id, first.id]
        assert lifecycle.effective_status(past[0], later) is GameStatus.PAST

    async def test_schedule_range_validated(self, db_session):
        with pytest.raises(ValidationError):
            await lifecycle.get_user_schedule(db_session, "sam", "someday")
