"""Games, participants, scheduled reminders and the shared collaborator tables.

venues and user_profiles are owned by the venue directory and profile
services; they are created here only if missing so a fresh database works.

Revision ID: 001_games_tables
Revises: None
Create Date: 2026-10-17
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_games_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Collaborator tables ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS venues (
            id VARCHAR(64) PRIMARY KEY,
            name VARCHAR(100) NOT NULL,
            address VARCHAR(200) NOT NULL,
            is_approved BOOLEAN NOT NULL DEFAULT false,
            is_active BOOLEAN NOT NULL DEFAULT true
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_profiles (
            user_id VARCHAR(64) PRIMARY KEY,
            display_name VARCHAR(64) NOT NULL,
            email VARCHAR(320),
            skill_rating VARCHAR(16),
            notification_prefs JSONB
        )
    """)

    # --- Games ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS games (
            id VARCHAR(64) PRIMARY KEY,
            organizer_id VARCHAR(64) NOT NULL,
            start_time TIMESTAMPTZ NOT NULL,
            venue_id VARCHAR(64) NOT NULL,
            venue_name VARCHAR(100) NOT NULL,
            venue_address VARCHAR(200) NOT NULL,
            min_participants INTEGER NOT NULL,
            max_participants INTEGER NOT NULL,
            current_participants INTEGER NOT NULL DEFAULT 0,
            status VARCHAR(16) NOT NULL DEFAULT 'scheduled',
            skill_min VARCHAR(16),
            skill_max VARCHAR(16),
            version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL,
            CONSTRAINT ck_games_min CHECK (min_participants >= 2 AND min_participants <= max_participants),
            CONSTRAINT ck_games_max CHECK (max_participants <= 8),
            CONSTRAINT ck_games_occupancy CHECK (
                current_participants >= 0 AND current_participants <= max_participants
            )
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_games_organizer_id ON games(organizer_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_games_venue_id ON games(venue_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_games_status_start ON games(status, start_time)")

    # --- Participants ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS game_participants (
            id VARCHAR(64) PRIMARY KEY,
            game_id VARCHAR(64) NOT NULL REFERENCES games(id) ON DELETE CASCADE,
            user_id VARCHAR(64) NOT NULL,
            display_name VARCHAR(64) NOT NULL,
            skill_rating VARCHAR(16),
            joined_at TIMESTAMPTZ NOT NULL,
            CONSTRAINT uq_game_participants_game_user UNIQUE (game_id, user_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_game_participants_user ON game_participants(user_id)")

    # --- Scheduled reminders ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS scheduled_reminders (
            game_id VARCHAR(64) NOT NULL REFERENCES games(id) ON DELETE CASCADE,
            kind VARCHAR(8) NOT NULL,
            fire_at TIMESTAMPTZ NOT NULL,
            start_time TIMESTAMPTZ NOT NULL,
            created_at TIMESTAMPTZ NOT NULL,
            PRIMARY KEY (game_id, kind)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_scheduled_reminders_fire_at ON scheduled_reminders(fire_at)")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS scheduled_reminders")
    op.execute("DROP TABLE IF EXISTS game_participants")
    op.execute("DROP TABLE IF EXISTS games")
