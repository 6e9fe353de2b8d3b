"""003: create leagues and league_members tables

Revision ID: 003
Revises: 002
Create Date: 2026-09-14
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE leagues (
            id                  VARCHAR(64)     PRIMARY KEY,
            name                VARCHAR(128)    NOT NULL,
            goalkeeper_slots    SMALLINT        NOT NULL DEFAULT 3,
            defender_slots      SMALLINT        NOT NULL DEFAULT 8,
            midfielder_slots    SMALLINT        NOT NULL DEFAULT 8,
            forward_slots       SMALLINT        NOT NULL DEFAULT 6,
            initial_budget      INTEGER         NOT NULL DEFAULT 500,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_leagues_slots CHECK (
                goalkeeper_slots > 0 AND defender_slots > 0
                AND midfielder_slots > 0 AND forward_slots > 0
            ),
            CONSTRAINT ck_leagues_budget CHECK (initial_budget > 0)
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_leagues_updated_at
            BEFORE UPDATE ON leagues
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)

    op.execute("""
        CREATE TABLE league_members (
            id              VARCHAR(64)     PRIMARY KEY,
            league_id       VARCHAR(64)     NOT NULL REFERENCES leagues(id),
            user_id         UUID            NOT NULL REFERENCES users(id),
            team_name       VARCHAR(128),
            role            VARCHAR(16)     NOT NULL DEFAULT 'MANAGER',
            status          VARCHAR(16)     NOT NULL DEFAULT 'ACTIVE',
            current_budget  INTEGER         NOT NULL,
            joined_at       TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_league_members_user UNIQUE (league_id, user_id),
            CONSTRAINT ck_league_members_role CHECK (role IN ('ADMIN', 'MANAGER')),
            CONSTRAINT ck_league_members_status CHECK (status IN ('ACTIVE', 'LEFT')),
            CONSTRAINT ck_league_members_budget CHECK (current_budget >= 0)
        );
    """)
    op.execute("CREATE INDEX idx_league_members_league ON league_members (league_id, status);")
    op.execute("""
        CREATE TRIGGER trg_league_members_updated_at
            BEFORE UPDATE ON league_members
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS league_members CASCADE;")
    op.execute("DROP TABLE IF EXISTS leagues CASCADE;")
