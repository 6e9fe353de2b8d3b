"""005: create player_rosters and player_contracts tables

Revision ID: 005
Revises: 004
Create Date: 2026-09-14
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE player_rosters (
            id                  VARCHAR(64)     PRIMARY KEY,
            league_id           VARCHAR(64)     NOT NULL REFERENCES leagues(id),
            league_member_id    VARCHAR(64)     NOT NULL REFERENCES league_members(id),
            player_id           VARCHAR(64)     NOT NULL REFERENCES players(id),
            acquisition_price   INTEGER         NOT NULL,
            acquisition_type    VARCHAR(20)     NOT NULL,
            status              VARCHAR(16)     NOT NULL DEFAULT 'ACTIVE',
            acquired_at         TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_player_rosters_price CHECK (acquisition_price >= 1),
            CONSTRAINT ck_player_rosters_type CHECK (
                acquisition_type IN ('FIRST_MARKET', 'RUBATA', 'SVINCOLATI')
            ),
            CONSTRAINT ck_player_rosters_status CHECK (status IN ('ACTIVE', 'RELEASED'))
        );
    """)
    # a player belongs to at most one team per league
    op.execute("""
        CREATE UNIQUE INDEX uq_player_rosters_active
            ON player_rosters (league_id, player_id)
            WHERE status = 'ACTIVE';
    """)
    op.execute(
        "CREATE INDEX idx_player_rosters_member ON player_rosters (league_member_id, status);"
    )
    op.execute("""
        CREATE TRIGGER trg_player_rosters_updated_at
            BEFORE UPDATE ON player_rosters
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)

    op.execute("""
        CREATE TABLE player_contracts (
            id                  VARCHAR(64)     PRIMARY KEY,
            roster_id           VARCHAR(64)     NOT NULL REFERENCES player_rosters(id),
            salary              INTEGER         NOT NULL,
            duration            SMALLINT        NOT NULL,
            rescission_clause   INTEGER         NOT NULL,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_player_contracts_roster UNIQUE (roster_id),
            CONSTRAINT ck_player_contracts_salary CHECK (salary >= 1),
            CONSTRAINT ck_player_contracts_duration CHECK (duration BETWEEN 1 AND 4)
        );
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS player_contracts CASCADE;")
    op.execute("DROP TABLE IF EXISTS player_rosters CASCADE;")
