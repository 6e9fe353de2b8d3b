"""004: create players table

Revision ID: 004
Revises: 003
Create Date: 2026-09-14
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE players (
            id          VARCHAR(64)     PRIMARY KEY,
            name        VARCHAR(128)    NOT NULL,
            team        VARCHAR(64)     NOT NULL,
            position    CHAR(1)         NOT NULL,
            quotation   INTEGER         NOT NULL DEFAULT 1,
            age         SMALLINT,
            is_active   BOOLEAN         NOT NULL DEFAULT TRUE,
            created_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_players_position CHECK (position IN ('P', 'D', 'C', 'A')),
            CONSTRAINT ck_players_quotation CHECK (quotation >= 1)
        );
    """)
    op.execute("CREATE INDEX idx_players_position ON players (position) WHERE is_active;")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS players CASCADE;")
