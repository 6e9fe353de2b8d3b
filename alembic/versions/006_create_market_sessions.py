"""006: create market_sessions table

Revision ID: 006
Revises: 005
Create Date: 2026-09-14
"""
from typing import Sequence, Union
from alembic import op

revision: str = "006"
down_revision: Union[str, None] = "005"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE market_sessions (
            id                      VARCHAR(64)     PRIMARY KEY,
            league_id               VARCHAR(64)     NOT NULL REFERENCES leagues(id),
            phase                   VARCHAR(20)     NOT NULL DEFAULT 'SETUP',
            current_role            CHAR(1),
            role_sequence           JSONB           NOT NULL DEFAULT '["P", "D", "C", "A"]',
            auction_timer_seconds   INTEGER         NOT NULL DEFAULT 30,
            auction_mode            VARCHAR(16)     NOT NULL DEFAULT 'REMOTE',
            base_price_policy       VARCHAR(16)     NOT NULL DEFAULT 'QUOTATION',
            first_market_lane       JSONB,
            rubata_lane             JSONB,
            svincolati_lane         JSONB,
            timer_expires_at        TIMESTAMPTZ,
            frozen_reason           VARCHAR(500),
            created_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_market_sessions_phase CHECK (phase IN (
                'SETUP', 'FIRST_MARKET', 'CONTRACTS', 'RUBATA',
                'SVINCOLATI', 'PRIZES', 'COMPLETED'
            )),
            CONSTRAINT ck_market_sessions_timer CHECK (auction_timer_seconds > 0),
            CONSTRAINT ck_market_sessions_mode CHECK (auction_mode IN ('REMOTE', 'IN_PRESENCE')),
            CONSTRAINT ck_market_sessions_policy CHECK (
                base_price_policy IN ('QUOTATION', 'FIXED')
            )
        );
    """)
    op.execute("CREATE INDEX idx_market_sessions_league ON market_sessions (league_id);")
    # expiry sweeper scan
    op.execute("""
        CREATE INDEX idx_market_sessions_timer
            ON market_sessions (timer_expires_at)
            WHERE timer_expires_at IS NOT NULL AND frozen_reason IS NULL;
    """)
    op.execute("""
        CREATE TRIGGER trg_market_sessions_updated_at
            BEFORE UPDATE ON market_sessions
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS market_sessions CASCADE;")
