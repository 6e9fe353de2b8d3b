"""007: create auctions and auction_bids tables (closed-auction history)

Revision ID: 007
Revises: 006
Create Date: 2026-09-14
"""
from typing import Sequence, Union
from alembic import op

revision: str = "007"
down_revision: Union[str, None] = "006"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE auctions (
            id                      VARCHAR(64)     PRIMARY KEY,
            session_id              VARCHAR(64)     NOT NULL REFERENCES market_sessions(id),
            league_id               VARCHAR(64)     NOT NULL REFERENCES leagues(id),
            variant                 VARCHAR(20)     NOT NULL,
            player_id               VARCHAR(64)     NOT NULL REFERENCES players(id),
            nominator_member_id     VARCHAR(64)     NOT NULL REFERENCES league_members(id),
            seller_member_id        VARCHAR(64)     REFERENCES league_members(id),
            roster_entry_id         VARCHAR(64)     REFERENCES player_rosters(id),
            base_price              INTEGER         NOT NULL,
            final_price             INTEGER,
            winner_member_id        VARCHAR(64)     REFERENCES league_members(id),
            outcome                 VARCHAR(16)     NOT NULL,
            closed_by               VARCHAR(16)     NOT NULL,
            started_at              TIMESTAMPTZ     NOT NULL,
            ended_at                TIMESTAMPTZ     NOT NULL,
            CONSTRAINT ck_auctions_outcome CHECK (outcome IN ('SOLD', 'NO_BIDS')),
            CONSTRAINT ck_auctions_winner CHECK (
                (outcome = 'SOLD' AND winner_member_id IS NOT NULL AND final_price IS NOT NULL)
                OR (outcome = 'NO_BIDS' AND winner_member_id IS NULL)
            )
        );
    """)
    op.execute("CREATE INDEX idx_auctions_session ON auctions (session_id, ended_at DESC);")

    op.execute("""
        CREATE TABLE auction_bids (
            id          VARCHAR(64)     PRIMARY KEY,
            auction_id  VARCHAR(64)     NOT NULL REFERENCES auctions(id),
            member_id   VARCHAR(64)     NOT NULL REFERENCES league_members(id),
            amount      INTEGER         NOT NULL,
            placed_at   TIMESTAMPTZ     NOT NULL,
            CONSTRAINT ck_auction_bids_amount CHECK (amount >= 1)
        );
    """)
    op.execute("CREATE INDEX idx_auction_bids_auction ON auction_bids (auction_id, placed_at);")
    op.execute("""
        CREATE TRIGGER trg_auction_bids_append_only
            BEFORE UPDATE OR DELETE ON auction_bids
            FOR EACH ROW EXECUTE FUNCTION fn_reject_mutation();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS auction_bids CASCADE;")
    op.execute("DROP TABLE IF EXISTS auctions CASCADE;")
