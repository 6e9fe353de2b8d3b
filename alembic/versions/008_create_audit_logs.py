"""008: create audit_logs table

Revision ID: 008
Revises: 007
Create Date: 2026-09-14
"""
from typing import Sequence, Union
from alembic import op

revision: str = "008"
down_revision: Union[str, None] = "007"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE audit_logs (
            id          BIGSERIAL       PRIMARY KEY,
            user_id     UUID            NOT NULL REFERENCES users(id),
            league_id   VARCHAR(64)     NOT NULL REFERENCES leagues(id),
            action      VARCHAR(64)     NOT NULL,
            entity_type VARCHAR(32)     NOT NULL,
            entity_id   VARCHAR(64)     NOT NULL,
            old_values  JSONB,
            new_values  JSONB,
            created_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW()
        );
    """)
    op.execute(
        "CREATE INDEX idx_audit_logs_league ON audit_logs (league_id, entity_id, created_at DESC);"
    )
    op.execute("""
        CREATE TRIGGER trg_audit_logs_append_only
            BEFORE UPDATE OR DELETE ON audit_logs
            FOR EACH ROW EXECUTE FUNCTION fn_reject_mutation();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS audit_logs CASCADE;")
