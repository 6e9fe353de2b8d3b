"""DB helpers for audit_logs.

Administrative overrides (force ready, force acknowledge, close, pause,
turn order, phase changes, repairs) are recorded in the same transaction
as the override itself.
"""

import json
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

_INSERT_AUDIT_SQL = text("""
    INSERT INTO audit_logs
        (user_id, league_id, action, entity_type, entity_id, old_values, new_values)
    VALUES (CAST(:user_id AS UUID), :league_id, :action, :entity_type, :entity_id,
            CAST(:old_values AS JSONB), CAST(:new_values AS JSONB))
""")

_LIST_AUDIT_SQL = text("""
    SELECT id, user_id, league_id, action, entity_type, entity_id,
           old_values, new_values, created_at
    FROM audit_logs
    WHERE league_id = :league_id
      AND (CAST(:entity_id AS TEXT) IS NULL OR entity_id = CAST(:entity_id AS TEXT))
    ORDER BY created_at DESC, id DESC
    LIMIT :limit
""")


def _dumps(values: dict[str, Any] | None) -> str | None:
    return json.dumps(values, default=str) if values is not None else None


async def write_audit(
    db: AsyncSession,
    user_id: str,
    league_id: str,
    action: str,
    entity_type: str,
    entity_id: str,
    old_values: dict[str, Any] | None = None,
    new_values: dict[str, Any] | None = None,
) -> None:
    """Insert one row into audit_logs within the caller's transaction."""
    await db.execute(
        _INSERT_AUDIT_SQL,
        {
            "user_id": user_id,
            "league_id": league_id,
            "action": action,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "old_values": _dumps(old_values),
            "new_values": _dumps(new_values),
        },
    )


async def list_audit(
    db: AsyncSession, league_id: str, entity_id: str | None = None, limit: int = 100
) -> list[dict[str, Any]]:
    rows = (
        await db.execute(
            _LIST_AUDIT_SQL, {"league_id": league_id, "entity_id": entity_id, "limit": limit}
        )
    ).fetchall()
    return [
        {
            "id": r.id,
            "user_id": str(r.user_id),
            "action": r.action,
            "entity_type": r.entity_type,
            "entity_id": r.entity_id,
            "old_values": json.loads(r.old_values) if isinstance(r.old_values, str) else r.old_values,
            "new_values": json.loads(r.new_values) if isinstance(r.new_values, str) else r.new_values,
            "created_at": r.created_at.isoformat(),
        }
        for r in rows
    ]
