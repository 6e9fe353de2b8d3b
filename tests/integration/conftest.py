"""Integration fixtures (requires running PG + Redis, migrated schema).

Every test shares one event loop so the module-level SQLAlchemy pool, the
Redis pool and the process-wide AuctionEngine stay valid for the whole run.
"""

import uuid
from dataclasses import dataclass

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text

from src.fc_common.database import async_session_factory
from src.fc_common.id_generator import generate_id
from src.main import app


@dataclass
class Manager:
    user_id: str
    member_id: str
    headers: dict[str, str]


@dataclass
class Room:
    league_id: str
    session_id: str
    player_id: str
    admin: Manager
    manager: Manager


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def client() -> AsyncClient:  # type: ignore[override]
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def _signup(client: AsyncClient) -> tuple[str, dict[str, str]]:
    uid = uuid.uuid4().hex[:8]
    creds = {"username": f"mister_{uid}", "email": f"mister_{uid}@example.com", "password": "Forza1926"}
    resp = await client.post("/api/v1/auth/register", json=creds)
    assert resp.status_code == 201, resp.text
    login = await client.post(
        "/api/v1/auth/login",
        json={"username": creds["username"], "password": creds["password"]},
    )
    data = login.json()["data"]
    return data["user"]["user_id"], {"Authorization": f"Bearer {data['access_token']}"}


@pytest_asyncio.fixture(loop_scope="session")
async def room(client: AsyncClient) -> Room:
    """A fresh two-member league in FIRST_MARKET (goalkeepers) with one free keeper."""
    admin_user, admin_headers = await _signup(client)
    manager_user, manager_headers = await _signup(client)
    league_id, session_id, player_id = generate_id(), generate_id(), generate_id()
    admin_member, manager_member = generate_id(), generate_id()

    async with async_session_factory() as db, db.begin():
        await db.execute(
            text(
                "INSERT INTO leagues (id, name, goalkeeper_slots, defender_slots,"
                " midfielder_slots, forward_slots, initial_budget)"
                " VALUES (:id, 'Lega Test', 1, 1, 1, 1, 100)"
            ),
            {"id": league_id},
        )
        for member_id, user_id, role in (
            (admin_member, admin_user, "ADMIN"),
            (manager_member, manager_user, "MANAGER"),
        ):
            await db.execute(
                text(
                    "INSERT INTO league_members (id, league_id, user_id, team_name, role, current_budget)"
                    " VALUES (:id, :league_id, CAST(:user_id AS UUID), :team, :role, 100)"
                ),
                {"id": member_id, "league_id": league_id, "user_id": user_id,
                 "team": f"Team {role.title()}", "role": role},
            )
        await db.execute(
            text(
                "INSERT INTO players (id, name, team, position, quotation)"
                " VALUES (:id, 'Maignan', 'MIL', 'P', 18)"
            ),
            {"id": player_id},
        )
        await db.execute(
            text(
                "INSERT INTO market_sessions (id, league_id, phase, current_role)"
                " VALUES (:id, :league_id, 'FIRST_MARKET', 'P')"
            ),
            {"id": session_id, "league_id": league_id},
        )

    return Room(
        league_id=league_id,
        session_id=session_id,
        player_id=player_id,
        admin=Manager(admin_user, admin_member, admin_headers),
        manager=Manager(manager_user, manager_member, manager_headers),
    )
