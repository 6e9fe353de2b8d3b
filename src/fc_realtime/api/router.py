"""WebSocket endpoint: relays a session's Redis channel to one client.

    ws://host/api/v1/ws/sessions/{session_id}?token=<access token>

On connect the client gets a "state-sync" message with its full view of
the room, then every event published on ``auction-{session_id}``.
Reconnecting clients simply get a fresh state-sync. Connecting, and any
frame the client sends afterwards, counts as a presence heartbeat.
"""

import asyncio
import contextlib
import json
import logging

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status

from src.fc_auction.application.service import AuctionApplicationService
from src.fc_common.database import async_session_factory
from src.fc_common.errors import AppError
from src.fc_common.redis_client import subscription
from src.fc_gateway.auth.dependencies import resolve_user
from src.fc_realtime.notifier import build_message, channel_for
from src.fc_realtime.presence import get_presence_tracker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

_service = AuctionApplicationService()

STATE_SYNC = "state-sync"


async def _relay(websocket: WebSocket, session_id: str) -> None:
    async with subscription(channel_for(session_id)) as pubsub:
        async for message in pubsub.listen():
            if message["type"] == "message":
                await websocket.send_text(message["data"])


async def _drain(websocket: WebSocket, session_id: str, member_id: str) -> None:
    # Inbound frames carry no commands, only liveness.
    presence = get_presence_tracker()
    while True:
        await websocket.receive_text()
        await presence.touch(session_id, member_id)


@router.websocket("/ws/sessions/{session_id}")
async def session_feed(websocket: WebSocket, session_id: str) -> None:
    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    async with async_session_factory() as db:
        try:
            user = await resolve_user(token, db)
            beat = await _service.heartbeat(db, session_id, str(user.id))
            state = await _service.get_state(db, session_id, str(user.id))
        except (HTTPException, AppError) as exc:
            logger.info("ws rejected for session %s: %s", session_id, exc)
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

    await websocket.accept()
    await websocket.send_text(build_message(STATE_SYNC, json.loads(state.model_dump_json())))
    logger.debug("ws connected: session=%s user=%s", session_id, user.id)

    relay = asyncio.create_task(_relay(websocket, session_id))
    try:
        await _drain(websocket, session_id, beat.member_id)
    except WebSocketDisconnect:
        logger.debug("ws disconnected: session=%s user=%s", session_id, user.id)
    finally:
        relay.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await relay
