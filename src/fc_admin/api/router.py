"""Admin REST API: league-admin overrides on a market session."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.fc_admin.application.service import AdminService
from src.fc_auction.application.schemas import (
    PhaseRequest,
    RepairRequest,
    TimerRequest,
    TurnOrderRequest,
)
from src.fc_common.database import get_db_session
from src.fc_common.response import ApiResponse, respond
from src.fc_gateway.auth.dependencies import get_current_user
from src.fc_gateway.user.db_models import UserModel

router = APIRouter(prefix="/admin/sessions", tags=["admin"])
_service = AdminService()

CurrentUser = Annotated[UserModel, Depends(get_current_user)]
DbSession = Annotated[AsyncSession, Depends(get_db_session)]


@router.post("/{session_id}/turn-order")
async def set_turn_order(
    session_id: str,
    body: TurnOrderRequest,
    request: Request,
    current_user: CurrentUser,
    db: DbSession,
) -> ApiResponse:
    result = await _service.set_turn_order(db, session_id, str(current_user.id), body.member_ids)
    return respond(request, result, "Turn order set")


@router.post("/{session_id}/force-ready")
async def force_all_ready(
    session_id: str, request: Request, current_user: CurrentUser, db: DbSession
) -> ApiResponse:
    result = await _service.force_all_ready(db, session_id, str(current_user.id))
    return respond(request, result, "Bidding started")


@router.post("/{session_id}/force-acknowledge")
async def force_acknowledge_all(
    session_id: str, request: Request, current_user: CurrentUser, db: DbSession
) -> ApiResponse:
    result = await _service.force_acknowledge_all(db, session_id, str(current_user.id))
    return respond(request, result)


@router.post("/{session_id}/close-auction")
async def close_auction(
    session_id: str, request: Request, current_user: CurrentUser, db: DbSession
) -> ApiResponse:
    result = await _service.close_auction(db, session_id, str(current_user.id))
    return respond(request, result, "Auction closed")


@router.post("/{session_id}/pause")
async def pause_auction(
    session_id: str, request: Request, current_user: CurrentUser, db: DbSession
) -> ApiResponse:
    result = await _service.pause(db, session_id, str(current_user.id))
    return respond(request, result, "Auction paused")


@router.post("/{session_id}/resume")
async def resume_auction(
    session_id: str, request: Request, current_user: CurrentUser, db: DbSession
) -> ApiResponse:
    result = await _service.resume(db, session_id, str(current_user.id))
    return respond(request, result, "Auction resumed")


@router.post("/{session_id}/cancel-last-bid")
async def cancel_last_bid(
    session_id: str, request: Request, current_user: CurrentUser, db: DbSession
) -> ApiResponse:
    result = await _service.cancel_last_bid(db, session_id, str(current_user.id))
    return respond(request, result, "Last bid cancelled")


@router.post("/{session_id}/timer")
async def set_timer(
    session_id: str,
    body: TimerRequest,
    request: Request,
    current_user: CurrentUser,
    db: DbSession,
) -> ApiResponse:
    result = await _service.set_timer(db, session_id, str(current_user.id), body.seconds)
    return respond(request, result)


@router.post("/{session_id}/phase")
async def advance_phase(
    session_id: str,
    body: PhaseRequest,
    request: Request,
    current_user: CurrentUser,
    db: DbSession,
) -> ApiResponse:
    result = await _service.advance_phase(db, session_id, str(current_user.id), body.phase.value)
    return respond(request, result)


@router.post("/{session_id}/repair")
async def repair_session(
    session_id: str,
    body: RepairRequest,
    request: Request,
    current_user: CurrentUser,
    db: DbSession,
) -> ApiResponse:
    result = await _service.repair(
        db, session_id, str(current_user.id), body.turn_index, body.reset_stage
    )
    return respond(request, result, "Session repaired")


@router.get("/{session_id}/audit")
async def audit_log(
    session_id: str,
    request: Request,
    current_user: CurrentUser,
    db: DbSession,
    limit: int = Query(100, ge=1, le=500),
) -> ApiResponse:
    result = await _service.audit_log(db, session_id, str(current_user.id), limit)
    return respond(request, result)


@router.get("/{session_id}/frozen")
async def frozen_sessions(
    session_id: str, request: Request, current_user: CurrentUser, db: DbSession
) -> ApiResponse:
    result = await _service.frozen_sessions(db, session_id, str(current_user.id))
    return respond(request, result)
