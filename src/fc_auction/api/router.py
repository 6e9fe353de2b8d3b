"""fc_auction REST endpoints: client actions in the auction room.

GET    /sessions/{id}/state                  caller's view of the room
POST   /sessions/{id}/heartbeat              keep the caller marked as connected
POST   /sessions/{id}/nominate               current turn member puts a player up
POST   /sessions/{id}/confirm-nomination     nominator confirms
POST   /sessions/{id}/cancel-nomination      nominator (unconfirmed) or admin
POST   /sessions/{id}/ready                  ready-check
POST   /sessions/{id}/bid                    place a bid
POST   /sessions/{id}/acknowledge            acknowledge the last result
POST   /sessions/{id}/pass                   svincolati: pass the turn
POST   /sessions/{id}/finished               svincolati: declare finished
DELETE /sessions/{id}/finished               svincolati: undo finished
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.fc_auction.application.schemas import BidRequest, NominateRequest
from src.fc_auction.application.service import AuctionApplicationService
from src.fc_common.database import get_db_session
from src.fc_common.response import ApiResponse, respond
from src.fc_gateway.auth.dependencies import get_current_user
from src.fc_gateway.middleware.rate_limit import RateLimiter
from src.fc_gateway.user.db_models import UserModel

router = APIRouter(prefix="/sessions", tags=["auction"])

_service = AuctionApplicationService()
_bid_limiter = RateLimiter("bid", settings.RATE_LIMIT_BID_PER_MINUTE)

CurrentUser = Annotated[UserModel, Depends(get_current_user)]
DbSession = Annotated[AsyncSession, Depends(get_db_session)]


@router.get("/{session_id}/state")
async def get_state(
    session_id: str, request: Request, current_user: CurrentUser, db: DbSession
) -> ApiResponse:
    result = await _service.get_state(db, session_id, str(current_user.id))
    return respond(request, result.model_dump())


@router.post("/{session_id}/heartbeat")
async def heartbeat(
    session_id: str, request: Request, current_user: CurrentUser, db: DbSession
) -> ApiResponse:
    result = await _service.heartbeat(db, session_id, str(current_user.id))
    return respond(request, result.model_dump())


@router.post("/{session_id}/nominate")
async def nominate(
    session_id: str,
    body: NominateRequest,
    request: Request,
    current_user: CurrentUser,
    db: DbSession,
) -> ApiResponse:
    result = await _service.nominate(
        db, session_id, str(current_user.id), body.player_id, body.roster_entry_id
    )
    return respond(request, result.model_dump(), "Nomination pending confirmation")


@router.post("/{session_id}/confirm-nomination")
async def confirm_nomination(
    session_id: str, request: Request, current_user: CurrentUser, db: DbSession
) -> ApiResponse:
    result = await _service.confirm_nomination(db, session_id, str(current_user.id))
    return respond(request, result.model_dump(), "Nomination confirmed")


@router.post("/{session_id}/cancel-nomination")
async def cancel_nomination(
    session_id: str, request: Request, current_user: CurrentUser, db: DbSession
) -> ApiResponse:
    result = await _service.cancel_nomination(db, session_id, str(current_user.id))
    return respond(request, result.model_dump(), "Nomination cancelled")


@router.post("/{session_id}/ready")
async def mark_ready(
    session_id: str, request: Request, current_user: CurrentUser, db: DbSession
) -> ApiResponse:
    result = await _service.mark_ready(db, session_id, str(current_user.id))
    return respond(request, result.model_dump())


@router.post("/{session_id}/bid", dependencies=[Depends(_bid_limiter)])
async def place_bid(
    session_id: str,
    body: BidRequest,
    request: Request,
    current_user: CurrentUser,
    db: DbSession,
) -> ApiResponse:
    result = await _service.place_bid(db, session_id, str(current_user.id), body.amount)
    return respond(request, result.model_dump(), "Bid accepted")


@router.post("/{session_id}/acknowledge")
async def acknowledge(
    session_id: str, request: Request, current_user: CurrentUser, db: DbSession
) -> ApiResponse:
    result = await _service.acknowledge(db, session_id, str(current_user.id))
    return respond(request, result.model_dump())


@router.post("/{session_id}/pass")
async def pass_turn(
    session_id: str, request: Request, current_user: CurrentUser, db: DbSession
) -> ApiResponse:
    result = await _service.pass_turn(db, session_id, str(current_user.id))
    return respond(request, result.model_dump())


@router.post("/{session_id}/finished")
async def declare_finished(
    session_id: str, request: Request, current_user: CurrentUser, db: DbSession
) -> ApiResponse:
    result = await _service.declare_finished(db, session_id, str(current_user.id))
    return respond(request, result.model_dump())


@router.delete("/{session_id}/finished")
async def undo_finished(
    session_id: str, request: Request, current_user: CurrentUser, db: DbSession
) -> ApiResponse:
    result = await _service.undo_finished(db, session_id, str(current_user.id))
    return respond(request, result.model_dump())
