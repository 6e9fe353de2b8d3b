"""Auth endpoints: register, login, refresh. No bearer token required."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.fc_common.database import get_db_session
from src.fc_common.response import ApiResponse, respond
from src.fc_gateway.user.db_models import UserModel
from src.fc_gateway.user.schemas import (
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    RefreshResponse,
    RegisterRequest,
    RegisterResponse,
    UserInfo,
)
from src.fc_gateway.user.service import UserService

router = APIRouter(prefix="/auth", tags=["auth"])
_service = UserService()

DbSession = Annotated[AsyncSession, Depends(get_db_session)]

_ACCESS_TTL_SECONDS = settings.JWT_EXPIRE_MINUTES * 60


def _user_info(user: UserModel) -> UserInfo:
    return UserInfo(
        user_id=str(user.id),
        username=user.username,
        display_name=user.public_name,
        email=user.email,
    )


@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=ApiResponse)
async def register(request: Request, body: RegisterRequest, db: DbSession) -> ApiResponse:
    async with db.begin():
        user = await _service.register(
            body.username, body.email, body.password, db, display_name=body.display_name
        )
    data = RegisterResponse(**_user_info(user).model_dump(), created_at=user.created_at.isoformat())
    return respond(request, data.model_dump(), "Registered")


@router.post("/login", response_model=ApiResponse)
async def login(request: Request, body: LoginRequest, db: DbSession) -> ApiResponse:
    async with db.begin():
        user, access_token, refresh_token = await _service.login(body.username, body.password, db)
    data = LoginResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=_ACCESS_TTL_SECONDS,
        user=_user_info(user),
    )
    return respond(request, data.model_dump(), "Logged in")


@router.post("/refresh", response_model=ApiResponse)
async def refresh(request: Request, body: RefreshRequest) -> ApiResponse:
    access_token = await _service.refresh(body.refresh_token)
    data = RefreshResponse(access_token=access_token, expires_in=_ACCESS_TTL_SECONDS)
    return respond(request, data.model_dump(), "Token refreshed")
