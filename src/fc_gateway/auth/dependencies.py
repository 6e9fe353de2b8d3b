"""Bearer authentication for HTTP routes and the WebSocket handshake.

    @router.post("/{session_id}/bid")
    async def place_bid(current_user: Annotated[UserModel, Depends(get_current_user)]): ...
"""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.fc_common.database import get_db_session
from src.fc_common.errors import AccountDisabledError, InvalidCredentialsError
from src.fc_gateway.auth.jwt_handler import ACCESS, decode_token
from src.fc_gateway.user.db_models import UserModel

_bearer = HTTPBearer(auto_error=False)


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def resolve_user(token: str, db: AsyncSession) -> UserModel:
    """Active user behind an access token; 401 otherwise, 403 if disabled."""
    try:
        user_id = decode_token(token, expected_type=ACCESS)["sub"]
    except InvalidCredentialsError:
        raise _unauthorized() from None

    user = (await db.execute(select(UserModel).where(UserModel.id == user_id))).scalar_one_or_none()
    if user is None:
        raise _unauthorized()
    if not user.is_active:
        raise AccountDisabledError()
    return user


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)],
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> UserModel:
    if credentials is None:
        raise _unauthorized()
    return await resolve_user(credentials.credentials, db)
