"""Account service: register, login, refresh.

Works on the injected AsyncSession; the router owns the transaction
(`async with db.begin()`).
"""

import logging

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.fc_common.datetime_utils import utc_now
from src.fc_common.errors import (
    AccountDisabledError,
    EmailExistsError,
    InvalidCredentialsError,
    UsernameExistsError,
)
from src.fc_gateway.auth.jwt_handler import (
    create_access_token,
    create_refresh_token,
    decode_token,
)
from src.fc_gateway.auth.password import hash_password, verify_password
from src.fc_gateway.user.db_models import UserModel

logger = logging.getLogger(__name__)


class UserService:
    async def register(
        self,
        username: str,
        email: str,
        password: str,
        db: AsyncSession,
        display_name: str | None = None,
    ) -> UserModel:
        taken = (
            await db.execute(
                select(UserModel).where(
                    or_(UserModel.username == username, UserModel.email == email)
                )
            )
        ).scalar_one_or_none()
        if taken is not None:
            # unique constraints still guard concurrent registrations
            raise UsernameExistsError() if taken.username == username else EmailExistsError()

        user = UserModel(
            username=username,
            email=email,
            password_hash=hash_password(password),
            display_name=display_name,
            is_active=True,
        )
        db.add(user)
        await db.flush()
        await db.refresh(user)
        logger.info("registered user %s (%s)", user.username, user.id)
        return user

    async def login(
        self,
        username: str,
        password: str,
        db: AsyncSession,
    ) -> tuple[UserModel, str, str]:
        """Return (user, access_token, refresh_token).

        An unknown username and a wrong password are indistinguishable.
        """
        user = (
            await db.execute(select(UserModel).where(UserModel.username == username))
        ).scalar_one_or_none()
        if user is None or not verify_password(password, user.password_hash):
            logger.info("failed login for %r", username)
            raise InvalidCredentialsError()
        if not user.is_active:
            raise AccountDisabledError()

        user.last_login_at = utc_now()
        subject = str(user.id)
        return user, create_access_token(subject), create_refresh_token(subject)

    async def refresh(self, refresh_token: str) -> str:
        payload = decode_token(refresh_token, expected_type="refresh")
        return create_access_token(str(payload["sub"]))
