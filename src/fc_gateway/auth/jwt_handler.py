"""Signed access and refresh tokens (python-jose, shared JWT_SECRET).

Claims: sub (user id), type ("access" | "refresh"), iss, iat, exp. A token
of the wrong type is rejected exactly like a forged one. Tokens cannot be
revoked; an access token lives until ``exp``.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from config.settings import settings
from src.fc_common.errors import AppError, InvalidCredentialsError, InvalidRefreshTokenError

ACCESS = "access"
REFRESH = "refresh"

_ISSUER = "fantacalcio-market-room"
_ACCESS_EXPIRE = timedelta(minutes=settings.JWT_EXPIRE_MINUTES)
_REFRESH_EXPIRE = timedelta(days=settings.JWT_REFRESH_EXPIRE_DAYS)

_REJECTIONS: dict[str, type[AppError]] = {
    ACCESS: InvalidCredentialsError,
    REFRESH: InvalidRefreshTokenError,
}


def _issue(user_id: str, token_type: str, ttl: timedelta) -> str:
    issued = datetime.now(UTC)
    claims = {"sub": user_id, "type": token_type, "iss": _ISSUER, "iat": issued, "exp": issued + ttl}
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_access_token(user_id: str) -> str:
    return _issue(user_id, ACCESS, _ACCESS_EXPIRE)


def create_refresh_token(user_id: str) -> str:
    return _issue(user_id, REFRESH, _REFRESH_EXPIRE)


def decode_token(token: str, expected_type: str) -> dict[str, Any]:
    """Verified claims of ``token``.

    Raises InvalidCredentialsError for a bad access token and
    InvalidRefreshTokenError for a bad refresh token.
    """
    rejection = _REJECTIONS[expected_type]
    try:
        claims = jwt.decode(
            token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM], issuer=_ISSUER
        )
    except JWTError:
        raise rejection() from None
    if claims.get("type") != expected_type or not claims.get("sub"):
        raise rejection()
    return claims
