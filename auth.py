"""Password hashing, JWT issuing/verification and the FastAPI auth dependency.

Tokens are HS256 JWTs with the payload ``{"user": {"id": <user id>}, "exp": ...}``.
Nothing is stored server side: a validly signed, unexpired token is proof of
identity and logging out means the client throws its token away.

The client sends the token in a custom header (``x-auth-token`` by default,
see ``Settings.auth_header_name``), not in ``Authorization: Bearer``.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from fastapi import Depends, Request
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

import errors
from settings import Settings, get_settings

logger = structlog.get_logger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_token(user_id: int, settings: Optional[Settings] = None) -> str:
    """Sign a token for ``user_id`` that expires after the configured number of hours."""
    settings = settings or get_settings()
    expire = datetime.now(timezone.utc) + timedelta(hours=settings.jwt_expiration_hours)
    to_encode = {"user": {"id": user_id}, "exp": expire}
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str, settings: Optional[Settings] = None) -> int:
    """Return the user id embedded in ``token``.

    Raises ``errors.TokenExpired`` for an expired token and
    ``errors.InvalidToken`` for anything else that fails to decode.
    """
    settings = settings or get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError:
        logger.warning("JWT expired")
        raise errors.TokenExpired()
    except JWTError as exc:
        logger.warning("JWT verification failed", exc=str(exc))
        raise errors.InvalidToken()

    user = payload.get("user")
    if not isinstance(user, dict) or not isinstance(user.get("id"), int):
        logger.warning("JWT payload missing user id")
        raise errors.InvalidToken()
    return user["id"]


# Helper to extract the token header (works with FastAPI DI)
def _get_token_header(
    request: Request, settings: Settings = Depends(get_settings)
) -> Optional[str]:
    return request.headers.get(settings.auth_header_name)


# --- FastAPI dependency ---
def get_current_user_id(
    request: Request,
    token: Optional[str] = Depends(_get_token_header),
    settings: Settings = Depends(get_settings),
) -> int:
    """Resolve the caller's user id from the token header or reject the request."""
    if not token:
        raise errors.NoToken()

    user_id = verify_token(token, settings)
    request.state.user_id = user_id
    return user_id
