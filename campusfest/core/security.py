"""
Bearer token verification and role gates.

Tokens are minted by the identity provider (HS256, claims `sub` = user id
and `role`). The API trusts a verified token, loads the user row and checks
roles. create_access_token exists for development and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from campusfest.core.config import get_settings
from campusfest.core.errors import ForbiddenError, RejectionReason
from campusfest.core.logging import bind_caller, get_logger
from campusfest.db.session import get_db
from campusfest.models.enums import UserRole
from campusfest.models.user import User

settings = get_settings()
logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

_credentials_exception = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Could not validate credentials",
    headers={"WWW-Authenticate": "Bearer"},
)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Sign a JWT with the configured secret."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError as e:
        logger.warning("token_rejected", error=str(e))
        raise _credentials_exception


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> int:
    if credentials is None:
        raise _credentials_exception
    payload = decode_access_token(credentials.credentials)
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise _credentials_exception


async def get_current_user(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> User:
    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        raise _credentials_exception
    bind_caller(user.id, user.role)
    return user


def require_role(*roles: UserRole):
    """Dependency factory: the caller must hold one of `roles` (admins always pass)."""
    allowed = {r.value for r in roles} | {UserRole.ADMIN.value}

    async def checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise ForbiddenError(
                RejectionReason.ROLE_REQUIRED,
                "Your account cannot perform this action.",
                required=sorted(r.value for r in roles),
            )
        return user

    return checker


require_participant = require_role(UserRole.PARTICIPANT)
require_organizer = require_role(UserRole.ORGANIZER)
