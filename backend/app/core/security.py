"""
Password hashing, JWT issuing, and the request-level identity gate.

Route dependencies resolve the caller before any service runs:
- get_current_user_id: any valid bearer token
- get_current_user: loads the active user row
- require_staff: staff (administrator) role only
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import ForbiddenError, UnauthorizedError
from app.core.logging import get_logger
from app.db.session import get_db
from app.models.user import User, UserRole

logger = get_logger(__name__)
settings = get_settings()

bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> int:
    """Decode the bearer token and return the subject user id."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise UnauthorizedError("Not authorized, no token")

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
        )
        subject = payload.get("sub")
        if subject is None:
            raise UnauthorizedError("Not authorized, token failed")
        return int(subject)
    except (JWTError, ValueError):
        logger.warning("token_rejected")
        raise UnauthorizedError("Not authorized, token failed")


async def get_current_user(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> User:
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise UnauthorizedError("Not authorized, user not found")
    return user


async def require_staff(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.STAFF:
        logger.warning("staff_only_rejected", user_id=user.id, role=user.role)
        raise ForbiddenError("Not authorized, staff only")
    return user
