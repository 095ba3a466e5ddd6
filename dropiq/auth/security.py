from __future__ import annotations

import time
import uuid
from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dropiq.core.config import JWT_SECRET, JWT_ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES, get_rate_limit_per_minute
from dropiq.core.database import get_async_session
from dropiq.core.time_utils import utc_now
from dropiq.models.database import User as ORMUser

# Password hashing context; pbkdf2 is the default, bcrypt hashes still verify
_pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")
_optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)

# In-memory blacklist of revoked token ids (jti)
_TOKEN_BLACKLIST: set[str] = set()

# Simple in-memory rate limiter: user_id -> (window_start_epoch_sec, count)
_RATE_LIMIT_STATE: Dict[int, tuple[int, int]] = {}


def reset_in_memory_auth_state() -> None:
    """Reset in-memory auth-related state (blacklist, rate limits).

    Used for tests to ensure isolation between app startups/TestClient contexts.
    """
    _TOKEN_BLACKLIST.clear()
    _RATE_LIMIT_STATE.clear()


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return _pwd_context.verify(password, password_hash)
    except ValueError:
        # Unrecognized hash format
        return False


def create_access_token(subject: str, additional_claims: Optional[Dict[str, Any]] = None, expires_minutes: Optional[int] = None) -> str:
    expire_delta = expires_minutes if expires_minutes is not None else ACCESS_TOKEN_EXPIRE_MINUTES
    expire = utc_now() + timedelta(minutes=expire_delta)
    to_encode: Dict[str, Any] = {"sub": subject, "exp": expire, "jti": str(uuid.uuid4())}
    if additional_claims:
        to_encode.update(additional_claims)
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])


def _user_id_from_token(token: Optional[str]) -> int:
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    try:
        payload = decode_token(token)
        sub = payload.get("sub")
        if sub is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")
        if payload.get("jti") in _TOKEN_BLACKLIST:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
        return int(sub)
    except (JWTError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Could not validate credentials")


async def get_current_user(token: str = Depends(oauth2_scheme), session: AsyncSession = Depends(get_async_session)) -> ORMUser:
    user_id = _user_id_from_token(token)
    result = await session.execute(select(ORMUser).where(ORMUser.id == user_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Inactive user")
    return user


async def get_optional_user(token: Optional[str] = Depends(_optional_oauth2_scheme), session: AsyncSession = Depends(get_async_session)) -> Optional[ORMUser]:
    """Like get_current_user, but anonymous requests resolve to None.

    A token that is present but invalid is still rejected with 401.
    """
    if not token:
        return None
    return await get_current_user(token=token, session=session)


async def require_admin(user: ORMUser = Depends(get_current_user)) -> ORMUser:
    if user.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin privileges required")
    return user


def ensure_owner(owner_id: int, user: ORMUser) -> None:
    if user.id != owner_id and user.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden: not the owner")


def blacklist_token(token: str) -> None:
    try:
        jti = decode_token(token).get("jti")
    except JWTError:
        return
    if jti:
        _TOKEN_BLACKLIST.add(jti)


def rate_limit_check(user_id: int) -> None:
    now = int(time.time())
    window_start = now - (now % 60)
    state = _RATE_LIMIT_STATE.get(user_id)
    if state is None or state[0] != window_start:
        _RATE_LIMIT_STATE[user_id] = (window_start, 1)
        return
    count = state[1] + 1
    if count > get_rate_limit_per_minute():
        raise HTTPException(status_code=429, detail="Rate limit exceeded")
    _RATE_LIMIT_STATE[user_id] = (window_start, count)


async def rate_limiter_dependency(user: ORMUser = Depends(get_current_user)) -> ORMUser:
    rate_limit_check(user.id)
    return user
