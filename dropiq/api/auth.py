from __future__ import annotations

import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from dropiq.auth.security import (
    blacklist_token,
    create_access_token,
    get_current_user,
    hash_password,
    oauth2_scheme,
    verify_password,
)
from dropiq.core.config import is_admin_email
from dropiq.core.database import get_async_session
from dropiq.core.metrics import metrics
from dropiq.core.time_utils import isoformat_utc, utc_now
from dropiq.models.database import User as ORMUser

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

_USERNAME_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class RegisterRequest(BaseModel):
    username: str
    email: str
    password: str
    display_name: Optional[str] = None

    def validate_basic(self) -> None:
        if not 3 <= len(self.username) <= 50:
            raise HTTPException(status_code=400, detail="Username must be 3-50 characters")
        if not _USERNAME_RE.match(self.username):
            raise HTTPException(status_code=400, detail="Username may only contain letters, digits, '.', '_' and '-'")
        if "@" not in self.email or "." not in self.email:
            raise HTTPException(status_code=400, detail="Invalid email")
        if len(self.password) < 8:
            raise HTTPException(status_code=400, detail="Password too short (min 8)")


class LoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


def user_summary(user: ORMUser) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "display_name": user.display_name,
        "role": user.role,
        "is_active": user.is_active,
        "reputation": user.reputation,
        "level": user.level,
        "created_at": isoformat_utc(user.created_at),
        "last_login": isoformat_utc(user.last_login),
    }


@router.post("/register")
async def register(payload: RegisterRequest, session: AsyncSession = Depends(get_async_session)):
    payload.validate_basic()
    email = payload.email.strip().lower()

    result = await session.execute(select(ORMUser).where(ORMUser.username == payload.username))
    if result.scalar_one_or_none() is not None:
        raise HTTPException(status_code=409, detail="Username already taken")
    result = await session.execute(select(ORMUser).where(ORMUser.email == email))
    if result.scalar_one_or_none() is not None:
        raise HTTPException(status_code=409, detail="Email already in use")

    user = ORMUser(
        username=payload.username,
        email=email,
        password_hash=hash_password(payload.password),
        display_name=payload.display_name or payload.username,
        role="admin" if is_admin_email(email) else "user",
    )
    session.add(user)
    await session.commit()
    metrics.increment_event("auth.register")
    logger.info("user_registered", extra={"user_id": user.id, "role": user.role})
    return {"id": user.id, "username": user.username, "email": user.email, "role": user.role}


@router.post("/login", response_model=TokenResponse)
async def login(payload: LoginRequest, session: AsyncSession = Depends(get_async_session)):
    # Either the username or the email may be used to sign in
    ident = payload.username.strip()
    result = await session.execute(
        select(ORMUser).where(or_(ORMUser.username == ident, ORMUser.email == ident.lower()))
    )
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    if not user.password_hash or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    user.last_login = utc_now()
    await session.commit()
    metrics.increment_event("auth.login")
    token = create_access_token(subject=str(user.id), additional_claims={"role": user.role})
    return TokenResponse(access_token=token)


@router.get("/me")
async def me(current_user: ORMUser = Depends(get_current_user)):
    return user_summary(current_user)


@router.post("/logout")
async def logout(token: str = Depends(oauth2_scheme), _user: ORMUser = Depends(get_current_user)):
    blacklist_token(token)
    metrics.increment_event("auth.logout")
    return {"detail": "Logged out"}
