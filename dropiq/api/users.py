from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dropiq.api.airdrops import PROGRESS_STATUSES, list_user_progress
from dropiq.api.auth import user_summary
from dropiq.auth.security import get_current_user
from dropiq.core.config import EXPERIENCE_PER_LEVEL
from dropiq.core.database import get_async_session
from dropiq.core.metrics import metrics
from dropiq.core.time_utils import isoformat_utc
from dropiq.models.database import (
    Achievement as ORMAchievement,
    Follow as ORMFollow,
    Strategy as ORMStrategy,
    User as ORMUser,
    UserAchievement as ORMUserAchievement,
    UserAirdropStatus as ORMUserAirdropStatus,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["users"])
public_router = APIRouter(prefix="/users", tags=["users"])

LEADERBOARD_TYPES = ("reputation", "achievements", "earnings")


class ProfileUpdateRequest(BaseModel):
    display_name: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None

    def validate_basic(self) -> None:
        if self.display_name is not None and not 1 <= len(self.display_name.strip()) <= 100:
            raise HTTPException(status_code=400, detail="Display name must be 1-100 characters")
        if self.bio is not None and len(self.bio) > 500:
            raise HTTPException(status_code=400, detail="Bio too long (max 500)")
        if self.avatar_url and not self.avatar_url.startswith(("http://", "https://")):
            raise HTTPException(status_code=400, detail="Invalid avatar URL")


class AchievementUnlockRequest(BaseModel):
    achievement_id: Optional[int] = None
    name: Optional[str] = None
    progress: int = 100

    def validate_basic(self) -> None:
        if self.achievement_id is None and not self.name:
            raise HTTPException(status_code=400, detail="achievement_id or name is required")
        if not 0 <= self.progress <= 100:
            raise HTTPException(status_code=400, detail="progress must be between 0 and 100")


async def _count(session: AsyncSession, stmt) -> int:
    return int((await session.execute(stmt)).scalar_one() or 0)


async def follow_counts(session: AsyncSession, user_id: int) -> Dict[str, int]:
    return {
        "followers": await _count(session, select(func.count(ORMFollow.id)).where(ORMFollow.following_id == user_id)),
        "following": await _count(session, select(func.count(ORMFollow.id)).where(ORMFollow.follower_id == user_id)),
    }


def public_profile(user: ORMUser) -> Dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "display_name": user.display_name,
        "bio": user.bio,
        "avatar_url": user.avatar_url,
        "reputation": user.reputation,
        "experience": user.experience,
        "level": user.level,
        "created_at": isoformat_utc(user.created_at),
    }


@router.get("/profile")
async def get_profile(user: ORMUser = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    data = user_summary(user)
    data.update(public_profile(user))
    data.update(await follow_counts(session, user.id))
    return {"success": True, "data": data}


@router.put("/profile")
async def update_profile(
    payload: ProfileUpdateRequest,
    user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    payload.validate_basic()
    if payload.display_name is not None:
        user.display_name = payload.display_name.strip()
    if payload.bio is not None:
        user.bio = payload.bio
    if payload.avatar_url is not None:
        user.avatar_url = payload.avatar_url or None
    await session.commit()
    data = user_summary(user)
    data.update(public_profile(user))
    return {"success": True, "data": data}


@router.get("/stats")
async def get_stats(user: ORMUser = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    by_status = dict((await session.execute(
        select(ORMUserAirdropStatus.status, func.count(ORMUserAirdropStatus.id))
        .where(ORMUserAirdropStatus.user_id == user.id)
        .group_by(ORMUserAirdropStatus.status)
    )).all())
    total = sum(by_status.values())
    completed = by_status.get("completed", 0) + by_status.get("claimed", 0)
    strategies = await _count(session, select(func.count(ORMStrategy.id)).where(ORMStrategy.author_id == user.id))
    likes = await _count(session, select(func.coalesce(func.sum(ORMStrategy.likes), 0)).where(ORMStrategy.author_id == user.id))
    achievements = await _count(session, select(func.count(ORMUserAchievement.id)).where(ORMUserAchievement.user_id == user.id))
    data = {
        "airdrops": {
            "total": total,
            "completed": completed,
            "by_status": {s: int(by_status.get(s, 0)) for s in PROGRESS_STATUSES},
            "success_rate": round(completed / total * 100, 1) if total else 0.0,
        },
        "strategies": strategies,
        "likes_received": likes,
        "achievements": achievements,
        "reputation": user.reputation,
        "experience": user.experience,
        "level": user.level,
    }
    data.update(await follow_counts(session, user.id))
    return {"success": True, "data": data}


@router.get("/progress")
async def get_progress(
    status: Optional[str] = Query(default=None),
    user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    if status is not None and status not in PROGRESS_STATUSES:
        raise HTTPException(status_code=400, detail=f"Status must be one of {', '.join(PROGRESS_STATUSES)}")
    return {"success": True, "data": await list_user_progress(session, user.id, status)}


async def _get_user(session: AsyncSession, user_id: int) -> ORMUser:
    target = (await session.execute(select(ORMUser).where(ORMUser.id == user_id))).scalar_one_or_none()
    if target is None or not target.is_active:
        raise HTTPException(status_code=404, detail="User not found")
    return target


@router.post("/follow/{user_id}")
async def follow_user(user_id: int, user: ORMUser = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    if user_id == user.id:
        raise HTTPException(status_code=400, detail="You cannot follow yourself")
    target = await _get_user(session, user_id)
    existing = await session.execute(
        select(ORMFollow.id).where(ORMFollow.follower_id == user.id, ORMFollow.following_id == target.id)
    )
    if existing.first() is not None:
        raise HTTPException(status_code=409, detail="Already following this user")
    session.add(ORMFollow(follower_id=user.id, following_id=target.id))
    await session.commit()
    metrics.increment_event("users.follow")
    counts = await follow_counts(session, target.id)
    return {"success": True, "data": {"user_id": target.id, "is_following": True, "followers": counts["followers"]}}


@router.delete("/follow/{user_id}")
async def unfollow_user(user_id: int, user: ORMUser = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    follow = (await session.execute(
        select(ORMFollow).where(ORMFollow.follower_id == user.id, ORMFollow.following_id == user_id)
    )).scalar_one_or_none()
    if follow is None:
        raise HTTPException(status_code=404, detail="Not following this user")
    await session.delete(follow)
    await session.commit()
    counts = await follow_counts(session, user_id)
    return {"success": True, "data": {"user_id": user_id, "is_following": False, "followers": counts["followers"]}}


@router.get("/leaderboard")
async def leaderboard(
    type: str = Query(default="reputation"),
    limit: int = Query(default=10, ge=1, le=100),
    session: AsyncSession = Depends(get_async_session),
):
    if type not in LEADERBOARD_TYPES:
        raise HTTPException(status_code=400, detail=f"type must be one of {', '.join(LEADERBOARD_TYPES)}")

    if type == "reputation":
        stmt = select(ORMUser, ORMUser.reputation).order_by(ORMUser.reputation.desc(), ORMUser.id.asc())
    elif type == "achievements":
        counts = (
            select(ORMUserAchievement.user_id, func.count(ORMUserAchievement.id).label("value"))
            .group_by(ORMUserAchievement.user_id)
            .subquery()
        )
        value = func.coalesce(counts.c.value, 0)
        stmt = (
            select(ORMUser, value)
            .outerjoin(counts, counts.c.user_id == ORMUser.id)
            .order_by(value.desc(), ORMUser.experience.desc(), ORMUser.id.asc())
        )
    else:
        # Claimed airdrops stand in for earnings; no payout amounts are tracked
        claimed = (
            select(ORMUserAirdropStatus.user_id, func.count(ORMUserAirdropStatus.id).label("value"))
            .where(ORMUserAirdropStatus.status == "claimed")
            .group_by(ORMUserAirdropStatus.user_id)
            .subquery()
        )
        value = func.coalesce(claimed.c.value, 0)
        stmt = (
            select(ORMUser, value)
            .outerjoin(claimed, claimed.c.user_id == ORMUser.id)
            .order_by(value.desc(), ORMUser.reputation.desc(), ORMUser.id.asc())
        )
    stmt = stmt.where(ORMUser.is_active.is_(True)).limit(limit)
    rows = (await session.execute(stmt)).all()
    entries = [
        {
            "rank": rank,
            "user": {"id": u.id, "username": u.username, "avatar_url": u.avatar_url, "reputation": u.reputation, "level": u.level},
            "value": int(v or 0),
        }
        for rank, (u, v) in enumerate(rows, start=1)
    ]
    return {"success": True, "data": {"type": type, "entries": entries}}


@router.get("/achievements")
async def list_achievements(user: ORMUser = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    stmt = (
        select(ORMAchievement, ORMUserAchievement)
        .outerjoin(
            ORMUserAchievement,
            (ORMUserAchievement.achievement_id == ORMAchievement.id) & (ORMUserAchievement.user_id == user.id),
        )
        .order_by(ORMAchievement.id.asc())
    )
    data = []
    for achievement, unlocked in (await session.execute(stmt)).all():
        data.append({
            "id": achievement.id,
            "name": achievement.name,
            "description": achievement.description,
            "category": achievement.category,
            "rarity": achievement.rarity,
            "points": achievement.points,
            "unlocked": unlocked is not None,
            "unlocked_at": isoformat_utc(unlocked.unlocked_at) if unlocked is not None else None,
        })
    return {"success": True, "data": data}


@router.post("/achievements")
async def unlock_achievement(
    payload: AchievementUnlockRequest,
    user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    payload.validate_basic()
    stmt = select(ORMAchievement)
    if payload.achievement_id is not None:
        stmt = stmt.where(ORMAchievement.id == payload.achievement_id)
    else:
        stmt = stmt.where(ORMAchievement.name == payload.name)
    achievement = (await session.execute(stmt)).scalar_one_or_none()
    if achievement is None:
        raise HTTPException(status_code=404, detail="Achievement not found")
    existing = await session.execute(
        select(ORMUserAchievement.id).where(
            ORMUserAchievement.user_id == user.id, ORMUserAchievement.achievement_id == achievement.id
        )
    )
    if existing.first() is not None:
        raise HTTPException(status_code=409, detail="Achievement already unlocked")

    session.add(ORMUserAchievement(user_id=user.id, achievement_id=achievement.id, progress=payload.progress))
    user.experience = (user.experience or 0) + achievement.points
    user.level = user.experience // EXPERIENCE_PER_LEVEL + 1
    user.reputation = (user.reputation or 0) + achievement.points // 10
    await session.commit()
    metrics.increment_event("users.achievement_unlocked")
    logger.info("achievement_unlocked", extra={"user_id": user.id, "achievement_id": achievement.id})
    return {
        "success": True,
        "data": {
            "achievement": {"id": achievement.id, "name": achievement.name, "points": achievement.points},
            "experience": user.experience,
            "level": user.level,
            "reputation": user.reputation,
        },
    }


@public_router.get("/{user_id}")
async def get_user(user_id: int, session: AsyncSession = Depends(get_async_session)):
    target = await _get_user(session, user_id)
    data = public_profile(target)
    data.update(await follow_counts(session, target.id))
    data["strategies"] = await _count(
        session,
        select(func.count(ORMStrategy.id)).where(ORMStrategy.author_id == target.id, ORMStrategy.is_public.is_(True)),
    )
    return {"success": True, "data": data}
