from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dropiq.auth.security import ensure_owner, get_current_user, get_optional_user
from dropiq.core.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, REPUTATION_PER_STRATEGY
from dropiq.core.database import get_async_session
from dropiq.core.metrics import metrics
from dropiq.core.time_utils import utc_now
from dropiq.engine.strategy_copy import RISK_LADDER, CopySettings, copy_values
from dropiq.models.database import (
    Strategy as ORMStrategy,
    StrategyComment as ORMStrategyComment,
    StrategyLike as ORMStrategyLike,
    StrategyRating as ORMStrategyRating,
    StrategyShare as ORMStrategyShare,
    User as ORMUser,
    row_to_dict,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/strategies", tags=["strategies"])

STRATEGY_CATEGORIES = ("defi", "nft", "gaming", "layer2", "social", "general")
DIFFICULTIES = ("beginner", "intermediate", "advanced", "expert")
TRENDING_WINDOW_DAYS = 30


def validate_strategy_fields(fields: Dict[str, Any]) -> None:
    """Check the strategy fields present in fields; absent keys are skipped."""
    if "title" in fields and not 5 <= len(fields["title"].strip()) <= 200:
        raise HTTPException(status_code=400, detail="Title must be 5-200 characters")
    if "description" in fields and len(fields["description"].strip()) < 10:
        raise HTTPException(status_code=400, detail="Description too short (min 10)")
    if "content" in fields and len(fields["content"].strip()) < 20:
        raise HTTPException(status_code=400, detail="Content too short (min 20)")
    if "category" in fields and fields["category"] not in STRATEGY_CATEGORIES:
        raise HTTPException(status_code=400, detail=f"Invalid category: {fields['category']}")
    if "difficulty" in fields and fields["difficulty"] not in DIFFICULTIES:
        raise HTTPException(status_code=400, detail=f"Invalid difficulty: {fields['difficulty']}")
    if "risk_level" in fields and fields["risk_level"] not in RISK_LADDER:
        raise HTTPException(status_code=400, detail=f"Invalid risk_level: {fields['risk_level']}")
    if fields.get("estimated_time", 0) < 0 or fields.get("estimated_reward", 0) < 0:
        raise HTTPException(status_code=400, detail="Estimates must be non-negative")
    if len(fields.get("tags", ())) > 10:
        raise HTTPException(status_code=400, detail="At most 10 tags")


class StrategyRequest(BaseModel):
    title: str
    description: str
    content: str
    category: str = "general"
    difficulty: str = "beginner"
    risk_level: str = "medium"
    estimated_time: int = 0
    estimated_reward: Optional[float] = None
    tags: List[str] = []
    tips: List[str] = []
    requirements: List[str] = []
    is_public: bool = True

    def validate_basic(self) -> None:
        validate_strategy_fields(self.model_dump(exclude_none=True))


class StrategyUpdateRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    content: Optional[str] = None
    category: Optional[str] = None
    difficulty: Optional[str] = None
    risk_level: Optional[str] = None
    estimated_time: Optional[int] = None
    estimated_reward: Optional[float] = None
    tags: Optional[List[str]] = None
    tips: Optional[List[str]] = None
    requirements: Optional[List[str]] = None
    is_public: Optional[bool] = None

    def validate_basic(self) -> None:
        validate_strategy_fields(self.model_dump(exclude_none=True))


class CopyStrategyRequest(BaseModel):
    strategy_id: int
    title: str
    description: str
    risk_adjustment: str = "moderate"
    timeline_multiplier: float = 1.0
    budget_multiplier: float = 1.0
    include_tips: bool = True
    include_requirements: bool = True
    adapt_to_user: bool = False
    custom_notes: Optional[str] = None

    def to_settings(self) -> CopySettings:
        return CopySettings(
            title=self.title,
            description=self.description,
            risk_adjustment=self.risk_adjustment,
            timeline_multiplier=self.timeline_multiplier,
            budget_multiplier=self.budget_multiplier,
            include_tips=self.include_tips,
            include_requirements=self.include_requirements,
            adapt_to_user=self.adapt_to_user,
            custom_notes=self.custom_notes,
        )


class CommentRequest(BaseModel):
    content: str

    def validate_basic(self) -> None:
        if not 1 <= len(self.content.strip()) <= 2000:
            raise HTTPException(status_code=400, detail="Comment must be 1-2000 characters")


class RatingRequest(BaseModel):
    rating: int
    review: Optional[str] = None

    def validate_basic(self) -> None:
        if not 1 <= self.rating <= 5:
            raise HTTPException(status_code=400, detail="Rating must be between 1 and 5")


class ShareRequest(BaseModel):
    platform: Optional[str] = None


def _author(user: Optional[ORMUser]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {"id": user.id, "username": user.username, "display_name": user.display_name, "avatar_url": user.avatar_url}


def strategy_row(strategy: ORMStrategy, author: Optional[ORMUser] = None) -> Dict[str, Any]:
    data = row_to_dict(strategy)
    data["author"] = _author(author)
    return data


async def _get_strategy(session: AsyncSession, strategy_id: int) -> ORMStrategy:
    strategy = (await session.execute(select(ORMStrategy).where(ORMStrategy.id == strategy_id))).scalar_one_or_none()
    if strategy is None:
        raise HTTPException(status_code=404, detail="Strategy not found")
    return strategy


async def _get_visible_strategy(session: AsyncSession, strategy_id: int, user: Optional[ORMUser]) -> ORMStrategy:
    strategy = await _get_strategy(session, strategy_id)
    if not strategy.is_public and (user is None or (user.id != strategy.author_id and user.role != "admin")):
        raise HTTPException(status_code=403, detail="Strategy is private")
    return strategy


async def _rating_summary(session: AsyncSession, strategy_id: int) -> Dict[str, Any]:
    avg, count = (await session.execute(
        select(func.avg(ORMStrategyRating.rating), func.count(ORMStrategyRating.id))
        .where(ORMStrategyRating.strategy_id == strategy_id)
    )).one()
    return {"average": round(float(avg), 2) if avg is not None else 0.0, "count": int(count)}


@router.get("")
async def list_strategies(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    category: Optional[str] = Query(default=None),
    difficulty: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    sort: str = Query(default="recent"),
    session: AsyncSession = Depends(get_async_session),
):
    conditions = [ORMStrategy.is_public.is_(True)]
    if category:
        conditions.append(ORMStrategy.category == category)
    if difficulty:
        conditions.append(ORMStrategy.difficulty == difficulty)
    if search:
        pattern = f"%{search.strip()}%"
        conditions.append(or_(ORMStrategy.title.ilike(pattern), ORMStrategy.description.ilike(pattern)))

    total = (await session.execute(select(func.count(ORMStrategy.id)).where(*conditions))).scalar_one()
    order = ORMStrategy.likes.desc() if sort == "popular" else ORMStrategy.created_at.desc()
    stmt = (
        select(ORMStrategy, ORMUser)
        .join(ORMUser, ORMUser.id == ORMStrategy.author_id)
        .where(*conditions)
        .order_by(order, ORMStrategy.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows = (await session.execute(stmt)).all()
    return {
        "success": True,
        "data": {
            "strategies": [strategy_row(s, u) for s, u in rows],
            "pagination": {"page": page, "limit": limit, "total": int(total), "pages": (int(total) + limit - 1) // limit},
        },
    }


@router.post("")
async def create_strategy(
    payload: StrategyRequest,
    user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    payload.validate_basic()
    strategy = ORMStrategy(
        author_id=user.id,
        title=payload.title.strip(),
        description=payload.description.strip(),
        content=payload.content,
        category=payload.category,
        difficulty=payload.difficulty,
        risk_level=payload.risk_level,
        estimated_time=payload.estimated_time,
        estimated_reward=payload.estimated_reward,
        tags=list(payload.tags),
        tips=list(payload.tips),
        requirements=list(payload.requirements),
        is_public=payload.is_public,
    )
    session.add(strategy)
    user.reputation = (user.reputation or 0) + REPUTATION_PER_STRATEGY
    await session.commit()
    metrics.increment_event("strategies.created")
    logger.info("strategy_created", extra={"strategy_id": strategy.id, "user_id": user.id})
    return {"success": True, "data": strategy_row(strategy, user)}


@router.get("/trending")
async def trending_strategies(
    limit: int = Query(default=10, ge=1, le=50),
    session: AsyncSession = Depends(get_async_session),
):
    """Public strategies from the last 30 days ranked by engagement."""
    since = utc_now() - timedelta(days=TRENDING_WINDOW_DAYS)
    engagement = ORMStrategy.views + ORMStrategy.likes * 5 + ORMStrategy.shares * 3 + ORMStrategy.copies * 4
    stmt = (
        select(ORMStrategy, ORMUser)
        .join(ORMUser, ORMUser.id == ORMStrategy.author_id)
        .where(ORMStrategy.is_public.is_(True), ORMStrategy.created_at >= since)
        .order_by(engagement.desc(), ORMStrategy.created_at.desc())
        .limit(limit)
    )
    rows = (await session.execute(stmt)).all()
    return {"success": True, "data": [strategy_row(s, u) for s, u in rows]}


@router.get("/copied")
async def copied_strategies(user: ORMUser = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    stmt = (
        select(ORMStrategy)
        .where(ORMStrategy.author_id == user.id, ORMStrategy.original_strategy_id.is_not(None))
        .order_by(ORMStrategy.created_at.desc(), ORMStrategy.id.desc())
    )
    rows = (await session.execute(stmt)).scalars().all()
    return {"success": True, "data": [strategy_row(s, user) for s in rows]}


@router.post("/copy")
async def copy_strategy(
    payload: CopyStrategyRequest,
    user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    original = await _get_visible_strategy(session, payload.strategy_id, user)
    try:
        values = copy_values(row_to_dict(original), payload.to_settings())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    copy = ORMStrategy(author_id=user.id, **values)
    session.add(copy)
    await session.execute(
        update(ORMStrategy).where(ORMStrategy.id == original.id).values(copies=ORMStrategy.copies + 1)
    )
    await session.commit()
    metrics.increment_event("strategies.copied")
    logger.info("strategy_copied", extra={"strategy_id": original.id, "copy_id": copy.id, "user_id": user.id})
    return {"success": True, "data": strategy_row(copy, user)}


@router.get("/{strategy_id}")
async def get_strategy(
    strategy_id: int,
    user: Optional[ORMUser] = Depends(get_optional_user),
    session: AsyncSession = Depends(get_async_session),
):
    strategy = await _get_visible_strategy(session, strategy_id, user)
    await session.execute(update(ORMStrategy).where(ORMStrategy.id == strategy.id).values(views=ORMStrategy.views + 1))
    await session.commit()
    await session.refresh(strategy)

    author = (await session.execute(select(ORMUser).where(ORMUser.id == strategy.author_id))).scalar_one_or_none()
    data = strategy_row(strategy, author)
    data["rating"] = await _rating_summary(session, strategy.id)
    data["comment_count"] = (await session.execute(
        select(func.count(ORMStrategyComment.id)).where(ORMStrategyComment.strategy_id == strategy.id)
    )).scalar_one()
    data["liked"] = False
    if user is not None:
        liked = await session.execute(
            select(ORMStrategyLike.id).where(ORMStrategyLike.strategy_id == strategy.id, ORMStrategyLike.user_id == user.id)
        )
        data["liked"] = liked.first() is not None
    return {"success": True, "data": data}


@router.put("/{strategy_id}")
async def update_strategy(
    strategy_id: int,
    payload: StrategyUpdateRequest,
    user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    payload.validate_basic()
    strategy = await _get_strategy(session, strategy_id)
    ensure_owner(strategy.author_id, user)
    for key, value in payload.model_dump(exclude_none=True).items():
        setattr(strategy, key, value.strip() if key in ("title", "description") else value)
    await session.commit()
    return {"success": True, "data": strategy_row(strategy)}


@router.delete("/{strategy_id}")
async def delete_strategy(
    strategy_id: int,
    user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    strategy = await _get_strategy(session, strategy_id)
    ensure_owner(strategy.author_id, user)
    # Copies keep their content but lose the link to the deleted original
    await session.execute(
        update(ORMStrategy).where(ORMStrategy.original_strategy_id == strategy.id).values(original_strategy_id=None)
    )
    for model in (ORMStrategyLike, ORMStrategyComment, ORMStrategyRating, ORMStrategyShare):
        await session.execute(delete(model).where(model.strategy_id == strategy.id))
    await session.delete(strategy)
    await session.commit()
    logger.info("strategy_deleted", extra={"strategy_id": strategy_id, "user_id": user.id})
    return {"success": True, "data": {"id": strategy_id}}


@router.post("/{strategy_id}/like")
async def toggle_like(
    strategy_id: int,
    user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    strategy = await _get_visible_strategy(session, strategy_id, user)
    existing = (await session.execute(
        select(ORMStrategyLike).where(ORMStrategyLike.strategy_id == strategy.id, ORMStrategyLike.user_id == user.id)
    )).scalar_one_or_none()
    if existing is None:
        session.add(ORMStrategyLike(strategy_id=strategy.id, user_id=user.id))
        delta, liked = 1, True
    else:
        await session.delete(existing)
        delta, liked = -1, False
    await session.execute(update(ORMStrategy).where(ORMStrategy.id == strategy.id).values(likes=ORMStrategy.likes + delta))
    await session.commit()
    await session.refresh(strategy)
    return {"success": True, "data": {"liked": liked, "likes": strategy.likes}}


@router.get("/{strategy_id}/comments")
async def list_comments(
    strategy_id: int,
    user: Optional[ORMUser] = Depends(get_optional_user),
    session: AsyncSession = Depends(get_async_session),
):
    strategy = await _get_visible_strategy(session, strategy_id, user)
    stmt = (
        select(ORMStrategyComment, ORMUser)
        .join(ORMUser, ORMUser.id == ORMStrategyComment.user_id)
        .where(ORMStrategyComment.strategy_id == strategy.id)
        .order_by(ORMStrategyComment.created_at.asc(), ORMStrategyComment.id.asc())
    )
    comments = []
    for comment, author in (await session.execute(stmt)).all():
        data = row_to_dict(comment)
        data["author"] = _author(author)
        comments.append(data)
    return {"success": True, "data": comments}


@router.post("/{strategy_id}/comments")
async def add_comment(
    strategy_id: int,
    payload: CommentRequest,
    user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    payload.validate_basic()
    strategy = await _get_visible_strategy(session, strategy_id, user)
    comment = ORMStrategyComment(strategy_id=strategy.id, user_id=user.id, content=payload.content.strip())
    session.add(comment)
    await session.commit()
    data = row_to_dict(comment)
    data["author"] = _author(user)
    return {"success": True, "data": data}


@router.post("/{strategy_id}/rating")
async def rate_strategy(
    strategy_id: int,
    payload: RatingRequest,
    user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    payload.validate_basic()
    strategy = await _get_visible_strategy(session, strategy_id, user)
    existing = (await session.execute(
        select(ORMStrategyRating).where(ORMStrategyRating.strategy_id == strategy.id, ORMStrategyRating.user_id == user.id)
    )).scalar_one_or_none()
    if existing is None:
        session.add(ORMStrategyRating(strategy_id=strategy.id, user_id=user.id, rating=payload.rating, review=payload.review))
    else:
        existing.rating = payload.rating
        existing.review = payload.review
    await session.commit()
    summary = await _rating_summary(session, strategy.id)
    return {"success": True, "data": {"rating": payload.rating, **summary}}


@router.post("/{strategy_id}/share")
async def share_strategy(
    strategy_id: int,
    payload: ShareRequest,
    user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    strategy = await _get_visible_strategy(session, strategy_id, user)
    session.add(ORMStrategyShare(strategy_id=strategy.id, user_id=user.id, platform=payload.platform))
    await session.execute(update(ORMStrategy).where(ORMStrategy.id == strategy.id).values(shares=ORMStrategy.shares + 1))
    await session.commit()
    await session.refresh(strategy)
    return {"success": True, "data": {"shares": strategy.shares}}
