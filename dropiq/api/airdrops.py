from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field, StrictStr, ValidationError
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from dropiq.auth.security import get_current_user, get_optional_user
from dropiq.core.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from dropiq.core.database import get_async_session
from dropiq.core.metrics import metrics
from dropiq.core.profiles import airdrop_info, record_side_event
from dropiq.core.time_utils import parse_utc, utc_now
from dropiq.engine.recommendations import extract_chains
from dropiq.models.database import Airdrop as ORMAirdrop, User as ORMUser, UserAirdropStatus as ORMUserAirdropStatus, row_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/airdrops", tags=["airdrops"])

AIRDROP_CATEGORIES = ("defi", "nft", "gaming", "infrastructure", "social", "exchange", "lending", "yield", "layer2", "other")
PROGRESS_STATUSES = ("interested", "in_progress", "completed", "claimed")


def slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def _airdrop_public(airdrop: ORMAirdrop) -> Dict[str, Any]:
    return row_to_dict(airdrop, exclude=("notes",))


class AirdropRequirements(BaseModel):
    """Shape of Airdrop.requirements; unknown keys are kept as submitted."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    chains: List[StrictStr] = Field(default_factory=list)
    tasks: List[StrictStr] = Field(default_factory=list)
    difficulty: Optional[Literal["easy", "medium", "hard"]] = None
    estimated_time: Optional[float] = Field(default=None, alias="estimatedTime", ge=0)


class SubmitAirdropRequest(BaseModel):
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    website_url: Optional[str] = None
    twitter_url: Optional[str] = None
    discord_url: Optional[str] = None
    logo_url: Optional[str] = None
    requirements: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    end_date: Optional[str] = None

    def validate_basic(self) -> None:
        if not 3 <= len(self.name.strip()) <= 200:
            raise HTTPException(status_code=400, detail="Name must be 3-200 characters")
        if not slugify(self.name):
            raise HTTPException(status_code=400, detail="Name must contain letters or digits")
        if self.category is not None and self.category.lower() not in AIRDROP_CATEGORIES:
            raise HTTPException(status_code=400, detail=f"Invalid category: {self.category}")
        for url in (self.website_url, self.twitter_url, self.discord_url, self.logo_url):
            if url and not url.startswith(("http://", "https://")):
                raise HTTPException(status_code=400, detail=f"Invalid URL: {url}")
        if self.end_date is not None and parse_utc(self.end_date) is None:
            raise HTTPException(status_code=400, detail="Invalid end_date")
        if self.requirements is not None:
            try:
                AirdropRequirements.model_validate(self.requirements)
            except ValidationError as exc:
                first = exc.errors()[0]
                field = ".".join(str(part) for part in first["loc"])
                raise HTTPException(status_code=400, detail=f"Invalid requirements.{field}: {first['msg']}") from exc


class StatusUpdateRequest(BaseModel):
    status: str

    def validate_basic(self) -> None:
        if self.status not in PROGRESS_STATUSES:
            raise HTTPException(status_code=400, detail=f"Status must be one of {', '.join(PROGRESS_STATUSES)}")


async def get_airdrop_by_slug(session: AsyncSession, slug: str) -> ORMAirdrop:
    result = await session.execute(select(ORMAirdrop).where(ORMAirdrop.slug == slug))
    airdrop = result.scalar_one_or_none()
    if airdrop is None:
        raise HTTPException(status_code=404, detail="Airdrop not found")
    return airdrop


@router.get("")
async def list_airdrops(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    category: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None),
    session: AsyncSession = Depends(get_async_session),
):
    """List approved airdrops, highest hype first."""
    conditions = [ORMAirdrop.status == "approved"]
    if category:
        conditions.append(ORMAirdrop.category == category.lower())
    if search:
        pattern = f"%{search.strip()}%"
        conditions.append(or_(ORMAirdrop.name.ilike(pattern), ORMAirdrop.description.ilike(pattern)))

    total = (await session.execute(select(func.count(ORMAirdrop.id)).where(*conditions))).scalar_one()
    stmt = (
        select(ORMAirdrop)
        .where(*conditions)
        .order_by(ORMAirdrop.hype_score.desc(), ORMAirdrop.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows = (await session.execute(stmt)).scalars().all()
    return {
        "success": True,
        "data": {
            "airdrops": [_airdrop_public(a) for a in rows],
            "pagination": {"page": page, "limit": limit, "total": int(total), "pages": (int(total) + limit - 1) // limit},
        },
    }


@router.get("/search")
async def search_airdrops(q: str = Query(default=""), session: AsyncSession = Depends(get_async_session)):
    query = q.strip()
    if len(query) < 2:
        raise HTTPException(status_code=400, detail="Query must be at least 2 characters")
    pattern = f"%{query}%"
    stmt = (
        select(ORMAirdrop)
        .where(
            ORMAirdrop.status == "approved",
            or_(ORMAirdrop.name.ilike(pattern), ORMAirdrop.description.ilike(pattern), ORMAirdrop.category.ilike(pattern)),
        )
        .order_by(ORMAirdrop.hype_score.desc(), ORMAirdrop.name.asc())
        .limit(10)
    )
    rows = (await session.execute(stmt)).scalars().all()
    return {
        "success": True,
        "data": [
            {"id": a.id, "name": a.name, "slug": a.slug, "category": a.category, "logo_url": a.logo_url, "hype_score": a.hype_score}
            for a in rows
        ],
    }


@router.post("/submit")
async def submit_airdrop(
    payload: SubmitAirdropRequest,
    user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    payload.validate_basic()
    name = payload.name.strip()
    slug = slugify(name)
    result = await session.execute(select(ORMAirdrop.id).where(or_(ORMAirdrop.name == name, ORMAirdrop.slug == slug)))
    if result.first() is not None:
        raise HTTPException(status_code=409, detail="An airdrop with this name already exists")

    airdrop = ORMAirdrop(
        name=name,
        slug=slug,
        description=payload.description,
        category=payload.category.lower() if payload.category else None,
        website_url=payload.website_url,
        twitter_url=payload.twitter_url,
        discord_url=payload.discord_url,
        logo_url=payload.logo_url,
        requirements=payload.requirements or {},
        meta=payload.metadata or {},
        end_date=parse_utc(payload.end_date),
        status="pending",
        submitted_by=user.id,
    )
    session.add(airdrop)
    await session.commit()
    metrics.increment_event("airdrops.submitted")
    logger.info("airdrop_submitted", extra={"airdrop_id": airdrop.id, "user_id": user.id})
    return {"success": True, "data": _airdrop_public(airdrop)}


@router.get("/{slug}")
async def get_airdrop(
    slug: str,
    user: Optional[ORMUser] = Depends(get_optional_user),
    session: AsyncSession = Depends(get_async_session),
):
    airdrop = await get_airdrop_by_slug(session, slug)
    is_owner_or_admin = user is not None and (user.role == "admin" or user.id == airdrop.submitted_by)
    if airdrop.status != "approved" and not is_owner_or_admin:
        raise HTTPException(status_code=403, detail="Airdrop is not approved")

    data = _airdrop_public(airdrop)
    data["chains"] = extract_chains(airdrop_info(airdrop))
    data["user_status"] = None
    if user is not None:
        result = await session.execute(
            select(ORMUserAirdropStatus).where(
                ORMUserAirdropStatus.user_id == user.id, ORMUserAirdropStatus.airdrop_id == airdrop.id
            )
        )
        progress = result.scalar_one_or_none()
        if progress is not None:
            data["user_status"] = progress.status
        await record_side_event(
            session, user.id, "airdrop_view",
            event_name=airdrop.slug, event_data={"airdropId": airdrop.id, "category": airdrop.category},
        )
    return {"success": True, "data": data}


@router.patch("/{slug}/status")
async def update_airdrop_status(
    slug: str,
    payload: StatusUpdateRequest,
    user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    payload.validate_basic()
    airdrop = await get_airdrop_by_slug(session, slug)
    if airdrop.status != "approved":
        raise HTTPException(status_code=403, detail="Airdrop is not approved")

    now = utc_now()
    result = await session.execute(
        select(ORMUserAirdropStatus).where(
            ORMUserAirdropStatus.user_id == user.id, ORMUserAirdropStatus.airdrop_id == airdrop.id
        )
    )
    progress = result.scalar_one_or_none()
    if progress is None:
        progress = ORMUserAirdropStatus(user_id=user.id, airdrop_id=airdrop.id, status=payload.status)
        session.add(progress)
    progress.status = payload.status
    if payload.status in ("in_progress", "completed", "claimed") and progress.started_at is None:
        progress.started_at = now
    if payload.status in ("completed", "claimed") and progress.completed_at is None:
        progress.completed_at = now
    if payload.status == "claimed" and progress.claimed_at is None:
        progress.claimed_at = now
    await session.commit()

    chain_id = extract_chains(airdrop_info(airdrop))[0]
    await record_side_event(
        session, user.id, "airdrop_interact",
        event_name=airdrop.slug,
        event_data={"airdropId": airdrop.id, "status": payload.status, "chainId": chain_id, "category": airdrop.category},
    )
    metrics.increment_event(f"airdrops.status.{payload.status}")
    return {"success": True, "data": row_to_dict(progress)}


def progress_row(progress: ORMUserAirdropStatus, airdrop: ORMAirdrop) -> Dict[str, Any]:
    data = row_to_dict(progress)
    data["airdrop"] = {"id": airdrop.id, "name": airdrop.name, "slug": airdrop.slug, "category": airdrop.category, "logo_url": airdrop.logo_url}
    return data


async def list_user_progress(session: AsyncSession, user_id: int, status: Optional[str] = None) -> List[Dict[str, Any]]:
    stmt = (
        select(ORMUserAirdropStatus, ORMAirdrop)
        .join(ORMAirdrop, ORMAirdrop.id == ORMUserAirdropStatus.airdrop_id)
        .where(ORMUserAirdropStatus.user_id == int(user_id))
    )
    if status:
        stmt = stmt.where(ORMUserAirdropStatus.status == status)
    stmt = stmt.order_by(ORMUserAirdropStatus.updated_at.desc(), ORMUserAirdropStatus.id.desc())
    return [progress_row(p, a) for p, a in (await session.execute(stmt)).all()]
