from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import case, select
from sqlalchemy.ext.asyncio import AsyncSession

from dropiq.auth.security import get_current_user
from dropiq.core.config import CAMPAIGN_TIER_RANK, CAMPAIGN_TIERS, MAX_PAGE_SIZE, tier_duration_days, tier_price
from dropiq.core.database import get_async_session
from dropiq.core.metrics import metrics
from dropiq.core.time_utils import parse_utc, utc_now
from dropiq.models.database import Airdrop as ORMAirdrop, Campaign as ORMCampaign, User as ORMUser, row_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/campaigns", tags=["campaigns"])

CAMPAIGN_STATUSES = ("pending", "paid", "approved", "rejected")


class CreateCampaignRequest(BaseModel):
    airdrop_id: int
    tier: str
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    notes: Optional[str] = None

    def validate_basic(self) -> None:
        if self.tier not in CAMPAIGN_TIERS:
            raise HTTPException(status_code=400, detail=f"Tier must be one of {', '.join(CAMPAIGN_TIERS)}")
        if self.start_date is not None and parse_utc(self.start_date) is None:
            raise HTTPException(status_code=400, detail="Invalid start_date")
        if self.end_date is not None and parse_utc(self.end_date) is None:
            raise HTTPException(status_code=400, detail="Invalid end_date")


def campaign_row(campaign: ORMCampaign, airdrop: Optional[ORMAirdrop] = None) -> Dict[str, Any]:
    data = row_to_dict(campaign)
    if airdrop is not None:
        data["airdrop"] = {
            "id": airdrop.id,
            "name": airdrop.name,
            "slug": airdrop.slug,
            "category": airdrop.category,
            "logo_url": airdrop.logo_url,
            "hype_score": airdrop.hype_score,
        }
    return data


def tier_rank_expr():
    return case(CAMPAIGN_TIER_RANK, value=ORMCampaign.tier, else_=0)


@router.get("")
async def list_campaigns(
    status: Optional[str] = Query(default=None),
    tier: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=MAX_PAGE_SIZE),
    user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    """The current user's campaigns, newest first."""
    stmt = (
        select(ORMCampaign, ORMAirdrop)
        .join(ORMAirdrop, ORMAirdrop.id == ORMCampaign.airdrop_id)
        .where(ORMCampaign.user_id == user.id)
    )
    if status:
        stmt = stmt.where(ORMCampaign.status == status)
    if tier:
        stmt = stmt.where(ORMCampaign.tier == tier)
    stmt = stmt.order_by(ORMCampaign.created_at.desc(), ORMCampaign.id.desc()).limit(limit)
    rows = (await session.execute(stmt)).all()
    return {"success": True, "data": [campaign_row(c, a) for c, a in rows]}


@router.post("")
async def create_campaign(
    payload: CreateCampaignRequest,
    user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    payload.validate_basic()
    airdrop = (await session.execute(select(ORMAirdrop).where(ORMAirdrop.id == payload.airdrop_id))).scalar_one_or_none()
    if airdrop is None:
        raise HTTPException(status_code=404, detail="Airdrop not found")
    if airdrop.status == "rejected":
        raise HTTPException(status_code=400, detail="Cannot promote a rejected airdrop")

    start = parse_utc(payload.start_date) or utc_now()
    end = parse_utc(payload.end_date)
    if end is None:
        end = start + timedelta(days=tier_duration_days(payload.tier))
    if end <= start:
        raise HTTPException(status_code=400, detail="end_date must be after start_date")

    campaign = ORMCampaign(
        airdrop_id=airdrop.id,
        user_id=user.id,
        tier=payload.tier,
        status="pending",
        payment_status="unpaid",
        amount=tier_price(payload.tier),
        start_date=start,
        end_date=end,
        notes=payload.notes,
    )
    session.add(campaign)
    await session.commit()
    metrics.increment_event(f"campaigns.created.{payload.tier}")
    logger.info("campaign_created", extra={"campaign_id": campaign.id, "tier": campaign.tier, "user_id": user.id})
    return {"success": True, "data": campaign_row(campaign, airdrop)}


@router.get("/featured")
async def featured_campaigns(
    limit: int = Query(default=10, ge=1, le=50),
    session: AsyncSession = Depends(get_async_session),
):
    """Paid, approved campaigns running now: premium first, then newest."""
    now = utc_now()
    stmt = (
        select(ORMCampaign, ORMAirdrop)
        .join(ORMAirdrop, ORMAirdrop.id == ORMCampaign.airdrop_id)
        .where(
            ORMCampaign.payment_status == "paid",
            ORMCampaign.status == "approved",
            ORMCampaign.start_date <= now,
            ORMCampaign.end_date > now,
            ORMAirdrop.status == "approved",
        )
        .order_by(tier_rank_expr().desc(), ORMCampaign.created_at.desc(), ORMCampaign.id.desc())
        .limit(limit)
    )
    rows = (await session.execute(stmt)).all()
    featured = [campaign_row(c, a) for c, a in rows]
    return {"success": True, "data": featured}
