from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dropiq.api.campaigns import campaign_row
from dropiq.auth.security import require_admin
from dropiq.core.config import MAX_PAGE_SIZE
from dropiq.core.database import get_async_session
from dropiq.core.metrics import metrics
from dropiq.core.time_utils import utc_now
from dropiq.models.database import Airdrop as ORMAirdrop, Campaign as ORMCampaign, User as ORMUser, row_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class ApproveAirdropRequest(BaseModel):
    risk_score: Optional[int] = None
    hype_score: Optional[int] = None
    notes: Optional[str] = None

    def validate_basic(self) -> None:
        for name, value in (("risk_score", self.risk_score), ("hype_score", self.hype_score)):
            if value is not None and not 0 <= value <= 100:
                raise HTTPException(status_code=400, detail=f"{name} must be between 0 and 100")


class RejectRequest(BaseModel):
    reason: Optional[str] = None


async def _get_airdrop(session: AsyncSession, airdrop_id: int) -> ORMAirdrop:
    airdrop = (await session.execute(select(ORMAirdrop).where(ORMAirdrop.id == airdrop_id))).scalar_one_or_none()
    if airdrop is None:
        raise HTTPException(status_code=404, detail="Airdrop not found")
    return airdrop


async def _get_campaign(session: AsyncSession, campaign_id: int) -> ORMCampaign:
    campaign = (await session.execute(select(ORMCampaign).where(ORMCampaign.id == campaign_id))).scalar_one_or_none()
    if campaign is None:
        raise HTTPException(status_code=404, detail="Campaign not found")
    return campaign


@router.get("/airdrops/pending")
async def pending_airdrops(
    limit: int = Query(default=50, ge=1, le=MAX_PAGE_SIZE),
    _admin: ORMUser = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    stmt = (
        select(ORMAirdrop)
        .where(ORMAirdrop.status == "pending")
        .order_by(ORMAirdrop.created_at.asc(), ORMAirdrop.id.asc())
        .limit(limit)
    )
    rows = (await session.execute(stmt)).scalars().all()
    return {"success": True, "data": [row_to_dict(a) for a in rows]}


@router.post("/airdrops/{airdrop_id}/approve")
async def approve_airdrop(
    airdrop_id: int,
    payload: ApproveAirdropRequest,
    admin: ORMUser = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    payload.validate_basic()
    airdrop = await _get_airdrop(session, airdrop_id)
    airdrop.status = "approved"
    if payload.risk_score is not None:
        airdrop.risk_score = payload.risk_score
    if payload.hype_score is not None:
        airdrop.hype_score = payload.hype_score
    if payload.notes is not None:
        airdrop.notes = payload.notes
    await session.commit()
    metrics.increment_event("admin.airdrop_approved")
    logger.info("airdrop_approved", extra={"airdrop_id": airdrop.id, "admin_id": admin.id})
    return {"success": True, "data": row_to_dict(airdrop)}


@router.post("/airdrops/{airdrop_id}/reject")
async def reject_airdrop(
    airdrop_id: int,
    payload: RejectRequest,
    admin: ORMUser = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    airdrop = await _get_airdrop(session, airdrop_id)
    airdrop.status = "rejected"
    if payload.reason:
        airdrop.notes = payload.reason
    await session.commit()
    metrics.increment_event("admin.airdrop_rejected")
    logger.info("airdrop_rejected", extra={"airdrop_id": airdrop.id, "admin_id": admin.id})
    return {"success": True, "data": row_to_dict(airdrop)}


@router.get("/campaigns")
async def list_all_campaigns(
    status: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=MAX_PAGE_SIZE),
    _admin: ORMUser = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    stmt = select(ORMCampaign, ORMAirdrop).join(ORMAirdrop, ORMAirdrop.id == ORMCampaign.airdrop_id)
    if status:
        stmt = stmt.where(ORMCampaign.status == status)
    stmt = stmt.order_by(ORMCampaign.created_at.desc(), ORMCampaign.id.desc()).limit(limit)
    rows = (await session.execute(stmt)).all()
    return {"success": True, "data": [campaign_row(c, a) for c, a in rows]}


@router.post("/campaigns/{campaign_id}/mark-paid")
async def mark_campaign_paid(
    campaign_id: int,
    admin: ORMUser = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    campaign = await _get_campaign(session, campaign_id)
    if campaign.status == "rejected":
        raise HTTPException(status_code=400, detail="Campaign was rejected")
    campaign.payment_status = "paid"
    if campaign.status == "pending":
        campaign.status = "paid"
    await session.commit()
    metrics.increment_event("admin.campaign_paid")
    logger.info("campaign_marked_paid", extra={"campaign_id": campaign.id, "admin_id": admin.id})
    return {"success": True, "data": campaign_row(campaign)}


@router.post("/campaigns/{campaign_id}/approve")
async def approve_campaign(
    campaign_id: int,
    admin: ORMUser = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    campaign = await _get_campaign(session, campaign_id)
    if campaign.payment_status != "paid":
        raise HTTPException(status_code=400, detail="Campaign has not been paid")
    campaign.status = "approved"
    campaign.approved_by = admin.id
    campaign.approved_at = utc_now()
    campaign.rejection_reason = None
    await session.commit()
    metrics.increment_event("admin.campaign_approved")
    logger.info("campaign_approved", extra={"campaign_id": campaign.id, "admin_id": admin.id})
    return {"success": True, "data": campaign_row(campaign)}


@router.post("/campaigns/{campaign_id}/reject")
async def reject_campaign(
    campaign_id: int,
    payload: RejectRequest,
    admin: ORMUser = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    campaign = await _get_campaign(session, campaign_id)
    campaign.status = "rejected"
    campaign.rejection_reason = payload.reason or "Rejected by administrator"
    await session.commit()
    metrics.increment_event("admin.campaign_rejected")
    logger.info("campaign_rejected", extra={"campaign_id": campaign.id, "admin_id": admin.id})
    return {"success": True, "data": campaign_row(campaign)}
