from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from dropiq.auth.security import get_current_user
from dropiq.core import profiles
from dropiq.core.database import get_async_session
from dropiq.models.database import User as ORMUser, row_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/preferences", tags=["preferences"])

INSIGHT_ACTIONS = ("mark_read", "mark_all_read")


class RiskAssessmentRequest(BaseModel):
    answers: Dict[str, Any]


class InsightActionRequest(BaseModel):
    action: str
    insight_id: Optional[int] = None

    def validate_basic(self) -> None:
        if self.action not in INSIGHT_ACTIONS:
            raise HTTPException(status_code=400, detail=f"Action must be one of {', '.join(INSIGHT_ACTIONS)}")
        if self.action == "mark_read" and self.insight_id is None:
            raise HTTPException(status_code=400, detail="insight_id is required for mark_read")


@router.post("/risk-assessment")
async def submit_risk_assessment(
    payload: RiskAssessmentRequest,
    user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    try:
        result = await profiles.save_risk_assessment(session, user.id, payload.answers)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"success": True, "data": result.to_dict()}


@router.get("/risk-assessment")
async def get_risk_assessment(user: ORMUser = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    profile = await profiles.get_risk_profile(session, user.id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Risk profile not found")
    return {"success": True, "data": row_to_dict(profile)}


@router.post("/chains/analyze")
async def analyze_chains(user: ORMUser = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    scores = await profiles.analyze_chain_preferences(session, user.id)
    return {"success": True, "data": [s.to_dict() for s in scores]}


@router.get("/chains")
async def get_chains(user: ORMUser = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    rows = await profiles.get_chain_preferences(session, user.id)
    return {"success": True, "data": [row_to_dict(r) for r in rows]}


@router.post("/activity/analyze")
async def analyze_activity(user: ORMUser = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    result = await profiles.analyze_activity_pattern(session, user.id)
    return {"success": True, "data": result.to_dict()}


@router.get("/activity")
async def get_activity(user: ORMUser = Depends(get_current_user), session: AsyncSession = Depends(get_async_session)):
    pattern = await profiles.get_activity_pattern(session, user.id)
    if pattern is None:
        raise HTTPException(status_code=404, detail="Activity pattern not found")
    return {"success": True, "data": row_to_dict(pattern)}


@router.get("/recommendations")
async def get_recommendations(
    limit: int = Query(default=10, ge=1, le=50),
    user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    scored = await profiles.recommendations_for_user(session, user.id, limit=limit)
    return {"success": True, "data": [s.to_dict() for s in scored]}


@router.get("/profile")
async def get_behavior_profile(
    timeframe: str = Query(default="30d"),
    user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    try:
        profile = await profiles.build_behavior_profile(session, user.id, timeframe)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"success": True, "data": profile.to_dict()}


@router.get("/insights")
async def get_insights(
    include_read: bool = Query(default=False),
    type: Optional[str] = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    rows = await profiles.list_insights(session, user.id, include_read=include_read, insight_type=type, limit=limit)
    return {"success": True, "data": [row_to_dict(r) for r in rows]}


@router.post("/insights")
async def update_insights(
    payload: InsightActionRequest,
    user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    payload.validate_basic()
    if payload.action == "mark_all_read":
        count = await profiles.mark_all_insights_read(session, user.id)
        return {"success": True, "data": {"updated": count}}
    if not await profiles.mark_insight_read(session, user.id, payload.insight_id):
        raise HTTPException(status_code=404, detail="Insight not found")
    return {"success": True, "data": {"updated": 1}}


@router.get("/evolution")
async def get_evolution(
    type: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    rows = await profiles.list_evolution(session, user.id, preference_type=type, limit=limit)
    return {"success": True, "data": [row_to_dict(r) for r in rows]}
