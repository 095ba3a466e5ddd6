"""Preference profile persistence.

Loads behaviour events and stored profiles through an AsyncSession, runs the
pure engine functions over them and writes the results back. Each public
coroutine is one unit of work and commits its own changes.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dropiq.core.config import ACTIVITY_LOOKBACK_DAYS
from dropiq.core.metrics import metrics, timed
from dropiq.core.time_utils import ensure_aware_utc, utc_now
from dropiq.engine import Insight
from dropiq.engine import activity_pattern, behavior_profile, chain_preference, recommendations, risk_assessment
from dropiq.engine.activity_pattern import ActivityEvent, ActivityResult
from dropiq.engine.behavior_profile import AirdropInteraction, BehaviorProfile
from dropiq.engine.chain_preference import ChainScore, RiskContext
from dropiq.engine.recommendations import ActivityContext, AirdropInfo, ChainAffinity, ScoredAirdrop
from dropiq.engine.risk_assessment import RiskResult
from dropiq.models.database import (
    ActivityPattern as ORMActivityPattern,
    Airdrop as ORMAirdrop,
    BehaviorEvent as ORMBehaviorEvent,
    ChainPreference as ORMChainPreference,
    PreferenceEvolution as ORMPreferenceEvolution,
    PreferenceInsight as ORMPreferenceInsight,
    RiskProfile as ORMRiskProfile,
    UserAirdropStatus as ORMUserAirdropStatus,
    UserPreference as ORMUserPreference,
)

logger = logging.getLogger(__name__)


# ---- Behaviour events ----

async def record_behavior_event(
    session: AsyncSession,
    user_id: int,
    event_type: str,
    event_name: Optional[str] = None,
    event_data: Optional[Dict[str, Any]] = None,
    session_id: Optional[str] = None,
    duration: Optional[float] = None,
    timestamp: Optional[datetime] = None,
) -> ORMBehaviorEvent:
    event = ORMBehaviorEvent(
        user_id=int(user_id),
        event_type=event_type,
        event_name=event_name,
        event_data=event_data or {},
        session_id=session_id,
        duration=duration,
        timestamp=ensure_aware_utc(timestamp) if timestamp else utc_now(),
    )
    session.add(event)
    await session.commit()
    metrics.increment_event(f"behavior.{event_type}")
    return event


async def record_side_event(session: AsyncSession, user_id: int, event_type: str, **kwargs: Any) -> None:
    """Record a behaviour event triggered by another action; failures are only logged."""
    try:
        await record_behavior_event(session, user_id, event_type, **kwargs)
    except Exception as exc:
        await session.rollback()
        logger.warning("behavior_event_failed", extra={"user_id": user_id, "event_type": event_type, "error": str(exc)})


async def load_events(session: AsyncSession, user_id: int, since: Optional[datetime] = None) -> List[ActivityEvent]:
    stmt = select(ORMBehaviorEvent).where(ORMBehaviorEvent.user_id == int(user_id))
    if since is not None:
        stmt = stmt.where(ORMBehaviorEvent.timestamp >= since)
    stmt = stmt.order_by(ORMBehaviorEvent.timestamp.asc())
    rows = (await session.execute(stmt)).scalars().all()
    return [
        ActivityEvent(r.event_type, ensure_aware_utc(r.timestamp), r.duration, r.event_data or {})
        for r in rows
    ]


# ---- Risk profile ----

async def get_risk_profile(session: AsyncSession, user_id: int) -> Optional[ORMRiskProfile]:
    result = await session.execute(select(ORMRiskProfile).where(ORMRiskProfile.user_id == int(user_id)))
    return result.scalar_one_or_none()


def risk_context_from(profile: Optional[ORMRiskProfile]) -> Optional[RiskContext]:
    if profile is None:
        return None
    return RiskContext(
        risk_score=int(profile.risk_score),
        category=profile.category,
        financial_capacity=profile.financial_capacity,
        technical_knowledge=int(profile.technical_knowledge),
        experience_level=profile.experience_level,
    )


def _evolution(user_id: int, preference_type: str, old: Optional[dict], new: dict,
               reason: str, confidence: float) -> ORMPreferenceEvolution:
    return ORMPreferenceEvolution(
        user_id=int(user_id),
        preference_type=preference_type,
        old_value=old,
        new_value=new,
        change_reason=reason,
        confidence=float(confidence),
    )


async def save_risk_assessment(session: AsyncSession, user_id: int, answers: Dict[str, Any]) -> RiskResult:
    """Score the questionnaire and upsert the user's risk profile.

    Raises ValueError for invalid answers before anything is written.
    """
    result = risk_assessment.assess(answers)
    existing = await get_risk_profile(session, user_id)
    values = {
        "risk_score": result.risk_score,
        "category": result.category,
        "financial_capacity": result.financial_capacity,
        "loss_acceptance": result.loss_acceptance,
        "time_horizon": result.time_horizon,
        "experience_level": result.experience_level,
        "technical_knowledge": result.technical_knowledge,
        "security_consciousness": result.security_consciousness,
        "confidence": result.confidence,
        "answers": dict(risk_assessment.validate_answers(answers)),
        "recommendations": list(result.recommendations),
    }
    if existing is None:
        session.add(ORMRiskProfile(user_id=int(user_id), **values))
    else:
        old = {"risk_score": existing.risk_score, "category": existing.category}
        for key, value in values.items():
            setattr(existing, key, value)
        session.add(_evolution(
            user_id, "risk", old,
            {"risk_score": result.risk_score, "category": result.category},
            "risk_assessment_updated", result.confidence,
        ))
    await session.commit()
    await save_insights(session, user_id, risk_assessment.risk_insights(result))
    metrics.increment_event("profile.risk_assessed")
    logger.info("risk_profile_saved", extra={"user_id": user_id, "risk_score": result.risk_score})
    return result


# ---- Chain preferences ----

async def analyze_chain_preferences(session: AsyncSession, user_id: int,
                                    now: Optional[datetime] = None) -> List[ChainScore]:
    now = now or utc_now()
    with timed("profile.chain_analysis_s"):
        events = await load_events(session, user_id)
        interactions = [
            i for i in (chain_preference.interaction_from_event(e.event_type, e.event_data, e.timestamp) for e in events)
            if i is not None
        ]
        risk = risk_context_from(await get_risk_profile(session, user_id))
        scores = chain_preference.analyze(interactions, risk, now)

        existing = {
            row.chain_id: row
            for row in (await session.execute(
                select(ORMChainPreference).where(ORMChainPreference.user_id == int(user_id))
            )).scalars().all()
        }
        for score in scores:
            values = {
                "chain_name": score.chain_name,
                "preference_score": score.preference_score,
                "usage_frequency": score.usage_frequency,
                "total_gas_spent": score.total_gas_spent,
                "avg_gas_cost": score.avg_gas_cost,
                "success_rate": score.success_rate,
                "last_used": score.last_used,
                "trend": score.trend,
                "factors": score.factors,
                "recommendation": score.recommendation,
            }
            row = existing.get(score.chain_id)
            if row is None:
                session.add(ORMChainPreference(user_id=int(user_id), chain_id=score.chain_id, **values))
            else:
                for key, value in values.items():
                    setattr(row, key, value)
        await session.commit()
    await save_insights(session, user_id, chain_preference.chain_insights(scores), now=now)
    metrics.increment_event("profile.chains_analyzed")
    logger.info("chain_preferences_saved", extra={"user_id": user_id, "chains": len(scores)})
    return scores


async def get_chain_preferences(session: AsyncSession, user_id: int) -> List[ORMChainPreference]:
    stmt = (
        select(ORMChainPreference)
        .where(ORMChainPreference.user_id == int(user_id))
        .order_by(ORMChainPreference.preference_score.desc(), ORMChainPreference.chain_id.asc())
    )
    return list((await session.execute(stmt)).scalars().all())


# ---- Activity pattern ----

async def get_activity_pattern(session: AsyncSession, user_id: int) -> Optional[ORMActivityPattern]:
    result = await session.execute(select(ORMActivityPattern).where(ORMActivityPattern.user_id == int(user_id)))
    return result.scalar_one_or_none()


async def analyze_activity_pattern(session: AsyncSession, user_id: int,
                                   now: Optional[datetime] = None) -> ActivityResult:
    now = now or utc_now()
    with timed("profile.activity_analysis_s"):
        events = await load_events(session, user_id, since=now - timedelta(days=ACTIVITY_LOOKBACK_DAYS))
        result = activity_pattern.analyze(events, now)
        values = {
            "daily_active_minutes": result.daily_active_minutes,
            "weekly_active_days": result.weekly_active_days,
            "weekend_activity": result.weekend_activity,
            "preferred_time_slots": result.preferred_time_slots,
            "peak_hours": result.peak_hours,
            "avg_session_duration": result.avg_session_duration,
            "tasks_per_session": result.tasks_per_session,
            "consistency_score": result.consistency_score,
            "burst_activity": result.burst_activity,
            "tasks_per_hour": result.tasks_per_hour,
            "completion_rate": result.completion_rate,
            "efficiency_score": result.efficiency_score,
            "monthly_activity": result.monthly_activity,
            "behavior_insights": result.behavior_insights,
        }
        existing = await get_activity_pattern(session, user_id)
        if existing is None:
            session.add(ORMActivityPattern(user_id=int(user_id), **values))
        else:
            old = {
                "daily_active_minutes": existing.daily_active_minutes,
                "consistency_score": existing.consistency_score,
                "efficiency_score": existing.efficiency_score,
            }
            for key, value in values.items():
                setattr(existing, key, value)
            session.add(_evolution(
                user_id, "activity", old,
                {
                    "daily_active_minutes": result.daily_active_minutes,
                    "consistency_score": result.consistency_score,
                    "efficiency_score": result.efficiency_score,
                },
                "activity_reanalyzed", result.consistency_score / 100,
            ))
        await session.commit()
    await save_insights(session, user_id, activity_pattern.activity_insights(result), now=now)
    metrics.increment_event("profile.activity_analyzed")
    logger.info("activity_pattern_saved", extra={"user_id": user_id, "active_days": result.active_days})
    return result


# ---- Behaviour profile ----

async def load_airdrop_interactions(session: AsyncSession, user_id: int) -> List[AirdropInteraction]:
    stmt = (
        select(ORMUserAirdropStatus, ORMAirdrop)
        .join(ORMAirdrop, ORMAirdrop.id == ORMUserAirdropStatus.airdrop_id)
        .where(ORMUserAirdropStatus.user_id == int(user_id))
    )
    interactions = []
    for status_row, airdrop in (await session.execute(stmt)).all():
        chains = recommendations.extract_chains(airdrop_info(airdrop))
        interactions.append(AirdropInteraction(
            airdrop_id=int(airdrop.id),
            status=status_row.status,
            risk_score=int(airdrop.risk_score or 0),
            chain_id=chains[0],
            created_at=ensure_aware_utc(status_row.created_at),
        ))
    return interactions


async def build_behavior_profile(session: AsyncSession, user_id: int, timeframe: str = "30d",
                                 now: Optional[datetime] = None) -> BehaviorProfile:
    """Rebuild and store the behaviour-derived profile. Raises ValueError for an unknown timeframe."""
    days = behavior_profile.parse_timeframe(timeframe)
    now = now or utc_now()
    events = await load_events(session, user_id, since=now - timedelta(days=days))
    interactions = await load_airdrop_interactions(session, user_id)
    profile = behavior_profile.build_profile(events, interactions, timeframe, now)

    values = {
        "risk_tolerance": profile.risk_tolerance,
        "chain_preferences": profile.chain_preferences,
        "activity_patterns": profile.activity_patterns,
        "investment_horizon": profile.investment_horizon,
        "preferred_airdrop_types": profile.preferred_airdrop_types,
        "gas_optimization_level": profile.gas_optimization_level,
        "interaction_frequency": profile.interaction_frequency,
        "confidence_score": float(profile.confidence),
    }
    result = await session.execute(select(ORMUserPreference).where(ORMUserPreference.user_id == int(user_id)))
    row = result.scalar_one_or_none()
    if row is None:
        session.add(ORMUserPreference(user_id=int(user_id), **values))
    else:
        for key, value in values.items():
            setattr(row, key, value)
    await session.commit()
    logger.info("behavior_profile_saved", extra={"user_id": user_id, "timeframe": timeframe})
    return profile


# ---- Insights ----

async def save_insights(session: AsyncSession, user_id: int, insights: Iterable[Insight],
                        now: Optional[datetime] = None) -> List[ORMPreferenceInsight]:
    """Store insights; an unread insight with the same type and title is replaced."""
    now = now or utc_now()
    saved = []
    for insight in insights:
        await session.execute(
            delete(ORMPreferenceInsight).where(
                ORMPreferenceInsight.user_id == int(user_id),
                ORMPreferenceInsight.insight_type == insight.insight_type,
                ORMPreferenceInsight.title == insight.title,
                ORMPreferenceInsight.is_read.is_(False),
            )
        )
        row = ORMPreferenceInsight(
            user_id=int(user_id),
            insight_type=insight.insight_type,
            title=insight.title,
            description=insight.description,
            impact=insight.impact,
            confidence=float(insight.confidence),
            actionable=bool(insight.recommendations),
            recommendations=list(insight.recommendations),
            supporting_data=insight.supporting_data,
            valid_until=now + timedelta(days=insight.valid_days),
            created_at=now,
        )
        session.add(row)
        saved.append(row)
    if saved:
        await session.commit()
        metrics.increment_event("profile.insights_saved", len(saved))
    return saved


async def list_insights(session: AsyncSession, user_id: int, include_read: bool = False,
                        insight_type: Optional[str] = None, limit: int = 20,
                        now: Optional[datetime] = None) -> List[ORMPreferenceInsight]:
    now = now or utc_now()
    stmt = select(ORMPreferenceInsight).where(
        ORMPreferenceInsight.user_id == int(user_id),
        or_(ORMPreferenceInsight.valid_until.is_(None), ORMPreferenceInsight.valid_until > now),
    )
    if not include_read:
        stmt = stmt.where(ORMPreferenceInsight.is_read.is_(False))
    if insight_type:
        stmt = stmt.where(ORMPreferenceInsight.insight_type == insight_type)
    stmt = stmt.order_by(ORMPreferenceInsight.created_at.desc(), ORMPreferenceInsight.id.desc()).limit(int(limit))
    return list((await session.execute(stmt)).scalars().all())


async def mark_insight_read(session: AsyncSession, user_id: int, insight_id: int) -> bool:
    result = await session.execute(
        update(ORMPreferenceInsight)
        .where(ORMPreferenceInsight.id == int(insight_id), ORMPreferenceInsight.user_id == int(user_id))
        .values(is_read=True)
    )
    await session.commit()
    return (result.rowcount or 0) > 0


async def mark_all_insights_read(session: AsyncSession, user_id: int) -> int:
    result = await session.execute(
        update(ORMPreferenceInsight)
        .where(ORMPreferenceInsight.user_id == int(user_id), ORMPreferenceInsight.is_read.is_(False))
        .values(is_read=True)
    )
    await session.commit()
    return int(result.rowcount or 0)


async def list_evolution(session: AsyncSession, user_id: int, preference_type: Optional[str] = None,
                         limit: int = 50) -> List[ORMPreferenceEvolution]:
    stmt = select(ORMPreferenceEvolution).where(ORMPreferenceEvolution.user_id == int(user_id))
    if preference_type:
        stmt = stmt.where(ORMPreferenceEvolution.preference_type == preference_type)
    stmt = stmt.order_by(ORMPreferenceEvolution.created_at.desc(), ORMPreferenceEvolution.id.desc()).limit(int(limit))
    return list((await session.execute(stmt)).scalars().all())


# ---- Recommendations ----

def airdrop_info(airdrop: ORMAirdrop) -> AirdropInfo:
    return AirdropInfo(
        id=int(airdrop.id),
        slug=airdrop.slug,
        name=airdrop.name,
        category=airdrop.category,
        description=airdrop.description,
        risk_score=int(airdrop.risk_score or 0),
        requirements=airdrop.requirements or {},
        meta=airdrop.meta or {},
    )


async def recommendations_for_user(session: AsyncSession, user_id: int, limit: int = 10,
                                   now: Optional[datetime] = None) -> List[ScoredAirdrop]:
    now = now or utc_now()
    with timed("profile.recommendations_s"):
        stmt = select(ORMAirdrop).where(
            ORMAirdrop.status == "approved",
            or_(ORMAirdrop.end_date.is_(None), ORMAirdrop.end_date > now),
        )
        airdrops = [airdrop_info(a) for a in (await session.execute(stmt)).scalars().all()]

        risk = risk_context_from(await get_risk_profile(session, user_id))
        prefs = [
            ChainAffinity(p.chain_id, p.chain_name, float(p.preference_score))
            for p in await get_chain_preferences(session, user_id)
        ]
        pattern = await get_activity_pattern(session, user_id)
        activity = None
        if pattern is not None:
            activity = ActivityContext(
                daily_active_minutes=float(pattern.daily_active_minutes),
                avg_session_duration=float(pattern.avg_session_duration),
                efficiency_score=float(pattern.efficiency_score),
            )
        pref_row = (await session.execute(
            select(ORMUserPreference).where(ORMUserPreference.user_id == int(user_id))
        )).scalar_one_or_none()
        preferred_types = list(pref_row.preferred_airdrop_types or []) if pref_row is not None else []

        scored = recommendations.recommend(airdrops, risk, prefs, activity, preferred_types, limit=limit)
    metrics.increment_event("profile.recommendations_served")
    return scored
