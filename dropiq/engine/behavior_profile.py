"""Rule-based preference profile inferred purely from tracked behaviour.

Unlike the questionnaire in risk_assessment, nothing here asks the user; the
profile is rebuilt from events and airdrop progress over a 7, 30 or 90 day
timeframe.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from dropiq.core.config import CHAIN_CATALOG, PROFILE_TIMEFRAMES
from dropiq.core.time_utils import ensure_aware_utc, utc_now
from dropiq.engine import as_number, clamp
from dropiq.engine.activity_pattern import ActivityEvent, group_sessions, TIME_SLOTS

MAX_EVENTS = 500
BEHAVIOR_CONFIDENCE = 60

TOLERANCE_THRESHOLDS = {
    "very_conservative": 20,
    "conservative": 40,
    "moderate": 60,
    "aggressive": 80,
    "very_aggressive": 100,
}

TYPE_KEYWORDS = {"defi": "defi", "nft": "nft", "gaming": "gaming", "layer2": "layer2"}


@dataclass
class AirdropInteraction:
    airdrop_id: int
    status: str
    risk_score: int
    chain_id: str
    created_at: datetime
    gas_spent: float = 0.0


@dataclass
class BehaviorProfile:
    risk_tolerance: str
    risk_score: int
    confidence: int
    factors: Dict[str, float]
    chain_preferences: List[Dict[str, Any]] = field(default_factory=list)
    activity_patterns: List[Dict[str, Any]] = field(default_factory=list)
    investment_horizon: str = "short_term"
    preferred_airdrop_types: List[str] = field(default_factory=list)
    gas_optimization_level: float = 50.0
    interaction_frequency: str = "low"
    timeframe: str = "30d"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def parse_timeframe(timeframe: str) -> int:
    if timeframe not in PROFILE_TIMEFRAMES:
        raise ValueError(f"timeframe must be one of {', '.join(PROFILE_TIMEFRAMES)}")
    return PROFILE_TIMEFRAMES[timeframe]


def _gas(event: ActivityEvent) -> float:
    return as_number((event.event_data or {}).get("gasSpent"))


def tolerance_band(score: float) -> str:
    if score < 30:
        return "very_conservative"
    if score < 45:
        return "conservative"
    if score < 65:
        return "moderate"
    if score < 80:
        return "aggressive"
    return "very_aggressive"


def behavioral_risk(events: List[ActivityEvent], interactions: List[AirdropInteraction]) -> tuple[int, Dict[str, float]]:
    gas_spending = sum(_gas(e) for e in events)
    high_risk = sum(1 for i in interactions if i.risk_score > 70)
    frequency = len(events)
    unique_projects = len({i.airdrop_id for i in interactions})

    score = 50
    if gas_spending > 1000:
        score += 20
    elif gas_spending > 500:
        score += 10
    elif gas_spending < 100:
        score -= 10
    score += high_risk * 5
    if frequency > 100:
        score += 15
    elif frequency > 50:
        score += 8
    if unique_projects > 10:
        score += 10
    elif unique_projects < 3:
        score -= 10

    factors = {
        "gas_spending": min(100.0, gas_spending / 10),
        "project_risk": float(high_risk * 10),
        "interaction_frequency": float(min(100, frequency)),
        "diversification": float(unique_projects * 5),
    }
    return int(clamp(score)), factors


def chain_preferences(interactions: List[AirdropInteraction], now: datetime) -> List[Dict[str, Any]]:
    grouped: Dict[str, List[AirdropInteraction]] = defaultdict(list)
    for i in interactions:
        grouped[i.chain_id].append(i)
    prefs = []
    for chain_id, items in grouped.items():
        count = len(items)
        successes = sum(1 for i in items if i.status in ("completed", "claimed"))
        last = max(i.created_at for i in items)
        idle = (now - ensure_aware_utc(last)).total_seconds() / 86400
        score = min(50, count * 5) + (successes / count) * 30 + max(0.0, 20 - idle * 2)
        name = CHAIN_CATALOG.get(chain_id, {}).get("name", f"Chain {chain_id}")
        prefs.append({
            "chain_id": chain_id,
            "chain_name": name,
            "preference_score": round(clamp(score), 2),
            "interaction_count": count,
            "success_rate": round(successes / count * 100, 2),
            "avg_gas_spent": round(sum(i.gas_spent for i in items) / count, 2),
            "last_interaction": ensure_aware_utc(last).isoformat(),
        })
    prefs.sort(key=lambda p: p["preference_score"], reverse=True)
    return prefs


def _period(hour: int) -> str:
    for name, (start, end) in TIME_SLOTS.items():
        if start <= hour < end:
            return name
    return "night"


def _is_conversion(event: ActivityEvent) -> bool:
    if event.event_type == "task_complete":
        return True
    return event.event_type == "airdrop_interact" and (event.event_data or {}).get("status") == "completed"


def _session_minutes(session: List[ActivityEvent]) -> float:
    span = (session[-1].timestamp - session[0].timestamp).total_seconds() / 60
    # A single-event session lasts as long as the event itself
    return span if span > 0 else session[0].minutes


def slot_patterns(events: List[ActivityEvent]) -> List[Dict[str, Any]]:
    """Activity grouped by (time-of-day period, weekday), Sunday being 0."""
    buckets: Dict[tuple, List[ActivityEvent]] = defaultdict(list)
    for e in events:
        buckets[(_period(e.timestamp.hour), e.timestamp.isoweekday() % 7)].append(e)
    patterns = []
    for (period, weekday), items in buckets.items():
        sessions = group_sessions(items)
        session_minutes = [_session_minutes(s) for s in sessions]
        action_types: List[str] = []
        for e in items:
            if e.event_type not in action_types:
                action_types.append(e.event_type)
        patterns.append({
            "period": period,
            "day_of_week": weekday,
            "activity_frequency": len(items),
            "preferred_action_types": action_types,
            "avg_session_duration": round(sum(session_minutes) / len(session_minutes), 1),
            "conversion_rate": round(sum(1 for e in items if _is_conversion(e)) / len(items) * 100, 1),
        })
    patterns.sort(key=lambda p: p["activity_frequency"], reverse=True)
    return patterns


def avg_session_minutes(events: List[ActivityEvent]) -> float:
    sessions = group_sessions(events)
    if not sessions:
        return 20.0
    total = sum((s[-1].timestamp - s[0].timestamp).total_seconds() for s in sessions)
    return total / len(sessions) / 60


def investment_horizon(session_minutes: float) -> str:
    if session_minutes > 30:
        return "long_term"
    if session_minutes > 15:
        return "medium_term"
    return "short_term"


def interaction_frequency(count: int) -> str:
    if count > 100:
        return "high"
    if count > 30:
        return "medium"
    return "low"


def preferred_airdrop_types(events: Iterable[ActivityEvent]) -> List[str]:
    types: List[str] = []
    for e in events:
        data = e.event_data or {}
        candidates = []
        filters = data.get("filters")
        if isinstance(filters, dict) and filters.get("category"):
            candidates.append(str(filters["category"]).lower())
        if data.get("category") and e.event_type in ("search", "filter", "airdrop_view"):
            candidates.append(str(data["category"]).lower())
        query = str(data.get("searchQuery") or "").lower()
        candidates.extend(t for kw, t in TYPE_KEYWORDS.items() if kw in query)
        for c in candidates:
            if c not in types:
                types.append(c)
    return types


def gas_optimization_level(events: Iterable[ActivityEvent]) -> float:
    spent = [g for g in (_gas(e) for e in events) if g > 0]
    if not spent:
        return 50.0
    return round(clamp(100 - (sum(spent) / len(spent)) / 10), 2)


def build_profile(events: Iterable[ActivityEvent], interactions: Iterable[AirdropInteraction],
                  timeframe: str = "30d", now: Optional[datetime] = None) -> BehaviorProfile:
    days = parse_timeframe(timeframe)
    now = now or utc_now()
    cutoff = now - timedelta(days=days)
    window = sorted(
        (ActivityEvent(e.event_type, ensure_aware_utc(e.timestamp), e.duration, e.event_data) for e in events),
        key=lambda e: e.timestamp,
    )
    window = [e for e in window if e.timestamp >= cutoff][-MAX_EVENTS:]
    recent = [i for i in interactions if ensure_aware_utc(i.created_at) >= cutoff]

    score, factors = behavioral_risk(window, recent)
    return BehaviorProfile(
        risk_tolerance=tolerance_band(score),
        risk_score=score,
        confidence=BEHAVIOR_CONFIDENCE,
        factors=factors,
        chain_preferences=chain_preferences(recent, now),
        activity_patterns=slot_patterns(window),
        investment_horizon=investment_horizon(avg_session_minutes(window)),
        preferred_airdrop_types=preferred_airdrop_types(window),
        gas_optimization_level=gas_optimization_level(window),
        interaction_frequency=interaction_frequency(len(window)),
        timeframe=timeframe,
    )


def matches_risk_tolerance(risk_tolerance: str, airdrop_risk: int) -> bool:
    return airdrop_risk <= TOLERANCE_THRESHOLDS.get(risk_tolerance, 60)


def preferred_chains(profile: BehaviorProfile, limit: int = 3) -> List[str]:
    ranked = sorted(
        (p for p in profile.chain_preferences if p["preference_score"] > 30),
        key=lambda p: p["preference_score"],
        reverse=True,
    )
    return [p["chain_id"] for p in ranked[:limit]]

