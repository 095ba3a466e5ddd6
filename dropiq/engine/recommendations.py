"""Airdrop recommendation scoring.

Each approved airdrop gets four 0-100 compatibility scores against the user's
preference profile, combined with RECOMMENDATION_WEIGHTS. A component whose
profile part is missing scores a neutral 50.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from dropiq.core.config import (
    CATEGORY_COMPLEXITY,
    CATEGORY_POPULARITY,
    CHAIN_KEYWORDS,
    RECOMMENDATION_MIN_SCORE,
    RECOMMENDATION_WEIGHTS,
)
from dropiq.engine import as_list, clamp
from dropiq.engine.chain_preference import RiskContext

NEUTRAL_SCORE = 50.0


@dataclass
class AirdropInfo:
    id: int
    slug: str
    name: str
    category: Optional[str] = None
    description: Optional[str] = None
    risk_score: int = 0
    requirements: Optional[Dict[str, Any]] = None
    meta: Optional[Dict[str, Any]] = None


@dataclass
class ChainAffinity:
    chain_id: str
    chain_name: str
    score: float


@dataclass
class ActivityContext:
    daily_active_minutes: float
    avg_session_duration: float
    efficiency_score: float


@dataclass
class ScoredAirdrop:
    airdrop: AirdropInfo
    total_score: float
    breakdown: Dict[str, float] = field(default_factory=dict)
    reason: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "airdrop_id": self.airdrop.id,
            "slug": self.airdrop.slug,
            "name": self.airdrop.name,
            "category": self.airdrop.category,
            "risk_score": self.airdrop.risk_score,
            "preference_score": self.total_score,
            "score_breakdown": dict(self.breakdown),
            "recommendation_reason": self.reason,
        }


def extract_chains(airdrop: AirdropInfo) -> List[str]:
    chains: List[str] = []

    def _add(value: Any) -> None:
        if isinstance(value, str) and value and value.lower() not in chains:
            chains.append(value.lower())

    for chain in as_list((airdrop.requirements or {}).get("chains")):
        _add(chain)
    meta = airdrop.meta or {}
    _add(meta.get("chain"))
    _add(meta.get("network"))
    description = (airdrop.description or "").lower()
    for keyword, chain_id in CHAIN_KEYWORDS.items():
        if re.search(rf"\b{re.escape(keyword)}\b", description):
            _add(chain_id)
    return chains or ["eth"]


def risk_compatibility(airdrop_risk: Optional[int], risk: RiskContext) -> float:
    a_risk = airdrop_risk or 50
    score = (NEUTRAL_SCORE + (100 - abs(a_risk - risk.risk_score))) / 2
    if risk.category == "conservative" and a_risk > 70:
        score -= 30
    elif risk.category == "aggressive" and a_risk < 30:
        score -= 20
    if risk.financial_capacity == "low" and a_risk > 60:
        score -= 15
    if risk.experience_level == "beginner" and a_risk > 50:
        score -= 10
    return clamp(score)


def chain_compatibility(chains: Sequence[str], prefs: Sequence[ChainAffinity]) -> float:
    if not prefs:
        return NEUTRAL_SCORE
    best = 0.0
    for chain in chains:
        for pref in prefs:
            if pref.chain_id == chain or chain in pref.chain_name.lower():
                best = max(best, float(pref.score))
    # No direct match gets a moderate score
    return best if best > 0 else 40.0


def estimate_time(airdrop: AirdropInfo) -> int:
    minutes = 30.0
    req = airdrop.requirements or {}
    tasks = as_list(req.get("tasks"))
    if tasks:
        minutes = len(tasks) * 15
    if req.get("difficulty") == "easy":
        minutes *= 0.5
    elif req.get("difficulty") == "hard":
        minutes *= 2
    if (airdrop.risk_score or 0) > 70:
        minutes *= 1.5
    return round(minutes)


def estimate_complexity(airdrop: AirdropInfo) -> float:
    complexity = 50 + ((airdrop.risk_score or 0) - 50) * 0.5
    category = (airdrop.category or "").lower()
    if category in CATEGORY_COMPLEXITY:
        complexity = (complexity + CATEGORY_COMPLEXITY[category]) / 2
    return clamp(complexity)


def activity_compatibility(airdrop: AirdropInfo, activity: ActivityContext) -> float:
    score = NEUTRAL_SCORE
    minutes = estimate_time(airdrop)
    if minutes <= activity.daily_active_minutes * 0.3:
        score += 20
    elif minutes > activity.daily_active_minutes:
        score -= 20
    tech_level = activity.efficiency_score or NEUTRAL_SCORE
    score += 15 if estimate_complexity(airdrop) <= tech_level else -15
    if minutes <= activity.avg_session_duration * 1.5:
        score += 10
    return clamp(score)


def category_preference(category: Optional[str], preferred_types: Iterable[str] = ()) -> float:
    cat = (category or "other").lower()
    if cat in {t.lower() for t in preferred_types}:
        return 100.0
    return float(CATEGORY_POPULARITY.get(cat, 50))


def recommendation_reason(breakdown: Dict[str, float]) -> str:
    phrases = {
        "risk": "matches your risk tolerance",
        "chain": "uses your preferred blockchains",
        "activity": "fits your activity patterns",
        "category": "is in a popular category",
    }
    reasons = [text for key, text in phrases.items() if breakdown.get(key, 0) > 70]
    if not reasons:
        return "May be worth exploring based on your profile"
    if len(reasons) == 1:
        return f"Highly recommended because it {reasons[0]}"
    if len(reasons) == 2:
        return f"Great match because it {reasons[0]} and {reasons[1]}"
    return f"Excellent fit because it {', '.join(reasons[:-1])}, and {reasons[-1]}"


def score_airdrop(airdrop: AirdropInfo, risk: Optional[RiskContext], prefs: Sequence[ChainAffinity],
                  activity: Optional[ActivityContext], preferred_types: Iterable[str] = ()) -> ScoredAirdrop:
    breakdown = {
        "risk": risk_compatibility(airdrop.risk_score, risk) if risk else NEUTRAL_SCORE,
        "chain": chain_compatibility(extract_chains(airdrop), prefs),
        "activity": activity_compatibility(airdrop, activity) if activity else NEUTRAL_SCORE,
        "category": category_preference(airdrop.category, preferred_types),
    }
    total = sum(breakdown[key] * weight for key, weight in RECOMMENDATION_WEIGHTS.items())
    return ScoredAirdrop(
        airdrop=airdrop,
        total_score=round(total, 2),
        breakdown={k: round(v, 2) for k, v in breakdown.items()},
        reason=recommendation_reason(breakdown),
    )


def recommend(airdrops: Iterable[AirdropInfo], risk: Optional[RiskContext], prefs: Sequence[ChainAffinity],
              activity: Optional[ActivityContext], preferred_types: Iterable[str] = (),
              limit: int = 10) -> List[ScoredAirdrop]:
    preferred = list(preferred_types)
    scored = [score_airdrop(a, risk, prefs, activity, preferred) for a in airdrops]
    scored = [s for s in scored if s.total_score > RECOMMENDATION_MIN_SCORE]
    scored.sort(key=lambda s: s.total_score, reverse=True)
    return scored[:max(0, limit)]
