"""Per-chain preference scoring from interaction history."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional

from dropiq.core.config import CHAIN_CATALOG, CHAIN_INSIGHT_VALID_DAYS, CHAIN_INTERACTION_EVENTS
from dropiq.core.time_utils import days_since, ensure_aware_utc, utc_now
from dropiq.engine import Insight, as_number, clamp

TREND_WINDOW_DAYS = 14


@dataclass
class ChainInteraction:
    chain_id: str
    gas_spent: float
    success: bool
    timestamp: datetime


@dataclass
class RiskContext:
    """The slice of a risk profile the chain and recommendation scorers use."""

    risk_score: int
    category: str = "balanced"
    financial_capacity: str = "medium"
    technical_knowledge: int = 5
    experience_level: str = "intermediate"


@dataclass
class ChainScore:
    chain_id: str
    chain_name: str
    preference_score: int
    usage_frequency: int
    total_gas_spent: float
    avg_gas_cost: float
    success_rate: float
    last_used: Optional[datetime]
    trend: str
    factors: List[Dict[str, Any]] = field(default_factory=list)
    recommendation: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["last_used"] = self.last_used.isoformat() if self.last_used else None
        return data


def interaction_from_event(event_type: str, event_data: Optional[Mapping[str, Any]], timestamp: datetime) -> Optional[ChainInteraction]:
    """Map a behaviour event to a chain interaction, or None if it is not one."""
    if event_type not in CHAIN_INTERACTION_EVENTS:
        return None
    data = event_data or {}
    return ChainInteraction(
        chain_id=str(data.get("chainId") or "eth").lower(),
        gas_spent=as_number(data.get("gasSpent")),
        # Only an explicit false counts as a failure
        success=data.get("success") is not False,
        timestamp=ensure_aware_utc(timestamp),
    )


def calculate_trend(interactions: List[ChainInteraction], now: Optional[datetime] = None) -> str:
    """Compare activity in the last two weeks against the two weeks before."""
    if len(interactions) < 3:
        return "stable"
    now = now or utc_now()
    recent_start = now - timedelta(days=TREND_WINDOW_DAYS)
    older_start = recent_start - timedelta(days=TREND_WINDOW_DAYS)
    recent = sum(1 for i in interactions if i.timestamp > recent_start)
    older = sum(1 for i in interactions if older_start < i.timestamp <= recent_start)
    if older == 0:
        return "increasing" if recent > 0 else "stable"
    if recent > older * 1.5:
        return "increasing"
    if recent < older * 0.5:
        return "decreasing"
    return "stable"


def characteristic_score(chain: Mapping[str, Any], risk: Optional[RiskContext]) -> float:
    score = 50.0
    if risk is None:
        return score
    if risk.risk_score > 70:
        # Newer, harder chains suit high tolerance
        score += (10 - chain["maturity"]) * 3
        score += chain["difficulty"] * 2
    else:
        score += chain["security"] * 3
        score += chain["maturity"] * 2
    if risk.financial_capacity == "low":
        score += (10 - chain["gas_cost"]) * 4
    if risk.technical_knowledge < 5:
        score += (10 - chain["difficulty"]) * 3
    return clamp(score)


def default_recommendation(chain_name: str, score: float) -> str:
    if score > 80:
        return f"Excellent match! {chain_name} suits your profile perfectly."
    if score > 60:
        return f"Good choice! {chain_name} aligns well with your preferences."
    if score > 40:
        return f"Consider {chain_name} if you want to explore new options."
    return f"{chain_name} may not be the best fit for your current profile."


def score_chain(chain_id: str, interactions: List[ChainInteraction], risk: Optional[RiskContext] = None,
                now: Optional[datetime] = None) -> ChainScore:
    now = now or utc_now()
    chain = CHAIN_CATALOG[chain_id]
    usage = len(interactions)
    successes = sum(1 for i in interactions if i.success)
    success_rate = (successes / usage * 100) if usage else 0.0
    total_gas = sum(i.gas_spent for i in interactions)
    avg_gas = total_gas / usage if usage else float(chain["gas_cost"]) * 10
    last_used = max((i.timestamp for i in interactions), default=None)
    idle_days = days_since(last_used, now)
    factors = [
        {"factor": "usage_frequency", "weight": 30, "score": min(100, usage * 10)},
        {"factor": "success_rate", "weight": 25, "score": success_rate},
        {"factor": "gas_efficiency", "weight": 20, "score": max(0.0, 100 - avg_gas / 2)},
        {"factor": "chain_characteristics", "weight": 15, "score": characteristic_score(chain, risk)},
        {"factor": "recency", "weight": 10, "score": 0 if idle_days is None else max(0, 100 - idle_days * 2)},
    ]
    total = sum(f["score"] * f["weight"] / 100 for f in factors)
    score = int(round(clamp(total)))
    return ChainScore(
        chain_id=chain_id,
        chain_name=str(chain["name"]),
        preference_score=score,
        usage_frequency=usage,
        total_gas_spent=total_gas,
        avg_gas_cost=avg_gas,
        success_rate=success_rate,
        last_used=last_used,
        trend=calculate_trend(interactions, now),
        factors=factors,
        recommendation=default_recommendation(str(chain["name"]), score),
    )


def analyze(interactions: Iterable[ChainInteraction], risk: Optional[RiskContext] = None,
            now: Optional[datetime] = None) -> List[ChainScore]:
    """Score every catalogued chain, best first; chains scoring 0 are dropped."""
    by_chain: Dict[str, List[ChainInteraction]] = {cid: [] for cid in CHAIN_CATALOG}
    for interaction in interactions:
        if interaction.chain_id in by_chain:
            by_chain[interaction.chain_id].append(interaction)
    scores = [score_chain(cid, items, risk, now) for cid, items in by_chain.items()]
    scores = [s for s in scores if s.preference_score > 0]
    scores.sort(key=lambda s: s.preference_score, reverse=True)
    return scores


def chain_insights(prefs: List[ChainScore]) -> List[Insight]:
    insights: List[Insight] = []
    high_gas = [p for p in prefs if p.avg_gas_cost > 50 and p.preference_score > 70]
    if high_gas:
        insights.append(Insight(
            insight_type="chain",
            title="High Gas Cost Preference",
            description=f"You frequently use {', '.join(p.chain_name for p in high_gas)} despite high gas costs. "
                        "Consider optimizing for efficiency.",
            confidence=0.8,
            impact="medium",
            recommendations=["Explore Layer 2 alternatives for similar opportunities with lower costs."],
            valid_days=CHAIN_INSIGHT_VALID_DAYS,
        ))
    if len(prefs) < 3:
        insights.append(Insight(
            insight_type="chain",
            title="Limited Chain Diversity",
            description="You primarily use one or two blockchains. Diversifying could expose you to more opportunities.",
            confidence=0.9,
            impact="medium",
            recommendations=["Explore airdrops on other compatible chains to maximize your opportunities."],
            valid_days=CHAIN_INSIGHT_VALID_DAYS,
        ))
    low_success = [p for p in prefs if p.success_rate < 50 and p.usage_frequency > 5]
    if low_success:
        insights.append(Insight(
            insight_type="chain",
            title="Low Success Rate Detected",
            description=f"Your success rate on {', '.join(p.chain_name for p in low_success)} is below 50%.",
            confidence=0.8,
            impact="high",
            recommendations=["Review your approach on these chains or focus on ones where you have better success."],
            valid_days=CHAIN_INSIGHT_VALID_DAYS,
        ))
    return insights
