"""Risk-tolerance questionnaire scoring.

Eight answers on a 1-5 scale are weighted into a 0-100 tolerance score and a
handful of derived profile attributes. Everything here is pure; persistence
lives in dropiq.core.profiles.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping

from dropiq.core.config import RISK_WEIGHTS, RISK_INSIGHT_VALID_DAYS
from dropiq.engine import Insight

RISK_QUESTIONS = tuple(RISK_WEIGHTS.keys())


@dataclass
class RiskResult:
    risk_score: int
    category: str
    financial_capacity: str
    loss_acceptance: int
    time_horizon: str
    experience_level: str
    technical_knowledge: int
    security_consciousness: int
    confidence: float
    factors: List[Dict[str, Any]] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def validate_answers(answers: Mapping[str, Any]) -> Dict[str, int]:
    """Return a clean copy of the answers or raise ValueError."""
    clean: Dict[str, int] = {}
    for key in RISK_QUESTIONS:
        if key not in answers:
            raise ValueError(f"Missing answer: {key}")
        value = answers[key]
        if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 5:
            raise ValueError(f"Answer {key} must be an integer between 1 and 5")
        clean[key] = value
    return clean


def calculate_risk_score(answers: Mapping[str, int]) -> int:
    weighted = sum((answers[key] / 5) * 100 * weight for key, weight in RISK_WEIGHTS.items())
    return min(100, max(0, round(weighted)))


def categorize(score: int) -> str:
    if score <= 20:
        return "conservative"
    if score <= 40:
        return "moderate"
    if score <= 60:
        return "balanced"
    if score <= 80:
        return "growth"
    return "aggressive"


def financial_capacity(risk_capacity: int, investment_experience: int) -> str:
    combined = (risk_capacity + investment_experience) / 2
    if combined <= 2:
        return "low"
    if combined <= 3:
        return "medium"
    if combined <= 4:
        return "high"
    return "very_high"


def time_horizon(answer: int) -> str:
    if answer <= 2:
        return "short"
    if answer <= 4:
        return "medium"
    return "long"


def experience_level(answer: int) -> str:
    if answer <= 1:
        return "beginner"
    if answer <= 3:
        return "intermediate"
    if answer <= 4:
        return "advanced"
    return "expert"


def _confidence(answers: Mapping[str, int]) -> float:
    # Internally consistent answers raise confidence
    confidence = 0.5
    if abs(answers["investment_experience"] - answers["technical_knowledge"]) <= 1:
        confidence += 0.2
    if abs(answers["risk_capacity"] - answers["loss_tolerance"]) <= 1:
        confidence += 0.2
    if answers["security_priority"] >= 4:
        confidence += 0.1
    return round(min(1.0, confidence), 2)


def default_recommendations(category: str, experience: str) -> List[str]:
    if category == "conservative":
        recs = [
            "Focus on established projects with low risk scores",
            "Never invest more than you can afford to lose",
            "Use hardware wallets for all interactions",
        ]
    elif category == "aggressive":
        recs = [
            "Consider higher-risk, higher-reward opportunities",
            "Diversify across multiple risk categories",
            "Set clear stop-loss limits",
        ]
    else:
        recs = [
            "Maintain a balanced portfolio of risk levels",
            "Research each project thoroughly before participating",
            "Start with smaller investments to test the waters",
        ]
    if experience == "beginner":
        recs += [
            "Start with testnet interactions to learn the process",
            "Follow educational content about DeFi security",
        ]
    return recs[:5]


def assess(answers: Mapping[str, Any]) -> RiskResult:
    clean = validate_answers(answers)
    score = calculate_risk_score(clean)
    category = categorize(score)
    experience = experience_level(clean["investment_experience"])
    factors = [
        {"factor": key, "weight": round(weight * 100), "score": round(clean[key] / 5 * 100)}
        for key, weight in RISK_WEIGHTS.items()
    ]
    return RiskResult(
        risk_score=score,
        category=category,
        financial_capacity=financial_capacity(clean["risk_capacity"], clean["investment_experience"]),
        loss_acceptance=round(clean["loss_tolerance"] / 5 * 20 + clean["risk_capacity"] / 5 * 10),
        time_horizon=time_horizon(clean["time_horizon"]),
        experience_level=experience,
        technical_knowledge=round(clean["technical_knowledge"] / 5 * 10),
        security_consciousness=round(clean["security_priority"] / 5 * 10),
        confidence=_confidence(clean),
        factors=factors,
        recommendations=default_recommendations(category, experience),
    )


def risk_insights(result: RiskResult) -> List[Insight]:
    insights: List[Insight] = []
    if result.risk_score > 70 and result.experience_level == "beginner":
        insights.append(Insight(
            insight_type="risk",
            title="High Risk Tolerance, Low Experience",
            description="You show high risk tolerance but have limited experience. "
                        "Consider starting with lower-risk projects to build experience.",
            confidence=0.8,
            impact="high",
            recommendations=["Focus on educational content and start with established projects."],
            valid_days=RISK_INSIGHT_VALID_DAYS,
        ))
    if result.security_consciousness < 6:
        insights.append(Insight(
            insight_type="risk",
            title="Security Awareness Gap",
            description="Your security awareness score suggests room for improvement in protecting your assets.",
            confidence=0.9,
            impact="critical",
            recommendations=["Complete the security best practices guide before participating in airdrops."],
            valid_days=RISK_INSIGHT_VALID_DAYS,
        ))
    return insights
