"""Personalised copies of community strategies."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

RISK_LADDER = ["low", "medium", "high", "extreme"]
RISK_ADJUSTMENTS = ("conservative", "moderate", "aggressive")

_RISK_NOTES = {
    "conservative": [
        "Reduced exposure to high-risk elements",
        "Added additional safety checks and precautions",
        "Extended timeline for more careful execution",
        "Lower budget requirements for reduced risk",
    ],
    "aggressive": [
        "Increased exposure to high-reward opportunities",
        "Streamlined execution for faster results",
        "Higher budget allocation for maximum impact",
        "Additional monitoring required due to increased risk",
    ],
}


@dataclass
class CopySettings:
    title: str
    description: str
    risk_adjustment: str = "moderate"
    timeline_multiplier: float = 1.0
    budget_multiplier: float = 1.0
    include_tips: bool = True
    include_requirements: bool = True
    adapt_to_user: bool = False
    custom_notes: Optional[str] = None

    def validate(self) -> None:
        if not self.title.strip():
            raise ValueError("Title is required")
        if not self.description.strip():
            raise ValueError("Description is required")
        if self.risk_adjustment not in RISK_ADJUSTMENTS:
            raise ValueError("risk_adjustment must be conservative, moderate or aggressive")
        if not 0.5 <= self.timeline_multiplier <= 2:
            raise ValueError("timeline_multiplier must be between 0.5 and 2")
        if not 0.5 <= self.budget_multiplier <= 3:
            raise ValueError("budget_multiplier must be between 0.5 and 3")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def adjust_risk_level(original: str, adjustment: str) -> str:
    """Move one rung down (conservative) or up (aggressive) the risk ladder."""
    if original not in RISK_LADDER:
        return original
    idx = RISK_LADDER.index(original)
    if adjustment == "conservative":
        return RISK_LADDER[max(0, idx - 1)]
    if adjustment == "aggressive":
        return RISK_LADDER[min(len(RISK_LADDER) - 1, idx + 1)]
    return original


def _section(title: str, lines: List[str]) -> str:
    return f"## {title}\n\n" + "\n".join(lines) + "\n\n---\n\n"


def personalize_content(original_content: str, settings: CopySettings, original_risk: str) -> str:
    parts = [
        "# Personalized Strategy Copy\n\n"
        f"**Original Risk Level:** {original_risk}\n"
        f"**Adjusted Risk Level:** {adjust_risk_level(original_risk, settings.risk_adjustment)}\n"
        f"**Timeline Multiplier:** {settings.timeline_multiplier}x\n"
        f"**Budget Multiplier:** {settings.budget_multiplier}x\n\n---\n\n"
    ]
    if settings.custom_notes:
        parts.append(_section("Custom Notes", [settings.custom_notes]))
    if settings.risk_adjustment in _RISK_NOTES:
        parts.append(_section(
            "Risk Adjustment Notes",
            [f"This strategy has been modified to be **{settings.risk_adjustment}**:", ""]
            + [f"- {note}" for note in _RISK_NOTES[settings.risk_adjustment]],
        ))
    if settings.timeline_multiplier != 1:
        pct = round(settings.timeline_multiplier * 100)
        if settings.timeline_multiplier > 1:
            notes = ["Extended timeline allows for more thorough execution",
                     "Additional time for research and verification"]
        else:
            notes = ["Compressed timeline for faster execution",
                     "Requires more focused and efficient work"]
        parts.append(_section(
            "Timeline Adjustment",
            [f"This strategy has been adjusted to run at **{pct}%** of the original timeline.", ""]
            + [f"- {n}" for n in notes],
        ))
    if settings.budget_multiplier != 1:
        pct = round(settings.budget_multiplier * 100)
        if settings.budget_multiplier > 1:
            notes = ["Increased budget allows for more opportunities",
                     "Higher potential returns with proportional risk"]
        else:
            notes = ["Reduced budget for more conservative approach",
                     "Focus on highest-impact activities"]
        parts.append(_section(
            "Budget Adjustment",
            [f"This strategy has been adjusted to use **{pct}%** of the original budget.", ""]
            + [f"- {n}" for n in notes],
        ))
    if settings.adapt_to_user:
        parts.append(_section(
            "Personalized for Your Profile",
            ["This strategy has been adapted based on your:",
             "- Historical success patterns",
             "- Preferred blockchain networks",
             "- Risk tolerance level"],
        ))
    parts.append(f"## Original Strategy Content\n\n{original_content}")
    return "".join(parts)


def copy_values(original: Dict[str, Any], settings: CopySettings) -> Dict[str, Any]:
    """Field values for the new strategy row; the original dict is not modified."""
    settings.validate()
    reward = original.get("estimated_reward")
    tags = list(original.get("tags") or [])
    for tag in ("personalized", "copy"):
        if tag not in tags:
            tags.append(tag)
    return {
        "title": settings.title.strip(),
        "description": settings.description.strip(),
        "content": personalize_content(original.get("content") or "", settings, original.get("risk_level") or "medium"),
        "category": original.get("category"),
        "difficulty": original.get("difficulty"),
        "risk_level": adjust_risk_level(original.get("risk_level") or "medium", settings.risk_adjustment),
        "estimated_time": round((original.get("estimated_time") or 0) * settings.timeline_multiplier),
        "estimated_reward": round(reward * settings.budget_multiplier, 2) if reward is not None else None,
        "tags": tags,
        "tips": list(original.get("tips") or []) if settings.include_tips else [],
        "requirements": list(original.get("requirements") or []) if settings.include_requirements else [],
        "is_public": False,
        "original_strategy_id": original.get("id"),
        "copy_settings": settings.to_dict(),
    }
