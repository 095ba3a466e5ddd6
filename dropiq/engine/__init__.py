"""Preference and recommendation scoring.

The engine modules are pure: they take plain values and dataclasses and never
touch the database. dropiq.core.profiles loads their inputs and stores their
results.
"""
from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def as_number(value: Any, default: float = 0.0) -> float:
    """Coerce a JSON payload value to float; anything unusable becomes the default."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def as_list(value: Any) -> List[Any]:
    """Return value when it is a JSON array, otherwise an empty list."""
    return list(value) if isinstance(value, (list, tuple)) else []


@dataclass
class Insight:
    """A user-facing observation produced by one of the analyzers."""

    insight_type: str  # risk | chain | activity | general
    title: str
    description: str
    confidence: float
    impact: str = "medium"
    recommendations: List[str] = field(default_factory=list)
    valid_days: int = 7
    supporting_data: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


__all__ = ["Insight", "as_list", "as_number", "clamp"]
