"""Activity statistics over a user's recent behaviour events.

Durations are in minutes; events without one count as DEFAULT_EVENT_MINUTES.
"""
from __future__ import annotations

import math
from collections import Counter, defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from dropiq.core.config import (
    ACTIVITY_INSIGHT_VALID_DAYS,
    ACTIVITY_LOOKBACK_DAYS,
    DEFAULT_EVENT_MINUTES,
    SESSION_GAP_MINUTES,
)
from dropiq.core.time_utils import ensure_aware_utc, utc_now
from dropiq.engine import Insight

TIME_SLOTS = {
    "morning": (6, 12),
    "afternoon": (12, 18),
    "evening": (18, 24),
    "night": (0, 6),
}


@dataclass
class ActivityEvent:
    event_type: str
    timestamp: datetime
    duration: Optional[float] = None
    event_data: Optional[Dict[str, Any]] = None

    @property
    def minutes(self) -> float:
        return self.duration if self.duration else DEFAULT_EVENT_MINUTES


@dataclass
class ActivityResult:
    daily_active_minutes: int = 0
    active_days: int = 0
    weekly_active_days: int = 0
    weekend_activity: float = 0.0
    preferred_time_slots: Dict[str, float] = field(default_factory=lambda: {slot: 0 for slot in TIME_SLOTS})
    peak_hours: List[int] = field(default_factory=list)
    session_count: int = 0
    avg_session_duration: int = 0
    tasks_per_session: float = 0.0
    consistency_score: int = 0
    regularity_index: int = 0
    variance: int = 0
    burst_activity: bool = False
    tasks_per_hour: float = 0.0
    completion_rate: int = 0
    efficiency_score: int = 0
    monthly_activity: List[Dict[str, Any]] = field(default_factory=list)
    behavior_insights: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def group_sessions(events: List[ActivityEvent], gap_minutes: int = SESSION_GAP_MINUTES) -> List[List[ActivityEvent]]:
    """Split time-ordered events into sessions separated by more than gap_minutes."""
    sessions: List[List[ActivityEvent]] = []
    gap = timedelta(minutes=gap_minutes)
    for event in events:
        if sessions and event.timestamp - sessions[-1][-1].timestamp <= gap:
            sessions[-1].append(event)
        else:
            sessions.append([event])
    return sessions


def _daily_minutes(events: List[ActivityEvent]) -> Dict[str, float]:
    daily: Dict[str, float] = defaultdict(float)
    for e in events:
        daily[e.timestamp.date().isoformat()] += e.minutes
    return dict(daily)


def _weekly(events: List[ActivityEvent]) -> tuple[int, float]:
    weeks: Dict[tuple, set] = defaultdict(set)
    for e in events:
        iso = e.timestamp.isocalendar()
        weeks[(iso[0], iso[1])].add(e.timestamp.date())
    days_per_week = round(sum(len(d) for d in weeks.values()) / len(weeks)) if weeks else 0
    weekend = sum(1 for e in events if e.timestamp.weekday() >= 5)
    weekday = len(events) - weekend
    ratio = round(weekend / weekday, 2) if weekday else 0.0
    return days_per_week, ratio


def _time_preferences(events: List[ActivityEvent]) -> tuple[Dict[str, float], List[int]]:
    hourly: Dict[int, float] = {h: 0.0 for h in range(24)}
    for e in events:
        hourly[e.timestamp.hour] += e.minutes
    slots = {name: sum(hourly[h] for h in range(start, end)) for name, (start, end) in TIME_SLOTS.items()}
    # sorted() is stable, so equal hours keep clock order
    ranked = sorted((h for h in hourly if hourly[h] > 0), key=lambda h: hourly[h], reverse=True)
    return slots, ranked[:3]


def _consistency(daily: Dict[str, float]) -> tuple[int, bool, int, int]:
    values = list(daily.values())
    if not values:
        return 0, False, 0, 0
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    regularity = max(0.0, 100 - (math.sqrt(variance) / mean) * 100) if mean > 0 else 0.0
    burst = max(values) > mean * 3 and variance > mean * mean
    score = min(100.0, (regularity + (len(values) / ACTIVITY_LOOKBACK_DAYS) * 100) / 2)
    return round(score), burst, round(variance), round(regularity)


def _productivity(events: List[ActivityEvent]) -> tuple[float, int, int]:
    hours = sum(e.minutes for e in events) / 60
    tasks_done = sum(1 for e in events if e.event_type == "task_complete")
    tasks_started = sum(1 for e in events if e.event_type == "task_start")
    airdrop_status = [((e.event_data or {}).get("status")) for e in events if e.event_type == "airdrop_interact"]
    airdrops_done = sum(1 for s in airdrop_status if s == "completed")
    airdrops_started = sum(1 for s in airdrop_status if s in ("started", "in_progress"))

    tasks_per_hour = round(tasks_done / hours, 1) if hours > 0 else 0.0
    # Completions of tasks started before the window can outnumber starts
    task_rate = min(100, round(tasks_done / tasks_started * 100)) if tasks_started else 0
    airdrop_rate = min(100, round(airdrops_done / airdrops_started * 100)) if airdrops_started else 0
    overall = (task_rate + airdrop_rate) / 2
    efficiency = min(100.0, (overall + min(100.0, tasks_per_hour * 20)) / 2)
    return tasks_per_hour, round(overall), round(efficiency)


def _monthly(events: List[ActivityEvent]) -> List[Dict[str, Any]]:
    months: Counter = Counter()
    for e in events:
        months[e.timestamp.month] += e.minutes
    return [{"month": m, "activity_level": months.get(m, 0)} for m in range(1, 13)]


def behavior_insights(daily_minutes: float, tasks_per_session: float, session_minutes: float) -> List[Dict[str, Any]]:
    insights = []
    if daily_minutes < 10:
        insights.append({
            "pattern": "low_activity",
            "confidence": 0.9,
            "recommendation": "Try to spend at least 15 minutes daily for better results.",
        })
    if tasks_per_session < 1:
        insights.append({
            "pattern": "low_task_completion",
            "confidence": 0.8,
            "recommendation": "Focus on completing at least one task per session.",
        })
    if session_minutes > 60:
        insights.append({
            "pattern": "long_sessions",
            "confidence": 0.7,
            "recommendation": "Consider breaking long sessions into shorter, focused ones.",
        })
    return insights[:3]


def analyze(events: Iterable[ActivityEvent], now: Optional[datetime] = None) -> ActivityResult:
    now = now or utc_now()
    cutoff = now - timedelta(days=ACTIVITY_LOOKBACK_DAYS)
    window = []
    for e in events:
        ts = ensure_aware_utc(e.timestamp)
        if cutoff <= ts <= now:
            window.append(ActivityEvent(e.event_type, ts, e.duration, e.event_data))
    window.sort(key=lambda e: e.timestamp)
    if not window:
        return ActivityResult(monthly_activity=_monthly([]))

    daily = _daily_minutes(window)
    days_per_week, weekend_ratio = _weekly(window)
    slots, peaks = _time_preferences(window)

    sessions = group_sessions(window)
    durations = [(s[-1].timestamp - s[0].timestamp).total_seconds() / 60 for s in sessions]
    tasks = [sum(1 for e in s if e.event_type == "task_complete") for s in sessions]
    avg_session = round(sum(durations) / len(durations))
    tasks_per_session = round(sum(tasks) / len(tasks), 1)

    consistency, burst, variance, regularity = _consistency(daily)
    tph, completion, efficiency = _productivity(window)
    daily_avg = round(sum(daily.values()) / len(daily))

    return ActivityResult(
        daily_active_minutes=daily_avg,
        active_days=len(daily),
        weekly_active_days=days_per_week,
        weekend_activity=weekend_ratio,
        preferred_time_slots=slots,
        peak_hours=peaks,
        session_count=len(sessions),
        avg_session_duration=avg_session,
        tasks_per_session=tasks_per_session,
        consistency_score=consistency,
        regularity_index=regularity,
        variance=variance,
        burst_activity=burst,
        tasks_per_hour=tph,
        completion_rate=completion,
        efficiency_score=efficiency,
        monthly_activity=_monthly(window),
        behavior_insights=behavior_insights(daily_avg, tasks_per_session, avg_session),
    )


def activity_insights(result: ActivityResult) -> List[Insight]:
    supporting = {
        "daily_active_minutes": result.daily_active_minutes,
        "consistency_score": result.consistency_score,
        "avg_session_duration": result.avg_session_duration,
        "peak_hours": list(result.peak_hours),
    }
    insights: List[Insight] = []
    if result.consistency_score < 30:
        insights.append(Insight(
            insight_type="activity",
            title="Inconsistent Activity Pattern",
            description="Your activity patterns are quite variable. Establishing a routine could improve your results.",
            confidence=0.8,
            impact="medium",
            recommendations=["Try to maintain a consistent daily schedule for better airdrop opportunities."],
            valid_days=ACTIVITY_INSIGHT_VALID_DAYS,
            supporting_data=supporting,
        ))
    if result.peak_hours:
        peak = result.peak_hours[0]
        insights.append(Insight(
            insight_type="activity",
            title="Peak Activity Time Identified",
            description=f"You're most active around {peak}:00. Plan important tasks during this time.",
            confidence=0.9,
            impact="low",
            recommendations=[f"Schedule your airdrop tasks around {peak}:00 for maximum efficiency."],
            valid_days=ACTIVITY_INSIGHT_VALID_DAYS,
            supporting_data=supporting,
        ))
    if result.avg_session_duration > 45:
        insights.append(Insight(
            insight_type="activity",
            title="Long Session Duration",
            description="Your sessions tend to be quite long. Consider taking breaks to maintain focus.",
            confidence=0.7,
            impact="low",
            recommendations=["Try 25 minutes of focused work followed by a 5-minute break."],
            valid_days=ACTIVITY_INSIGHT_VALID_DAYS,
            supporting_data=supporting,
        ))
    return insights
