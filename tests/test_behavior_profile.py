from datetime import datetime, timedelta, timezone

import pytest

from dropiq.engine import behavior_profile as bp
from dropiq.engine.activity_pattern import ActivityEvent

NOW = datetime(2026, 3, 20, 12, 0, tzinfo=timezone.utc)


def test_invalid_timeframe():
    with pytest.raises(ValueError):
        bp.build_profile([], [], timeframe="1y", now=NOW)


def test_tolerance_bands():
    assert bp.tolerance_band(29) == "very_conservative"
    assert bp.tolerance_band(30) == "conservative"
    assert bp.tolerance_band(45) == "moderate"
    assert bp.tolerance_band(65) == "aggressive"
    assert bp.tolerance_band(80) == "very_aggressive"


def test_empty_profile_defaults():
    profile = bp.build_profile([], [], now=NOW)
    assert profile.risk_score == 30
    assert profile.risk_tolerance == "conservative"
    assert profile.gas_optimization_level == 50
    assert profile.interaction_frequency == "low"
    assert profile.investment_horizon == "medium_term"
    assert profile.chain_preferences == []
    assert profile.confidence == 60


def test_chain_preferences_from_completed_interactions():
    interactions = [
        bp.AirdropInteraction(airdrop_id=i, status="completed", risk_score=20, chain_id="eth", created_at=NOW)
        for i in (1, 2)
    ]
    profile = bp.build_profile([], interactions, now=NOW)
    [pref] = profile.chain_preferences
    assert pref["chain_name"] == "Ethereum"
    assert pref["preference_score"] == 60
    assert pref["success_rate"] == 100
    assert bp.preferred_chains(profile) == ["eth"]


def test_old_interactions_fall_outside_timeframe():
    old = bp.AirdropInteraction(airdrop_id=1, status="started", risk_score=90, chain_id="eth",
                                created_at=NOW - timedelta(days=10))
    assert bp.build_profile([], [old], timeframe="7d", now=NOW).chain_preferences == []
    assert len(bp.build_profile([], [old], timeframe="30d", now=NOW).chain_preferences) == 1


def test_preferred_types_from_searches():
    events = [
        ActivityEvent("search", NOW),
        ActivityEvent("search", NOW, None, {"searchQuery": "best NFT drops"}),
        ActivityEvent("filter", NOW, None, {"filters": {"category": "Gaming"}}),
        ActivityEvent("page_view", NOW, None, {"category": "social"}),
    ]
    assert bp.preferred_airdrop_types(events) == ["nft", "gaming"]


def test_gas_heavy_user_is_riskier():
    events = [ActivityEvent("airdrop_interact", NOW - timedelta(hours=i), None, {"gasSpent": 30}) for i in range(60)]
    score, factors = bp.behavioral_risk(events, [])
    # gas 1800 (+20), 60 events (+8), fewer than 3 projects (-10)
    assert score == 68
    assert factors["gas_spending"] == 100
    assert bp.gas_optimization_level(events) == 97


def test_unusable_gas_is_skipped():
    events = [ActivityEvent("airdrop_interact", NOW, None, {"gasSpent": value}) for value in ("n/a", None, 200)]
    assert bp.gas_optimization_level(events) == 80


def test_matches_risk_tolerance():
    assert bp.matches_risk_tolerance("conservative", 40)
    assert not bp.matches_risk_tolerance("conservative", 41)
    assert bp.matches_risk_tolerance("unknown", 60)


def test_slot_patterns_use_sunday_as_zero():
    sunday = datetime(2026, 3, 15, 9, 0, tzinfo=timezone.utc)
    patterns = bp.slot_patterns([ActivityEvent("task_complete", sunday, 12)])
    assert patterns == [{
        "period": "morning",
        "day_of_week": 0,
        "activity_frequency": 1,
        "preferred_action_types": ["task_complete"],
        "avg_session_duration": 12,
        "conversion_rate": 100,
    }]
