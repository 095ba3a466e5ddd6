from datetime import datetime, timedelta, timezone

from dropiq.engine import chain_preference as cp

NOW = datetime(2026, 3, 20, 12, 0, tzinfo=timezone.utc)


def _interaction(chain="eth", days_ago=0.0, gas=40.0, success=True):
    return cp.ChainInteraction(chain_id=chain, gas_spent=gas, success=success, timestamp=NOW - timedelta(days=days_ago))


def test_interaction_from_event_defaults():
    assert cp.interaction_from_event("page_view", {"chainId": "eth"}, NOW) is None
    i = cp.interaction_from_event("wallet_connect", None, NOW)
    assert i.chain_id == "eth"
    assert i.gas_spent == 0
    assert i.success is True


def test_interaction_failure_needs_explicit_false():
    assert cp.interaction_from_event("task_complete", {"success": None}, NOW).success is True
    assert cp.interaction_from_event("task_complete", {"success": False, "chainId": "Polygon"}, NOW).chain_id == "polygon"
    assert cp.interaction_from_event("task_complete", {"success": False}, NOW).success is False


def test_unusable_gas_values_count_as_zero():
    for gas in ("n/a", None, True, [], {"wei": 5}, "nan"):
        assert cp.interaction_from_event("wallet_connect", {"gasSpent": gas}, NOW).gas_spent == 0
    assert cp.interaction_from_event("wallet_connect", {"gasSpent": "12.5"}, NOW).gas_spent == 12.5


def test_trend_needs_three_interactions():
    assert cp.calculate_trend([_interaction(), _interaction()], NOW) == "stable"


def test_trend_windows():
    recent_only = [_interaction(days_ago=d) for d in (1, 2, 3)]
    assert cp.calculate_trend(recent_only, NOW) == "increasing"

    mostly_old = [_interaction(days_ago=1)] + [_interaction(days_ago=d) for d in (15, 16, 17, 18)]
    assert cp.calculate_trend(mostly_old, NOW) == "decreasing"

    balanced = [_interaction(days_ago=d) for d in (1, 2, 15, 16)]
    assert cp.calculate_trend(balanced, NOW) == "stable"


def test_trend_with_empty_previous_window():
    # Growth only counts when the last two weeks saw activity
    assert cp.calculate_trend([_interaction(days_ago=d) for d in (1, 2, 40)], NOW) == "increasing"
    assert cp.calculate_trend([_interaction(days_ago=d) for d in (40, 41, 42)], NOW) == "stable"


def test_score_chain_weighted_factors():
    risk = cp.RiskContext(risk_score=50)
    score = cp.score_chain("eth", [_interaction() for _ in range(10)], risk, NOW)
    # usage 30 + success 25 + gas 16 + characteristics 15 + recency 10
    assert score.preference_score == 96
    assert score.usage_frequency == 10
    assert score.success_rate == 100.0
    assert score.recommendation.startswith("Excellent match!")


def test_unused_chain_has_no_recency():
    score = cp.score_chain("polygon", [], None, NOW)
    recency = next(f for f in score.factors if f["factor"] == "recency")
    assert recency["score"] == 0
    assert score.last_used is None
    assert score.trend == "stable"


def test_characteristics_for_risk_seekers_and_low_capacity():
    chain = {"gas_cost": 2, "security": 8, "maturity": 4, "difficulty": 5}
    seeker = cp.RiskContext(risk_score=80, financial_capacity="low", technical_knowledge=3)
    # 50 + 18 + 10 + 32 + 15, clamped
    assert cp.characteristic_score(chain, seeker) == 100
    assert cp.characteristic_score(chain, None) == 50


def test_analyze_scores_every_chain_sorted():
    interactions = [_interaction("arbitrum", days_ago=d) for d in range(5)]
    scores = cp.analyze(interactions, cp.RiskContext(risk_score=60), NOW)
    assert len(scores) == 8
    assert scores[0].chain_id == "arbitrum"
    values = [s.preference_score for s in scores]
    assert values == sorted(values, reverse=True)
    assert all(0 <= v <= 100 for v in values)


def test_chain_insights():
    scores = cp.analyze([_interaction("eth", gas=200, success=False) for _ in range(6)], None, NOW)
    titles = {i.title for i in cp.chain_insights(scores)}
    assert "Low Success Rate Detected" in titles
    assert "Limited Chain Diversity" not in titles

    titles = {i.title for i in cp.chain_insights(scores[:1])}
    assert "Limited Chain Diversity" in titles
