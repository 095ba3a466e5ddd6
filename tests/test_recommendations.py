import pytest

from dropiq.engine import recommendations as rec
from dropiq.engine.chain_preference import RiskContext


def _airdrop(**kwargs):
    values = {"id": 1, "slug": "alpha", "name": "Alpha", "category": "defi", "risk_score": 50}
    values.update(kwargs)
    return rec.AirdropInfo(**values)


def test_risk_compatibility_is_bounded():
    for user in range(0, 101, 10):
        for category in ("conservative", "balanced", "aggressive"):
            ctx = RiskContext(risk_score=user, category=category, financial_capacity="low", experience_level="beginner")
            for airdrop_risk in range(0, 101, 10):
                assert 0 <= rec.risk_compatibility(airdrop_risk, ctx) <= 100


def test_conservative_beginner_avoids_risky_airdrops():
    ctx = RiskContext(risk_score=20, category="conservative", financial_capacity="low", experience_level="beginner")
    assert rec.risk_compatibility(90, ctx) == 0


def test_unrated_airdrop_counts_as_medium_risk():
    assert rec.risk_compatibility(0, RiskContext(risk_score=50)) == 75


def test_chain_compatibility():
    assert rec.chain_compatibility(["eth"], []) == 50
    prefs = [rec.ChainAffinity("polygon", "Polygon", 80)]
    assert rec.chain_compatibility(["eth"], prefs) == 40
    assert rec.chain_compatibility(["eth", "polygon"], prefs) == 80


def test_extract_chains():
    assert rec.extract_chains(_airdrop(requirements={"chains": ["Arbitrum"]})) == ["arbitrum"]
    assert rec.extract_chains(_airdrop(description="Bridge assets to Polygon")) == ["polygon"]
    assert rec.extract_chains(_airdrop(description="A baseline yield protocol")) == ["eth"]
    assert rec.extract_chains(_airdrop(meta={"network": "Base"})) == ["base"]


def test_estimate_time():
    hard = _airdrop(requirements={"tasks": ["a", "b", "c", "d"], "difficulty": "hard"})
    assert rec.estimate_time(hard) == 120
    risky = _airdrop(risk_score=80, requirements={"tasks": ["a", "b", "c", "d"], "difficulty": "hard"})
    assert rec.estimate_time(risky) == 180
    assert rec.estimate_time(_airdrop(requirements={"difficulty": "easy"})) == 15


def test_malformed_requirements_are_ignored():
    assert rec.extract_chains(_airdrop(requirements={"chains": "polygon"})) == ["eth"]
    assert rec.extract_chains(_airdrop(requirements={"chains": [1, "Base"]}, meta={"chain": ["zksync"]})) == ["base"]
    assert rec.estimate_time(_airdrop(requirements={"tasks": 3})) == 30
    assert rec.estimate_time(_airdrop(requirements={"tasks": "bridge"})) == 30


def test_estimate_complexity():
    assert rec.estimate_complexity(_airdrop()) == 60
    assert rec.estimate_complexity(_airdrop(category="other", risk_score=100)) == 75


def test_category_preference():
    assert rec.category_preference("nft", ["NFT"]) == 100
    assert rec.category_preference("defi") == 90
    assert rec.category_preference("unheard-of") == 50
    assert rec.category_preference(None) == 50


def test_score_without_profile():
    scored = rec.score_airdrop(_airdrop(), None, [], None)
    assert scored.total_score == pytest.approx(54)
    assert scored.breakdown == {"risk": 50, "chain": 50, "activity": 50, "category": 90}
    assert scored.reason == "Highly recommended because it is in a popular category"


def test_recommend_filters_and_limits():
    ctx = RiskContext(risk_score=20, category="conservative", financial_capacity="low", experience_level="beginner")
    prefs = [rec.ChainAffinity("polygon", "Polygon", 10)]
    airdrops = [_airdrop(id=i, slug=f"a{i}", category="other", risk_score=95) for i in range(3)]
    airdrops += [_airdrop(id=10 + i, slug=f"b{i}", risk_score=20) for i in range(5)]
    results = rec.recommend(airdrops, ctx, prefs, None, limit=3)
    assert len(results) == 3
    assert all(r.total_score > 30 for r in results)
    assert all(r.airdrop.id >= 10 for r in results)
    assert rec.recommend(airdrops, ctx, prefs, None, limit=0) == []


def test_reason_phrasing():
    assert rec.recommendation_reason({"risk": 10}) == "May be worth exploring based on your profile"
    assert rec.recommendation_reason({"risk": 80, "chain": 90}).startswith("Great match")
    assert rec.recommendation_reason({"risk": 80, "chain": 90, "activity": 71}).startswith("Excellent fit")
