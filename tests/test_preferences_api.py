from fastapi.testclient import TestClient
from dropiq.main import app

QUESTIONS = (
    "investment_experience",
    "risk_capacity",
    "time_horizon",
    "technical_knowledge",
    "security_priority",
    "loss_tolerance",
    "diversification_understanding",
    "volatility_comfort",
)


def _register_and_login(client: TestClient, username: str, email: str, password: str = "Password123!") -> tuple[int, str]:
    r = client.post("/auth/register", json={"username": username, "email": email, "password": password})
    assert r.status_code == 200, r.text
    user_id = r.json()["id"]
    r = client.post("/auth/login", json={"username": username, "password": password})
    assert r.status_code == 200, r.text
    token = r.json()["access_token"]
    return user_id, token


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _answers(value: int) -> dict:
    return {key: value for key in QUESTIONS}


def test_risk_assessment_insights_and_evolution():
    with TestClient(app) as client:
        _, token = _register_and_login(client, "alice", "alice@example.com")

        r = client.get("/preferences/risk-assessment", headers=_auth(token))
        assert r.status_code == 404

        r = client.post("/preferences/risk-assessment", headers=_auth(token), json={"answers": {"risk_capacity": 3}})
        assert r.status_code == 400

        r = client.post("/preferences/risk-assessment", headers=_auth(token), json={"answers": _answers(1)})
        assert r.status_code == 200, r.text
        result = r.json()["data"]
        assert result["risk_score"] == 20
        assert result["category"] == "conservative"

        r = client.get("/preferences/risk-assessment", headers=_auth(token))
        assert r.status_code == 200, r.text
        assert r.json()["data"]["risk_score"] == 20
        assert r.json()["data"]["answers"]["risk_capacity"] == 1

        r = client.get("/preferences/insights", headers=_auth(token), params={"type": "risk"})
        insights = r.json()["data"]
        assert [i["title"] for i in insights] == ["Security Awareness Gap"]
        assert insights[0]["valid_until"] is not None

        # Reading an insight hides it from the default listing
        r = client.post("/preferences/insights", headers=_auth(token), json={"action": "mark_read", "insight_id": insights[0]["id"]})
        assert r.status_code == 200, r.text
        assert r.json()["data"] == {"updated": 1}
        assert client.get("/preferences/insights", headers=_auth(token)).json()["data"] == []
        r = client.get("/preferences/insights", headers=_auth(token), params={"include_read": "true"})
        assert [i["is_read"] for i in r.json()["data"]] == [True]

        r = client.post("/preferences/insights", headers=_auth(token), json={"action": "mark_read", "insight_id": 9999})
        assert r.status_code == 404
        r = client.post("/preferences/insights", headers=_auth(token), json={"action": "mark_read"})
        assert r.status_code == 400
        r = client.post("/preferences/insights", headers=_auth(token), json={"action": "mark_all_read"})
        assert r.json()["data"] == {"updated": 0}

        # A second assessment is recorded as a change
        assert client.get("/preferences/evolution", headers=_auth(token)).json()["data"] == []
        r = client.post("/preferences/risk-assessment", headers=_auth(token), json={"answers": _answers(5)})
        assert r.status_code == 200, r.text
        r = client.get("/preferences/evolution", headers=_auth(token), params={"type": "risk"})
        [change] = r.json()["data"]
        assert change["change_reason"] == "risk_assessment_updated"
        assert change["old_value"] == {"risk_score": 20, "category": "conservative"}
        assert change["new_value"] == {"risk_score": 100, "category": "aggressive"}


def test_chain_and_activity_analysis():
    with TestClient(app) as client:
        _, token = _register_and_login(client, "alice", "alice@example.com")
        client.post("/preferences/risk-assessment", headers=_auth(token), json={"answers": _answers(5)})

        for _ in range(3):
            r = client.post(
                "/behavior/track",
                headers=_auth(token),
                json={"event_type": "wallet_connect", "event_data": {"chainId": "arbitrum"}, "duration": 10},
            )
            assert r.status_code == 200, r.text

        r = client.post("/preferences/chains/analyze", headers=_auth(token))
        assert r.status_code == 200, r.text
        scores = r.json()["data"]
        assert len(scores) == 8
        assert scores[0]["chain_id"] == "arbitrum"
        assert scores[0]["usage_frequency"] == 3

        r = client.get("/preferences/chains", headers=_auth(token))
        rows = r.json()["data"]
        assert rows[0]["chain_id"] == "arbitrum"
        assert len(rows) == 8

        assert client.get("/preferences/activity", headers=_auth(token)).status_code == 404
        r = client.post("/preferences/activity/analyze", headers=_auth(token))
        assert r.status_code == 200, r.text
        assert r.json()["data"]["active_days"] == 1
        r = client.get("/preferences/activity", headers=_auth(token))
        assert r.status_code == 200, r.text
        assert r.json()["data"]["daily_active_minutes"] == 30

        # Re-analysis replaces the pattern and records the change
        client.post("/preferences/activity/analyze", headers=_auth(token))
        r = client.get("/preferences/evolution", headers=_auth(token), params={"type": "activity"})
        assert [e["change_reason"] for e in r.json()["data"]] == ["activity_reanalyzed"]


def test_recommendations_and_behavior_profile():
    with TestClient(app) as client:
        _, alice = _register_and_login(client, "alice", "alice@example.com")
        _, admin = _register_and_login(client, "admin", "admin@example.com")

        assert client.get("/preferences/recommendations", headers=_auth(alice)).json()["data"] == []

        r = client.post("/airdrops/submit", headers=_auth(alice), json={"name": "Delta Vaults", "category": "defi"})
        airdrop_id = r.json()["data"]["id"]
        client.post(f"/admin/airdrops/{airdrop_id}/approve", headers=_auth(admin), json={"risk_score": 50})
        client.post("/airdrops/submit", headers=_auth(alice), json={"name": "Pending Thing", "category": "defi"})

        r = client.get("/preferences/recommendations", headers=_auth(alice))
        assert r.status_code == 200, r.text
        [rec] = r.json()["data"]
        assert rec["slug"] == "delta-vaults"
        assert rec["preference_score"] == 54
        assert rec["score_breakdown"]["category"] == 90

        r = client.get("/preferences/profile", headers=_auth(alice), params={"timeframe": "1y"})
        assert r.status_code == 400
        r = client.get("/preferences/profile", headers=_auth(alice), params={"timeframe": "7d"})
        assert r.status_code == 200, r.text
        profile = r.json()["data"]
        assert profile["timeframe"] == "7d"
        assert profile["risk_tolerance"] in ("very_conservative", "conservative", "moderate", "aggressive", "very_aggressive")
        assert profile["interaction_frequency"] == "low"
