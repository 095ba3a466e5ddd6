from fastapi.testclient import TestClient
from dropiq.core import config
from dropiq.main import app


def _register_and_login(client: TestClient, username: str, email: str, password: str = "Password123!") -> tuple[int, str]:
    r = client.post("/auth/register", json={"username": username, "email": email, "password": password})
    assert r.status_code == 200, r.text
    user_id = r.json()["id"]
    r = client.post("/auth/login", json={"username": username, "password": password})
    assert r.status_code == 200, r.text
    token = r.json()["access_token"]
    return user_id, token


def test_track_event_and_validation():
    with TestClient(app) as client:
        _, token = _register_and_login(client, "alice", "alice@example.com")
        headers = {"Authorization": f"Bearer {token}"}

        r = client.post(
            "/behavior/track",
            headers=headers,
            json={
                "event_type": "search",
                "event_data": {"searchQuery": "nft drops"},
                "timestamp": "2026-03-16T10:00:00Z",
                "duration": 3,
            },
        )
        assert r.status_code == 200, r.text
        data = r.json()["data"]
        assert data["event_type"] == "search"
        assert data["timestamp"] == "2026-03-16T10:00:00Z"

        assert client.post("/behavior/track", headers=headers, json={"event_type": "teleport"}).status_code == 400
        r = client.post("/behavior/track", headers=headers, json={"event_type": "click", "duration": -1})
        assert r.status_code == 400
        r = client.post("/behavior/track", headers=headers, json={"event_type": "click", "timestamp": "yesterday"})
        assert r.status_code == 400
        assert client.post("/behavior/track", json={"event_type": "click"}).status_code == 401

        r = client.get("/metrics")
        assert r.json()["events"].get("behavior.search") == 1


def test_tracking_is_rate_limited(monkeypatch):
    monkeypatch.setattr(config, "RATE_LIMIT_PER_MINUTE", 3)
    with TestClient(app) as client:
        _, token = _register_and_login(client, "bob", "bob@example.com")
        headers = {"Authorization": f"Bearer {token}"}
        codes = [
            client.post("/behavior/track", headers=headers, json={"event_type": "page_view"}).status_code
            for _ in range(10)
        ]
        assert codes[0] == 200
        assert 429 in codes
        assert set(codes) <= {200, 429}


def test_chain_fields_in_event_data_are_validated():
    with TestClient(app) as client:
        _, token = _register_and_login(client, "carol", "carol@example.com")
        headers = {"Authorization": f"Bearer {token}"}

        bad_payloads = (
            {"gasSpent": "n/a"},
            {"gasSpent": -5},
            {"gasSpent": True},
            {"success": "yes"},
            {"chainId": 137},
        )
        for event_data in bad_payloads:
            r = client.post("/behavior/track", headers=headers, json={"event_type": "wallet_connect", "event_data": event_data})
            assert r.status_code == 400, event_data

        r = client.post(
            "/behavior/track",
            headers=headers,
            json={"event_type": "wallet_connect", "event_data": {"chainId": "polygon", "gasSpent": 12.5, "success": True}},
        )
        assert r.status_code == 200, r.text

        r = client.post("/preferences/chains/analyze", headers=headers)
        assert r.status_code == 200, r.text
        polygon = next(c for c in r.json()["data"] if c["chain_id"] == "polygon")
        assert polygon["usage_frequency"] == 1
        assert polygon["avg_gas_cost"] == 12.5
