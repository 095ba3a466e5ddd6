from fastapi.testclient import TestClient
from dropiq.main import app


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


def test_submission_review_and_progress_flow():
    with TestClient(app) as client:
        _, alice = _register_and_login(client, "alice", "alice@example.com")
        _, bob = _register_and_login(client, "bob", "bob@example.com")
        _, admin = _register_and_login(client, "admin", "admin@example.com")

        r = client.post(
            "/airdrops/submit",
            headers=_auth(alice),
            json={
                "name": "Alpha Protocol",
                "category": "DeFi",
                "description": "Bridge to Polygon and farm points",
                "website_url": "https://alpha.example.com",
                "requirements": {"tasks": ["bridge", "swap"]},
                "metadata": {"token": "ALP"},
            },
        )
        assert r.status_code == 200, r.text
        airdrop = r.json()["data"]
        assert airdrop["slug"] == "alpha-protocol"
        assert airdrop["status"] == "pending"
        assert airdrop["category"] == "defi"
        assert airdrop["metadata"] == {"token": "ALP"}
        assert "notes" not in airdrop

        # Same name again is a conflict
        r = client.post("/airdrops/submit", headers=_auth(bob), json={"name": "Alpha Protocol"})
        assert r.status_code == 409

        # Pending airdrops are visible to the submitter only
        assert client.get("/airdrops/alpha-protocol").status_code == 403
        assert client.get("/airdrops/alpha-protocol", headers=_auth(bob)).status_code == 403
        assert client.get("/airdrops/alpha-protocol", headers=_auth(alice)).status_code == 200
        r = client.patch("/airdrops/alpha-protocol/status", headers=_auth(bob), json={"status": "interested"})
        assert r.status_code == 403

        r = client.get("/airdrops")
        assert r.json()["data"]["pagination"]["total"] == 0

        # Admin review
        assert client.get("/admin/airdrops/pending", headers=_auth(bob)).status_code == 403
        r = client.get("/admin/airdrops/pending", headers=_auth(admin))
        assert r.status_code == 200, r.text
        assert [a["slug"] for a in r.json()["data"]] == ["alpha-protocol"]
        r = client.post(
            f"/admin/airdrops/{airdrop['id']}/approve",
            headers=_auth(admin),
            json={"risk_score": 30, "hype_score": 80, "notes": "looks legit"},
        )
        assert r.status_code == 200, r.text
        assert r.json()["data"]["status"] == "approved"
        r = client.post(f"/admin/airdrops/{airdrop['id']}/approve", headers=_auth(admin), json={"hype_score": 101})
        assert r.status_code == 400

        r = client.get("/airdrops", params={"category": "defi"})
        listing = r.json()["data"]
        assert listing["pagination"] == {"page": 1, "limit": 20, "total": 1, "pages": 1}
        assert listing["airdrops"][0]["hype_score"] == 80

        r = client.get("/airdrops/alpha-protocol", headers=_auth(bob))
        assert r.status_code == 200, r.text
        detail = r.json()["data"]
        assert detail["chains"] == ["polygon"]
        assert detail["user_status"] is None

        # Progress tracking
        r = client.patch("/airdrops/alpha-protocol/status", headers=_auth(bob), json={"status": "in_progress"})
        assert r.status_code == 200, r.text
        progress = r.json()["data"]
        assert progress["status"] == "in_progress"
        assert progress["started_at"] is not None
        assert progress["completed_at"] is None

        r = client.patch("/airdrops/alpha-protocol/status", headers=_auth(bob), json={"status": "completed"})
        assert r.status_code == 200, r.text
        assert r.json()["data"]["completed_at"] is not None

        r = client.patch("/airdrops/alpha-protocol/status", headers=_auth(bob), json={"status": "abandoned"})
        assert r.status_code == 400

        r = client.get("/airdrops/alpha-protocol", headers=_auth(bob))
        assert r.json()["data"]["user_status"] == "completed"

        r = client.get("/user/progress", headers=_auth(bob))
        assert r.status_code == 200, r.text
        rows = r.json()["data"]
        assert len(rows) == 1
        assert rows[0]["airdrop"]["slug"] == "alpha-protocol"
        r = client.get("/user/progress", headers=_auth(bob), params={"status": "claimed"})
        assert r.json()["data"] == []


def test_search_and_validation():
    with TestClient(app) as client:
        _, alice = _register_and_login(client, "alice", "alice@example.com")
        _, admin = _register_and_login(client, "admin", "admin@example.com")

        for name, hype in (("Gamma Quest", 40), ("Gamma Swap", 90)):
            r = client.post("/airdrops/submit", headers=_auth(alice), json={"name": name, "category": "gaming"})
            assert r.status_code == 200, r.text
            r = client.post(f"/admin/airdrops/{r.json()['data']['id']}/approve", headers=_auth(admin), json={"hype_score": hype})
            assert r.status_code == 200, r.text

        r = client.get("/airdrops/search", params={"q": "gamma"})
        assert r.status_code == 200, r.text
        assert [a["name"] for a in r.json()["data"]] == ["Gamma Swap", "Gamma Quest"]

        assert client.get("/airdrops/search", params={"q": "g"}).status_code == 400
        assert client.get("/airdrops/unknown-drop").status_code == 404

        r = client.post("/airdrops/submit", headers=_auth(alice), json={"name": "Bad Links", "website_url": "ftp://nope"})
        assert r.status_code == 400
        r = client.post("/airdrops/submit", headers=_auth(alice), json={"name": "Bad Category", "category": "casino"})
        assert r.status_code == 400
        r = client.post("/airdrops/submit", json={"name": "Anonymous Drop"})
        assert r.status_code == 401


def test_rejected_airdrop_stays_hidden():
    with TestClient(app) as client:
        _, alice = _register_and_login(client, "alice", "alice@example.com")
        _, admin = _register_and_login(client, "admin", "admin@example.com")
        r = client.post("/airdrops/submit", headers=_auth(alice), json={"name": "Rug Finance"})
        airdrop_id = r.json()["data"]["id"]

        r = client.post(f"/admin/airdrops/{airdrop_id}/reject", headers=_auth(admin), json={"reason": "Unverifiable team"})
        assert r.status_code == 200, r.text
        assert r.json()["data"]["status"] == "rejected"
        assert r.json()["data"]["notes"] == "Unverifiable team"

        assert client.get("/airdrops/rug-finance").status_code == 403
        assert client.post("/admin/airdrops/9999/reject", headers=_auth(admin), json={}).status_code == 404


def test_requirements_shape_is_validated():
    with TestClient(app) as client:
        _, alice = _register_and_login(client, "alice", "alice@example.com")
        _, admin = _register_and_login(client, "admin", "admin@example.com")

        for requirements in (
            {"tasks": 3},
            {"chains": "polygon"},
            {"chains": ["polygon", 137]},
            {"difficulty": "extreme"},
            {"estimatedTime": -10},
        ):
            r = client.post("/airdrops/submit", headers=_auth(alice), json={"name": "Gamma Drop", "requirements": requirements})
            assert r.status_code == 400, requirements
            assert r.json()["detail"].startswith("Invalid requirements.")

        requirements = {"chains": ["polygon"], "tasks": ["bridge", "swap", "stake"], "difficulty": "hard",
                        "estimatedTime": 90, "snapshot": "2026-06-01"}
        r = client.post("/airdrops/submit", headers=_auth(alice), json={"name": "Gamma Drop", "requirements": requirements})
        assert r.status_code == 200, r.text
        airdrop = r.json()["data"]
        assert airdrop["requirements"] == requirements
        r = client.post(f"/admin/airdrops/{airdrop['id']}/approve", headers=_auth(admin), json={"risk_score": 40})
        assert r.status_code == 200, r.text

        r = client.post("/behavior/track", headers=_auth(alice), json={"event_type": "page_view", "duration": 20})
        assert r.status_code == 200, r.text
        assert client.post("/preferences/activity/analyze", headers=_auth(alice)).status_code == 200
        r = client.get("/preferences/recommendations", headers=_auth(alice))
        assert r.status_code == 200, r.text
        assert [rec["slug"] for rec in r.json()["data"]] == ["gamma-drop"]
