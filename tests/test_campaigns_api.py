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


def _approved_airdrop(client: TestClient, submitter: str, admin: str, name: str) -> int:
    r = client.post("/airdrops/submit", headers=_auth(submitter), json={"name": name, "category": "defi"})
    assert r.status_code == 200, r.text
    airdrop_id = r.json()["data"]["id"]
    r = client.post(f"/admin/airdrops/{airdrop_id}/approve", headers=_auth(admin), json={})
    assert r.status_code == 200, r.text
    return airdrop_id


def test_campaign_payment_approval_and_featured_ordering():
    with TestClient(app) as client:
        _, alice = _register_and_login(client, "alice", "alice@example.com")
        _, bob = _register_and_login(client, "bob", "bob@example.com")
        _, admin = _register_and_login(client, "admin", "admin@example.com")
        airdrop_id = _approved_airdrop(client, alice, admin, "Orbit Lend")

        created = {}
        for tier in ("basic", "premium", "standard"):
            r = client.post("/campaigns", headers=_auth(alice), json={"airdrop_id": airdrop_id, "tier": tier})
            assert r.status_code == 200, r.text
            created[tier] = r.json()["data"]
        assert created["premium"]["amount"] == 19900
        assert created["premium"]["status"] == "pending"
        assert created["premium"]["payment_status"] == "unpaid"
        assert created["premium"]["airdrop"]["name"] == "Orbit Lend"

        r = client.get("/campaigns", headers=_auth(alice))
        assert len(r.json()["data"]) == 3
        r = client.get("/campaigns", headers=_auth(alice), params={"tier": "premium"})
        assert [c["tier"] for c in r.json()["data"]] == ["premium"]
        assert client.get("/campaigns", headers=_auth(bob)).json()["data"] == []

        # Nothing is featured until it is paid and approved
        assert client.get("/campaigns/featured").json()["data"] == []

        premium_id = created["premium"]["id"]
        r = client.post(f"/admin/campaigns/{premium_id}/approve", headers=_auth(admin))
        assert r.status_code == 400
        assert client.post(f"/admin/campaigns/{premium_id}/mark-paid", headers=_auth(bob)).status_code == 403

        for tier in ("basic", "premium"):
            cid = created[tier]["id"]
            r = client.post(f"/admin/campaigns/{cid}/mark-paid", headers=_auth(admin))
            assert r.status_code == 200, r.text
            assert r.json()["data"]["status"] == "paid"
            assert r.json()["data"]["payment_status"] == "paid"
            r = client.post(f"/admin/campaigns/{cid}/approve", headers=_auth(admin))
            assert r.status_code == 200, r.text
            assert r.json()["data"]["status"] == "approved"
            assert r.json()["data"]["approved_at"] is not None

        r = client.get("/campaigns/featured")
        assert r.status_code == 200, r.text
        assert [c["tier"] for c in r.json()["data"]] == ["premium", "basic"]

        standard_id = created["standard"]["id"]
        r = client.post(f"/admin/campaigns/{standard_id}/reject", headers=_auth(admin), json={"reason": "Duplicate"})
        assert r.status_code == 200, r.text
        assert r.json()["data"]["rejection_reason"] == "Duplicate"
        assert client.post(f"/admin/campaigns/{standard_id}/mark-paid", headers=_auth(admin)).status_code == 400

        r = client.get("/admin/campaigns", headers=_auth(admin), params={"status": "approved"})
        assert len(r.json()["data"]) == 2


def test_campaign_validation():
    with TestClient(app) as client:
        _, alice = _register_and_login(client, "alice", "alice@example.com")
        _, admin = _register_and_login(client, "admin", "admin@example.com")
        airdrop_id = _approved_airdrop(client, alice, admin, "Nova Bridge")

        r = client.post("/campaigns", headers=_auth(alice), json={"airdrop_id": airdrop_id, "tier": "platinum"})
        assert r.status_code == 400
        r = client.post("/campaigns", headers=_auth(alice), json={"airdrop_id": 9999, "tier": "basic"})
        assert r.status_code == 404
        r = client.post(
            "/campaigns",
            headers=_auth(alice),
            json={
                "airdrop_id": airdrop_id,
                "tier": "basic",
                "start_date": "2030-01-10T00:00:00Z",
                "end_date": "2030-01-05T00:00:00Z",
            },
        )
        assert r.status_code == 400

        # Explicit start with the default seven day run
        r = client.post(
            "/campaigns",
            headers=_auth(alice),
            json={"airdrop_id": airdrop_id, "tier": "standard", "start_date": "2030-01-01T00:00:00Z"},
        )
        assert r.status_code == 200, r.text
        data = r.json()["data"]
        assert data["start_date"] == "2030-01-01T00:00:00Z"
        assert data["end_date"] == "2030-01-08T00:00:00Z"
        assert data["amount"] == 9900

        r = client.post("/airdrops/submit", headers=_auth(alice), json={"name": "Shady Yield"})
        rejected_id = r.json()["data"]["id"]
        client.post(f"/admin/airdrops/{rejected_id}/reject", headers=_auth(admin), json={})
        r = client.post("/campaigns", headers=_auth(alice), json={"airdrop_id": rejected_id, "tier": "basic"})
        assert r.status_code == 400
