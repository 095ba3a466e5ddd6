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


def test_register_login_me_and_logout():
    with TestClient(app) as client:
        user_id, token = _register_and_login(client, "alice", "alice@example.com")
        headers = {"Authorization": f"Bearer {token}"}

        r = client.get("/auth/me", headers=headers)
        assert r.status_code == 200, r.text
        me = r.json()
        assert me["id"] == user_id
        assert me["role"] == "user"
        assert me["display_name"] == "alice"
        assert me["last_login"] is not None

        r = client.post("/auth/logout", headers=headers)
        assert r.status_code == 200
        # Revoked tokens are rejected
        r = client.get("/auth/me", headers=headers)
        assert r.status_code == 401


def test_login_with_email_and_bad_password():
    with TestClient(app) as client:
        _register_and_login(client, "bob", "Bob@Example.com")
        r = client.post("/auth/login", json={"username": "bob@example.com", "password": "Password123!"})
        assert r.status_code == 200, r.text
        assert r.json()["token_type"] == "bearer"

        r = client.post("/auth/login", json={"username": "bob", "password": "wrong-password"})
        assert r.status_code == 401


def test_duplicate_and_invalid_registration():
    with TestClient(app) as client:
        _register_and_login(client, "carol", "carol@example.com")
        r = client.post("/auth/register", json={"username": "carol", "email": "other@example.com", "password": "Password123!"})
        assert r.status_code == 409
        r = client.post("/auth/register", json={"username": "carol2", "email": "carol@example.com", "password": "Password123!"})
        assert r.status_code == 409
        r = client.post("/auth/register", json={"username": "dave", "email": "dave@example.com", "password": "short"})
        assert r.status_code == 400
        r = client.post("/auth/register", json={"username": "bad name!", "email": "x@example.com", "password": "Password123!"})
        assert r.status_code == 400


def test_admin_role_from_configured_email():
    with TestClient(app) as client:
        r = client.post("/auth/register", json={"username": "root", "email": "admin@example.com", "password": "Password123!"})
        assert r.status_code == 200, r.text
        assert r.json()["role"] == "admin"


def test_protected_route_requires_token():
    with TestClient(app) as client:
        assert client.get("/auth/me").status_code == 401
        assert client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401
