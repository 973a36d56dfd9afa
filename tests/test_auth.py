import datetime

import billiards.services.auth as auth
from conftest import register


def test_health(client):
    assert client.get("/").json() == {"message": "Billiards Club API is running"}


def test_first_user_becomes_leader(client):
    first = register(client, "alice")
    second = register(client, "bob")
    assert first["role"] == "leader" and first["is_admin"]
    assert second["role"] == "member" and not second["is_admin"]
    assert second["stats"] == {"elo": 1200, "games_played": 0, "wins": 0, "losses": 0}
    assert "password_hash" not in second


def test_duplicate_registration(client):
    register(client, "alice")
    resp = client.post(
        "/api/auth/register",
        json={"name": "A", "email": "ALICE@club.test", "password": "x", "student_id": "other"},
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "User already exists"

    resp = client.post(
        "/api/auth/register",
        json={"name": "A", "email": "new@club.test", "password": "x", "student_id": "S-alice"},
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Student ID already registered"


def test_missing_fields_are_rejected(client):
    resp = client.post("/api/auth/register", json={"email": "a@club.test"})
    assert resp.status_code == 400


def test_login_and_me(client):
    alice = register(client, "alice")
    resp = client.post("/api/auth/login", json={"email": "alice@club.test", "password": "wrong"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid credentials"

    resp = client.post("/api/auth/login", json={"email": "nobody@club.test", "password": "pw"})
    assert resp.json()["detail"] == "User not found"

    resp = client.post("/api/auth/login", json={"email": "Alice@club.test", "password": "pw"})
    assert resp.status_code == 200
    token = resp.json()["token"]

    me = client.get("/api/auth/me", params={"token": token})
    assert me.status_code == 200
    assert me.json()["user_id"] == alice["user_id"]

    other = client.get(f"/api/users/{alice['user_id']}", params={"token": token})
    assert other.json()["name"] == "Alice"
    assert client.get("/api/users/missing", params={"token": token}).status_code == 404


def test_requests_need_a_token(client):
    resp = client.get("/api/auth/me")
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Please authenticate."
    resp = client.get("/api/auth/me", headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401


def test_logout_revokes_token(client):
    alice = register(client, "alice")
    token = alice["token"]
    assert client.post("/api/auth/logout", json={"token": token}).status_code == 200
    assert client.get("/api/auth/me", params={"token": token}).status_code == 401


def test_expired_token(client, monkeypatch):
    alice = register(client, "alice")
    monkeypatch.setattr(auth, "TOKEN_TTL", datetime.timedelta(seconds=-1))
    resp = client.get("/api/auth/me", params={"token": alice["token"]})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Token expired"

    monkeypatch.setattr(auth, "TOKEN_TTL", datetime.timedelta(hours=24))
    assert client.get("/api/auth/me", params={"token": alice["token"]}).status_code == 401


def test_member_list_requires_admin(client):
    leader = register(client, "alice")
    member = register(client, "bob")
    resp = client.get("/api/auth/users", params={"token": member["token"]})
    assert resp.status_code == 403

    resp = client.get("/api/auth/users", params={"token": leader["token"]})
    assert resp.status_code == 200
    assert sorted(u["name"] for u in resp.json()) == ["Alice", "Bob"]
