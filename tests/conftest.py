import datetime
import importlib

import fakeredis
import pytest
from fastapi.testclient import TestClient

import billiards.storage as storage


@pytest.fixture(autouse=True)
def use_sqlite(tmp_path, monkeypatch):
    monkeypatch.setattr(storage, "DATABASE_URL", "")
    monkeypatch.setattr(storage, "IS_PG", False)
    monkeypatch.setattr(storage, "DB_FILE", tmp_path / "billiards.db")
    monkeypatch.setattr(storage, "_redis", fakeredis.FakeRedis())
    storage.invalidate_cache()
    yield
    storage.invalidate_cache()


@pytest.fixture
def client():
    api = importlib.reload(importlib.import_module("billiards.api"))
    return TestClient(api.app)


def tomorrow_at(hour, minute=0):
    """Naive UTC datetime on the next day, safely in the future."""
    day = storage.utcnow() + datetime.timedelta(days=1)
    return day.replace(hour=hour, minute=minute, second=0, microsecond=0)


def register(client, name):
    resp = client.post(
        "/api/auth/register",
        json={
            "name": name.title(),
            "email": f"{name}@club.test",
            "password": "pw",
            "student_id": f"S-{name}",
        },
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def fetch(conn, query, *args):
    """Return the first row for ``query`` using the given SQLite connection."""
    cur = conn.cursor()
    row = cur.execute(query, args).fetchone()
    return row


@pytest.fixture(autouse=True)
def inject_auth_header(monkeypatch):
    orig_request = TestClient.request

    def wrapped(self, method, url, *args, **kwargs):
        headers = dict(kwargs.get("headers") or {})
        kwargs["headers"] = headers

        if "json" in kwargs and isinstance(kwargs["json"], dict):
            token = kwargs["json"].pop("token", None)
            if token:
                headers["Authorization"] = f"Bearer {token}"

        if "params" in kwargs and isinstance(kwargs["params"], dict):
            token = kwargs["params"].pop("token", None)
            if token:
                headers["Authorization"] = f"Bearer {token}"

        return orig_request(self, method, url, *args, **kwargs)

    monkeypatch.setattr(TestClient, "request", wrapped)
    yield
    monkeypatch.setattr(TestClient, "request", orig_request)
