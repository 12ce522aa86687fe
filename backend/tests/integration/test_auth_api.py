"""Integration tests for the authentication endpoints."""

from __future__ import annotations

import pytest
from flask_jwt_extended import decode_token

from tests.factories.principal import PrincipalFactory
from tests.helpers.assertions import assert_json_keys, assert_problem
from tests.helpers.auth import bearer, expired_token, issue_token

API = "/api/v1/auth"


def _pair(response) -> dict:
    assert response.status_code == 200, response.get_data(as_text=True)
    return response.get_json()["data"]


# --------------------------------- Login ---------------------------------- #
def test_login_returns_token_pair(app, login, user):
    resp = login(device={"device_id": "laptop", "name": "Work laptop"})

    data = _pair(resp)
    assert_json_keys(data, {"access_token", "refresh_token", "expires_in", "session_id"})
    assert data["token_type"] == "Bearer"
    assert resp.headers.get("X-Request-ID")

    claims = decode_token(data["access_token"])
    assert claims["sub"] == f"user:{user.id}"
    assert claims["kind"] == "user"
    assert claims["role"] == "customer"
    assert claims["sid"] == data["session_id"]


def test_login_failures_share_one_message(login, user):
    wrong = assert_problem(login(secret="wrong"), 401, "invalid_credentials")
    unknown = assert_problem(login("ghost@example.com"), 401, "invalid_credentials")
    assert wrong["detail"] == unknown["detail"]


def test_login_validation_error(client):
    resp = client.post(f"{API}/login", json={"kind": "robot", "login": "x"})
    body = assert_problem(resp, 422, "validation_error")
    assert {"kind", "secret"} <= set(body["details"]["errors"])


def test_lockout_returns_423(login, user):
    for _ in range(5):
        assert_problem(login(secret="wrong"), 401, "invalid_credentials")

    assert_problem(login(), 423, "account_locked")


def test_disabled_account_is_forbidden(login, session):
    PrincipalFactory(login="ana@example.com", is_verified=False)
    assert_problem(login(), 403, "account_disabled")


# -------------------------------- Refresh --------------------------------- #
def test_refresh_rotates(client, login, user):
    first = _pair(login())

    second = _pair(client.post(f"{API}/refresh", json={"refresh_token": first["refresh_token"]}))

    assert second["refresh_token"] != first["refresh_token"]
    assert second["session_id"] == first["session_id"]


def test_refresh_accepts_header(client, login, user):
    first = _pair(login())
    resp = client.post(f"{API}/refresh", headers={"X-Refresh-Token": first["refresh_token"]})
    assert resp.status_code == 200


def test_refresh_replay_kills_session(client, login, user):
    first = _pair(login())
    second = _pair(client.post(f"{API}/refresh", json={"refresh_token": first["refresh_token"]}))

    replay = client.post(f"{API}/refresh", json={"refresh_token": first["refresh_token"]})
    assert_problem(replay, 401, "token_replayed")

    after = client.post(f"{API}/refresh", json={"refresh_token": second["refresh_token"]})
    assert_problem(after, 401, "token_replayed")

    sessions = client.get(f"{API}/sessions", headers=bearer(second["access_token"]))
    assert sessions.get_json()["data"] == []


def test_refresh_without_token(client):
    assert_problem(client.post(f"{API}/refresh", json={}), 401, "token_not_found")


def test_refresh_unknown_token(client):
    resp = client.post(f"{API}/refresh", json={"refresh_token": "nope"})
    assert_problem(resp, 401, "token_not_found")


@pytest.fixture()
def limited_client(monkeypatch):
    """Client of a separate app with Flask-Limiter on and a tight refresh budget."""
    from authcore.core.config import TestingConfig
    from authcore.core.extensions import limiter
    from authcore.factory import create_app

    class LimitedConfig(TestingConfig):
        SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
        REDIS_URL = None
        RATELIMIT_ENABLED = True
        RATELIMIT_STORAGE_URI = "memory://"
        AUTH_REFRESH_RATE_LIMIT = "2 per minute"

    # The limiter is shared; the session app must stay unlimited afterwards
    monkeypatch.setattr(limiter, "enabled", limiter.enabled)
    limited = create_app(LimitedConfig)
    limiter.reset()
    yield limited.test_client()
    limiter.reset()


def test_refresh_is_rate_limited(limited_client):
    for _ in range(2):
        resp = limited_client.post(f"{API}/refresh", json={"refresh_token": "guess"})
        assert_problem(resp, 401, "token_not_found")

    resp = limited_client.post(f"{API}/refresh", json={"refresh_token": "guess"})
    assert_problem(resp, 429, "too_many_requests")


# -------------------------------- Logout ---------------------------------- #
def test_logout_is_idempotent(client, login, user):
    pair = _pair(login())

    for _ in range(2):
        resp = client.post(f"{API}/logout", json={"refresh_token": pair["refresh_token"]})
        assert resp.status_code == 204

    refresh = client.post(f"{API}/refresh", json={"refresh_token": pair["refresh_token"]})
    assert_problem(refresh, 401, "token_replayed")


def test_logout_without_token_is_no_op(client):
    assert client.post(f"{API}/logout").status_code == 204


# ------------------------------- Sessions --------------------------------- #
def test_sessions_listing_and_revocation(client, login, user):
    laptop = _pair(login(device={"device_id": "laptop"}))
    phone = _pair(login(headers={"X-Device-Id": "phone", "User-Agent": "PhoneApp/1.0"}))
    auth = bearer(laptop["access_token"])

    listed = client.get(f"{API}/sessions", headers=auth).get_json()["data"]
    assert {s["id"] for s in listed} == {laptop["session_id"], phone["session_id"]}
    current = [s for s in listed if s["current"]]
    assert [s["id"] for s in current] == [laptop["session_id"]]
    by_id = {s["id"]: s for s in listed}
    assert by_id[phone["session_id"]]["device"]["device_id"] == "phone"
    assert by_id[phone["session_id"]]["device"]["user_agent"] == "PhoneApp/1.0"
    assert "refresh_token" not in by_id[phone["session_id"]]

    resp = client.delete(f"{API}/sessions/{phone['session_id']}", headers=auth)
    assert resp.status_code == 204
    again = client.delete(f"{API}/sessions/{phone['session_id']}", headers=auth)
    assert_problem(again, 404, "not_found")

    refresh = client.post(f"{API}/refresh", json={"refresh_token": phone["refresh_token"]})
    assert_problem(refresh, 401, "token_replayed")


def test_revoke_all_keeps_caller_device(client, login, user):
    laptop = _pair(login(device={"device_id": "laptop"}))
    _pair(login(device={"device_id": "phone"}))
    _pair(login(device={"device_id": "tablet"}))

    resp = client.post(
        f"{API}/sessions/revoke-all",
        headers={**bearer(laptop["access_token"]), "X-Device-Id": "laptop"},
    )

    assert resp.get_json()["data"] == {"revoked": 2}
    listed = client.get(f"{API}/sessions", headers=bearer(laptop["access_token"]))
    assert [s["id"] for s in listed.get_json()["data"]] == [laptop["session_id"]]


def test_sessions_require_access_token(client):
    assert_problem(client.get(f"{API}/sessions"), 401, "authorization_required")


def test_expired_access_token(app, client, user):
    token = expired_token(f"user:{user.id}")
    assert_problem(client.get(f"{API}/me", headers=bearer(token)), 401, "token_expired")


def test_garbage_access_token(client):
    resp = client.get(f"{API}/me", headers=bearer("not.a.jwt"))
    assert_problem(resp, 401, "invalid_token")


# --------------------------------- Me ------------------------------------- #
def test_me(client, login, user):
    pair = _pair(login())

    data = client.get(f"{API}/me", headers=bearer(pair["access_token"])).get_json()["data"]

    assert data["id"] == user.id
    assert data["login"] == "ana@example.com"
    assert data["last_login_at"] is not None
    assert "password_hash" not in data


# ---------------------------- Administration ------------------------------ #
def test_admin_revokes_user_sessions(client, login, user, admin):
    _pair(login(device={"device_id": "laptop"}))
    victim = _pair(login(device={"device_id": "phone"}))
    ops = _pair(login("ops", kind="admin"))

    resp = client.post(
        f"{API}/principals/user/{user.id}/revoke-sessions",
        headers=bearer(ops["access_token"]),
    )

    assert resp.get_json()["data"] == {"revoked": 2}
    refresh = client.post(f"{API}/refresh", json={"refresh_token": victim["refresh_token"]})
    assert_problem(refresh, 401, "token_replayed")


def test_customer_cannot_use_admin_endpoint(client, login, user):
    pair = _pair(login())
    resp = client.post(
        f"{API}/principals/user/{user.id}/revoke-sessions",
        headers=bearer(pair["access_token"]),
    )
    assert_problem(resp, 403, "forbidden")


def test_super_admin_bypasses_role_check(app, client, user):
    token = issue_token("admin:999", role="super_admin")
    resp = client.post(f"{API}/principals/user/{user.id}/revoke-sessions", headers=bearer(token))
    assert resp.status_code == 200


def test_admin_endpoint_unknown_principal(app, client):
    token = issue_token("admin:1", role="admin")
    resp = client.post(f"{API}/principals/user/424242/revoke-sessions", headers=bearer(token))
    assert_problem(resp, 404, "not_found")


# --------------------------------- Health --------------------------------- #
def test_health(client):
    resp = client.get("/api/v1/health")

    assert resp.status_code == 200
    payload = resp.get_json()
    assert payload["status"] == "ok"
    assert payload["db"] == "ok"
    assert payload["token_store"] == "memory"


def test_unknown_route_is_problem_json(client):
    assert_problem(client.get("/api/v1/nope"), 404, "not_found")


# ------------------------------ Redis stores ------------------------------ #
@pytest.fixture()
def redis_backed(app, monkeypatch, fake_redis):
    """Route the token stores through a FakeRedis client."""
    from authcore.core import extensions

    monkeypatch.setitem(app.config, "REDIS_URL", "redis://fake:6379/0")
    monkeypatch.setattr(extensions, "redis_client", fake_redis)
    return fake_redis


def test_redis_backed_rotation_and_replay(client, login, user, redis_backed):
    first = _pair(login(device={"device_id": "laptop"}))
    second = _pair(client.post(f"{API}/refresh", json={"refresh_token": first["refresh_token"]}))

    assert redis_backed.exists(f"rt:{second['refresh_token']}")
    listed = client.get(f"{API}/sessions", headers=bearer(second["access_token"]))
    assert [s["id"] for s in listed.get_json()["data"]] == [first["session_id"]]

    replay = client.post(f"{API}/refresh", json={"refresh_token": first["refresh_token"]})
    assert_problem(replay, 401, "token_replayed")

    health = client.get("/api/v1/health").get_json()
    assert health["token_store"] == "ok"


def test_store_outage_is_503_not_401(app, client, login, user, monkeypatch):
    import fakeredis
    from authcore.core import extensions

    server = fakeredis.FakeServer()
    server.connected = False
    monkeypatch.setitem(app.config, "REDIS_URL", "redis://fake:6379/0")
    monkeypatch.setattr(extensions, "redis_client", fakeredis.FakeRedis(server=server))

    assert_problem(login(), 503, "service_unavailable")
    assert client.get("/api/v1/health").get_json()["token_store"] == "fail"


def test_refresh_after_store_outage_reuses_same_token(app, client, login, user, monkeypatch):
    import fakeredis
    from authcore.core import extensions

    server = fakeredis.FakeServer()
    monkeypatch.setitem(app.config, "REDIS_URL", "redis://fake:6379/0")
    monkeypatch.setattr(extensions, "redis_client", fakeredis.FakeRedis(server=server))
    first = _pair(login())

    server.connected = False
    down = client.post(f"{API}/refresh", json={"refresh_token": first["refresh_token"]})
    assert_problem(down, 503, "service_unavailable")

    server.connected = True
    again = _pair(client.post(f"{API}/refresh", json={"refresh_token": first["refresh_token"]}))
    assert again["session_id"] == first["session_id"]
    assert again["refresh_token"] != first["refresh_token"]
