"""Integration tests for the ``flask principals`` command group."""

from __future__ import annotations

import pytest
from authcore.services import PrincipalService
from authcore.services._shared.dto import PrincipalRef

from tests.factories.principal import PrincipalFactory


@pytest.fixture()
def runner(app, session):
    return app.test_cli_runner()


def test_create_admin(runner):
    result = runner.invoke(
        args=[
            "principals", "create",
            "--kind", "admin",
            "--login", "Root",
            "--role", "super_admin",
            "--permission", "sessions.revoke",
            "--password", "S3cret!!",
        ]
    )

    assert result.exit_code == 0, result.output
    out = PrincipalService().find("admin", "root")
    assert out.role == "super_admin"
    assert out.permissions == ("sessions.revoke",)


def test_create_duplicate_fails(runner):
    PrincipalFactory(login="ana@example.com")
    result = runner.invoke(
        args=["principals", "create", "--login", "ana@example.com", "--password", "x"]
    )
    assert result.exit_code != 0
    assert "already in use" in result.output


def test_create_rejects_admin_role_for_user(runner):
    result = runner.invoke(
        args=[
            "principals", "create",
            "--login", "a@example.com",
            "--role", "admin",
            "--password", "x",
        ]
    )
    assert result.exit_code != 0


def test_deactivate_closes_sessions(runner, client):
    user = PrincipalFactory(login="ana@example.com")
    body = {"kind": "user", "login": "ana@example.com", "secret": "Passw0rd!"}
    pair = client.post("/api/v1/auth/login", json=body).get_json()["data"]

    result = runner.invoke(args=["principals", "deactivate", "ana@example.com"])

    assert result.exit_code == 0, result.output
    assert "closed 1 session(s)" in result.output
    ref = PrincipalRef(kind="user", id=user.id)
    assert PrincipalService().get(ref).is_active is False
    refresh = client.post("/api/v1/auth/refresh", json={"refresh_token": pair["refresh_token"]})
    assert refresh.status_code == 401

    result = runner.invoke(args=["principals", "activate", "ana@example.com"])
    assert result.exit_code == 0
    assert PrincipalService().get(ref).is_active is True


def test_unlock(runner, client):
    PrincipalFactory(login="ana@example.com")
    for _ in range(5):
        client.post(
            "/api/v1/auth/login",
            json={"kind": "user", "login": "ana@example.com", "secret": "wrong"},
        )
    body = {"kind": "user", "login": "ana@example.com", "secret": "Passw0rd!"}
    assert client.post("/api/v1/auth/login", json=body).status_code == 423

    result = runner.invoke(args=["principals", "unlock", "ana@example.com"])

    assert result.exit_code == 0, result.output
    assert client.post("/api/v1/auth/login", json=body).status_code == 200


def test_revoke_sessions(runner, client):
    PrincipalFactory(login="ana@example.com")
    body = {"kind": "user", "login": "ana@example.com", "secret": "Passw0rd!"}
    client.post("/api/v1/auth/login", json=body)
    client.post("/api/v1/auth/login", json=body)

    result = runner.invoke(args=["principals", "revoke-sessions", "ana@example.com"])

    assert result.exit_code == 0, result.output
    assert "Closed 2 session(s)" in result.output


def test_unknown_login(runner):
    result = runner.invoke(args=["principals", "unlock", "--kind", "admin", "nobody"])
    assert result.exit_code != 0
    assert "not found" in result.output


def test_list(runner):
    PrincipalFactory(login="ana@example.com")
    PrincipalFactory(login="old@example.com", is_active=False)

    result = runner.invoke(args=["principals", "list", "--kind", "user", "--active"])

    assert result.exit_code == 0, result.output
    assert "ana@example.com" in result.output
    assert "old@example.com" not in result.output
