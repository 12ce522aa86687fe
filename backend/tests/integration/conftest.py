"""Fixtures for HTTP-level tests against the Flask test client."""

from __future__ import annotations

import pytest

from tests.factories.principal import DEFAULT_SECRET, AdminFactory, PrincipalFactory


@pytest.fixture(autouse=True)
def _fresh_stores(app):
    """Drop the process-local token stores so sessions never leak between tests."""
    app.extensions.pop("authcore_stores", None)
    yield
    app.extensions.pop("authcore_stores", None)


@pytest.fixture()
def user(session):
    return PrincipalFactory(login="ana@example.com")


@pytest.fixture()
def admin(session):
    return AdminFactory(login="ops")


@pytest.fixture()
def login(client):
    """POST /auth/login and return the response."""

    def _login(login="ana@example.com", *, kind="user", secret=DEFAULT_SECRET, device=None, **kw):
        body = {"kind": kind, "login": login, "secret": secret}
        if device is not None:
            body["device"] = device
        return client.post("/api/v1/auth/login", json=body, **kw)

    return _login
