# tests/unit/services/test_refresh_token_ledger.py
from __future__ import annotations

import threading
from datetime import timedelta

import pytest
from authcore.services._shared.errors import (
    AccountDisabled,
    TokenExpired,
    TokenNotFound,
    TokenReplayed,
)
from authcore.services._shared.policies.auth import AuthPolicy
from authcore.services._shared.ports import InMemoryRefreshTokenStore, StubTokenProvider
from authcore.services.ledger import RefreshTokenLedger
from authcore.services.principals.dto import PrincipalOut
from freezegun import freeze_time
from sqlalchemy.exc import OperationalError

from tests.factories.principal import AdminFactory, PrincipalFactory


# ------------------------------ Fixtures ---------------------------------- #
@pytest.fixture()
def store() -> InMemoryRefreshTokenStore:
    return InMemoryRefreshTokenStore()


@pytest.fixture()
def ledger(store) -> RefreshTokenLedger:
    """Ledger wired to in-memory doubles with a 30-day refresh lifetime."""
    return RefreshTokenLedger(
        store=store,
        token_provider=StubTokenProvider(),
        policy=AuthPolicy(refresh_ttl=timedelta(days=30)),
    )


@pytest.fixture()
def principal(session):
    return PrincipalFactory()


# -------------------------------- Tests ----------------------------------- #
def test_issue_creates_unconsumed_root(ledger, principal):
    ref = PrincipalOut.from_model(principal).ref

    record = ledger.issue(ref, session_id="s1", device_id="laptop")

    stored = ledger.get(record.token)
    assert stored == record
    assert stored.user_id == principal.id and stored.admin_id is None
    assert stored.revoked is False and stored.replaced_by is None
    assert stored.expires_at - stored.issued_at == timedelta(days=30)


def test_rotate_returns_new_leaf_and_access_token(ledger, principal):
    ref = PrincipalOut.from_model(principal).ref
    root = ledger.issue(ref, session_id="s1")

    out = ledger.rotate(root.token)

    assert out.record.token != root.token
    assert out.record.session_id == "s1"
    assert out.previous.token == root.token
    assert out.previous.replaced_by == out.record.token
    assert ledger.get(root.token).revoked is True
    assert ledger.get(out.record.token).revoked is False

    claims = ledger.tokens.decode(out.access_token)
    assert claims["sub"] == ref.key
    assert claims["sid"] == "s1"
    assert claims["kind"] == "user"
    assert claims["role"] == "customer"


def test_access_token_carries_admin_permissions(ledger, session):
    admin = AdminFactory(permissions=["sessions.revoke", "reports.read"])
    out = PrincipalOut.from_model(admin)

    token = ledger.mint_access_token(out, session_id="s9")

    claims = ledger.tokens.decode(token)
    assert claims["perms"] == ["reports.read", "sessions.revoke"]
    assert claims["role"] == "admin"


def test_unknown_token(ledger):
    with pytest.raises(TokenNotFound):
        ledger.rotate("does-not-exist")


def test_expired_token(ledger, principal):
    ref = PrincipalOut.from_model(principal).ref
    with freeze_time("2026-01-01"):
        root = ledger.issue(ref, session_id="s1")

    with freeze_time("2026-02-01"), pytest.raises(TokenExpired):
        ledger.rotate(root.token)
    # Expiry alone does not revoke anything
    assert ledger.get(root.token).revoked is False


def test_replay_revokes_whole_chain(ledger, principal):
    """Scenario: T0 -> T1; T0 again is a replay; T1 is then dead too."""
    ref = PrincipalOut.from_model(principal).ref
    t0 = ledger.issue(ref, session_id="s1")
    t1 = ledger.rotate(t0.token).record

    with pytest.raises(TokenReplayed):
        ledger.rotate(t0.token)

    assert all(rec.revoked for rec in ledger.chain("s1"))
    with pytest.raises(TokenReplayed):
        ledger.rotate(t1.token)


def test_replay_leaves_other_sessions_alone(ledger, principal):
    ref = PrincipalOut.from_model(principal).ref
    stolen = ledger.issue(ref, session_id="s1")
    other = ledger.issue(ref, session_id="s2")
    ledger.rotate(stolen.token)

    with pytest.raises(TokenReplayed):
        ledger.rotate(stolen.token)

    assert ledger.rotate(other.token).record.session_id == "s2"


def test_revoked_session_cannot_rotate(ledger, principal):
    ref = PrincipalOut.from_model(principal).ref
    root = ledger.issue(ref, session_id="s1")

    assert ledger.revoke_session("s1") == 1
    with pytest.raises(TokenReplayed):
        ledger.rotate(root.token)


def test_revoke_is_idempotent(ledger, principal):
    ref = PrincipalOut.from_model(principal).ref
    root = ledger.issue(ref, session_id="s1")

    assert ledger.revoke(root.token) is True
    assert ledger.revoke(root.token) is True
    assert ledger.revoke("unknown") is False


def test_revoke_all_for_principal(ledger, principal):
    ref = PrincipalOut.from_model(principal).ref
    a = ledger.issue(ref, session_id="s1")
    b = ledger.issue(ref, session_id="s2")

    assert ledger.revoke_all_for_principal(ref) == 2
    assert ledger.get(a.token).revoked and ledger.get(b.token).revoked


def test_inactive_principal_cannot_rotate(ledger, session):
    principal = PrincipalFactory(is_active=False)
    ref = PrincipalOut.from_model(principal).ref
    root = ledger.issue(ref, session_id="s1")

    with pytest.raises(AccountDisabled):
        ledger.rotate(root.token)
    assert all(rec.revoked for rec in ledger.chain("s1"))


def test_concurrent_rotations_have_single_winner(ledger, principal, monkeypatch):
    """Racing rotations of one token: exactly one succeeds, the rest are replays."""
    snapshot = PrincipalOut.from_model(principal)
    root = ledger.issue(snapshot.ref, session_id="s1")
    # Threads run outside the Flask app context, so skip the database read
    monkeypatch.setattr(ledger, "_load_active_principal", lambda ref: snapshot)

    results: list[str] = []
    barrier = threading.Barrier(8)
    lock = threading.Lock()

    def worker():
        barrier.wait()
        try:
            ledger.rotate(root.token)
            outcome = "ok"
        except TokenReplayed:
            outcome = "replayed"
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count("ok") == 1
    assert results.count("replayed") == 7


def test_database_outage_before_consume_keeps_token_usable(ledger, principal, monkeypatch):
    """A failed owner lookup leaves the presented token rotatable on retry."""
    ref = PrincipalOut.from_model(principal).ref
    root = ledger.issue(ref, session_id="s1")
    real_load = ledger._load_active_principal
    calls = {"n": 0}

    def flaky_load(ref):
        calls["n"] += 1
        if calls["n"] == 1:
            raise OperationalError("SELECT principals", {}, Exception("connection refused"))
        return real_load(ref)

    monkeypatch.setattr(ledger, "_load_active_principal", flaky_load)

    with pytest.raises(OperationalError):
        ledger.rotate(root.token)
    assert ledger.get(root.token).revoked is False

    out = ledger.rotate(root.token)
    assert out.previous.token == root.token
    assert ledger.get(out.record.token).revoked is False
