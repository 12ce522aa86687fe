# tests/unit/infra/test_redis_session_store.py
"""Unit tests for RedisSessionStore using fakeredis."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from authcore.infra.redis.redis_session_store import RedisSessionStore
from authcore.services._shared.dto import DeviceInfo, PrincipalRef
from authcore.services._shared.ports import DeviceSession

ANA = PrincipalRef(kind="user", id=1)
OPS = PrincipalRef(kind="admin", id=1)
T0 = datetime(2026, 5, 1, 9, 0, tzinfo=UTC)


def _session(sid: str, *, principal=ANA, seen=T0, device_id="laptop") -> DeviceSession:
    return DeviceSession(
        id=sid,
        principal=principal,
        leaf_token=f"leaf-{sid}",
        device=DeviceInfo(device_id=device_id, name="Laptop", ip="10.0.0.1"),
        created_at=T0,
        last_seen_at=seen,
    )


@pytest.fixture
def store(fake_redis):
    return RedisSessionStore(r=fake_redis, ttl=timedelta(days=30))


def test_add_and_get(store):
    store.add(_session("s1"))

    got = store.get("s1")
    assert got == _session("s1")
    assert store.r.ttl(store._k("s1")) > 0


def test_get_missing(store):
    assert store.get("nope") is None


def test_compare_and_set_leaf(store):
    store.add(_session("s1"))
    later = T0 + timedelta(hours=1)

    assert store.compare_and_set_leaf("s1", expected="stale", new_leaf="x", seen_at=later) is False
    assert store.compare_and_set_leaf("s1", expected="leaf-s1", new_leaf="x", seen_at=later)

    got = store.get("s1")
    assert got.leaf_token == "x"
    assert got.last_seen_at == later


def test_compare_and_set_on_missing_session(store):
    assert store.compare_and_set_leaf("nope", expected="a", new_leaf="b", seen_at=T0) is False


def test_list_is_scoped_and_most_recent_first(store):
    store.add(_session("old", seen=T0))
    store.add(_session("new", seen=T0 + timedelta(minutes=5), device_id="phone"))
    store.add(_session("adm", principal=OPS))

    assert [s.id for s in store.list_for_principal(ANA)] == ["new", "old"]
    assert [s.id for s in store.list_for_principal(OPS)] == ["adm"]

    store.compare_and_set_leaf(
        "old", expected="leaf-old", new_leaf="n", seen_at=T0 + timedelta(hours=1)
    )
    assert [s.id for s in store.list_for_principal(ANA)] == ["old", "new"]


def test_remove_and_stale_index_cleanup(store):
    store.add(_session("s1"))
    store.add(_session("s2"))

    assert store.remove("s1") is True
    assert store.remove("s1") is False

    # Hash expired behind the index's back
    store.r.delete(store._k("s2"))
    assert store.list_for_principal(ANA) == []
    assert store.r.zcard(store._kp(ANA)) == 0


def test_entry_lives_one_refresh_lifetime_and_rotation_renews_it(store):
    lifetime = int(timedelta(days=30).total_seconds())
    store.add(_session("s1"))
    store.r.expire(store._k("s1"), 60)

    store.compare_and_set_leaf(
        "s1", expected="leaf-s1", new_leaf="next", seen_at=T0 + timedelta(days=1)
    )

    assert lifetime - 5 <= store.r.ttl(store._k("s1")) <= lifetime
