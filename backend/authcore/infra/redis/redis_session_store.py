# comments in English; reST docstrings
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timedelta

import redis  # type: ignore[import-untyped]

from authcore.infra.redis._common import (
    MAX_WATCH_RETRIES,
    b2s,
    from_ts,
    hfield,
    to_ts,
    translate_redis_errors,
)
from authcore.services._shared.dto import DeviceInfo, PrincipalRef
from authcore.services._shared.errors import StoreUnavailable
from authcore.services._shared.ports import DeviceSession, SessionStore


@dataclass(slots=True)
class RedisSessionStore(SessionStore):
    """
    Redis-backed session registry storage.

    Layout
    ------
    - ``sess:{id}``: hash with the session fields.
    - ``sess:p:{kind}:{id}``: sorted set of session ids scored by ``last_seen_at``.

    :param r: A Redis client (already connected).
    :param ttl: Idle lifetime of a session entry, renewed on every rotation.
        Matches the refresh lifetime so the entry dies with its leaf.
    """

    r: redis.Redis
    ttl: timedelta = timedelta(days=30)

    @staticmethod
    def _k(session_id: str) -> str:
        return f"sess:{session_id}"

    @staticmethod
    def _kp(principal: PrincipalRef) -> str:
        return f"sess:p:{principal.key}"

    @staticmethod
    def _from_hash(session_id: str, h: dict) -> DeviceSession:
        raw_device = b2s(hfield(h, "device"), "{}")
        return DeviceSession(
            id=session_id,
            principal=PrincipalRef.parse(b2s(hfield(h, "principal"))),
            leaf_token=b2s(hfield(h, "leaf")),
            device=DeviceInfo.from_mapping(json.loads(raw_device)),
            created_at=from_ts(hfield(h, "created_at")),  # type: ignore[arg-type]
            last_seen_at=from_ts(hfield(h, "last_seen_at")),  # type: ignore[arg-type]
        )

    @translate_redis_errors
    def add(self, session: DeviceSession) -> None:
        key = self._k(session.id)
        seconds = int(self.ttl.total_seconds())
        with self.r.pipeline(transaction=True) as p:
            p.hset(
                key,
                mapping={
                    "principal": session.principal.key,
                    "leaf": session.leaf_token,
                    "device": json.dumps(session.device.to_dict()),
                    "created_at": repr(to_ts(session.created_at)),
                    "last_seen_at": repr(to_ts(session.last_seen_at)),
                },
            )
            p.expire(key, seconds)
            p.zadd(self._kp(session.principal), {session.id: to_ts(session.last_seen_at)})
            p.expire(self._kp(session.principal), seconds)
            p.execute()

    @translate_redis_errors
    def get(self, session_id: str) -> DeviceSession | None:
        h = self.r.hgetall(self._k(session_id))
        if not h:
            return None
        return self._from_hash(session_id, h)

    @translate_redis_errors
    def compare_and_set_leaf(
        self, session_id: str, *, expected: str, new_leaf: str, seen_at: datetime
    ) -> bool:
        key = self._k(session_id)
        seconds = int(self.ttl.total_seconds())
        for _ in range(MAX_WATCH_RETRIES):
            try:
                with self.r.pipeline() as p:
                    p.watch(key)
                    h = p.hgetall(key)
                    if not h or b2s(hfield(h, "leaf")) != expected:
                        p.unwatch()
                        return False
                    principal_key = f"sess:p:{b2s(hfield(h, 'principal'))}"
                    p.multi()
                    p.hset(key, mapping={"leaf": new_leaf, "last_seen_at": repr(to_ts(seen_at))})
                    p.expire(key, seconds)
                    p.zadd(principal_key, {session_id: to_ts(seen_at)})
                    p.expire(principal_key, seconds)
                    p.execute()
                    return True
            except redis.WatchError:
                continue
        raise StoreUnavailable("Too much contention while updating a session")

    @translate_redis_errors
    def remove(self, session_id: str) -> bool:
        key = self._k(session_id)
        principal_raw = self.r.hget(key, "principal")
        with self.r.pipeline(transaction=True) as p:
            p.delete(key)
            if principal_raw:
                p.zrem(f"sess:p:{b2s(principal_raw)}", session_id)
            out = p.execute()
        return bool(out[0])

    @translate_redis_errors
    def list_for_principal(self, principal: PrincipalRef) -> list[DeviceSession]:
        index = self._kp(principal)
        sessions: list[DeviceSession] = []
        stale: list[str] = []
        for raw_id in self.r.zrevrange(index, 0, -1):
            session_id = b2s(raw_id)
            session = self.get(session_id)
            if session is None:
                stale.append(session_id)
            else:
                sessions.append(session)
        if stale:
            self.r.zrem(index, *stale)
        return sessions
