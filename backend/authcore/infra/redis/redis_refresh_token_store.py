# comments in English; reST docstrings
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

import redis  # type: ignore[import-untyped]

from authcore.infra.redis._common import (
    MAX_WATCH_RETRIES,
    b2s,
    from_ts,
    hfield,
    opt,
    to_ts,
    translate_redis_errors,
)
from authcore.services._shared.dto import PrincipalRef
from authcore.services._shared.errors import StoreUnavailable
from authcore.services._shared.ports import (
    ConsumeResult,
    Consumption,
    RefreshTokenRecord,
    RefreshTokenStore,
)


@dataclass(slots=True)
class RedisRefreshTokenStore(RefreshTokenStore):
    """
    Redis-backed refresh-token ledger with atomic consumption.

    Layout
    ------
    - ``rt:{token}``: hash holding one record.
    - ``rt:s:{session_id}``: set of the tokens of one chain.
    - ``rt:p:{kind}:{id}``: set of every token owned by a principal.

    Every key expires at ``expires_at + audit_grace`` so expired records stay
    readable (and keep answering "expired") for a while, then vanish.

    :param r: A Redis client (already connected).
    :param audit_grace: Time records are kept after their expiry.
    """

    r: redis.Redis
    audit_grace: timedelta = timedelta(days=7)

    # -------------------- helpers --------------------

    @staticmethod
    def _k(token: str) -> str:
        return f"rt:{token}"

    @staticmethod
    def _ks(session_id: str) -> str:
        return f"rt:s:{session_id}"

    @staticmethod
    def _kp(principal: PrincipalRef) -> str:
        return f"rt:p:{principal.key}"

    def _expire_at(self, record: RefreshTokenRecord) -> int:
        return int(to_ts(record.expires_at + self.audit_grace)) + 1

    @staticmethod
    def _to_mapping(record: RefreshTokenRecord) -> dict[str, str]:
        return {
            "sid": record.session_id,
            "admin_id": "" if record.admin_id is None else str(record.admin_id),
            "user_id": "" if record.user_id is None else str(record.user_id),
            "issued_at": repr(to_ts(record.issued_at)),
            "expires_at": repr(to_ts(record.expires_at)),
            "revoked": "1" if record.revoked else "0",
            "replaced_by": record.replaced_by or "",
            "device_id": record.device_id or "",
            "last_used_at": "" if record.last_used_at is None else repr(to_ts(record.last_used_at)),
        }

    @staticmethod
    def _from_hash(token: str, h: dict) -> RefreshTokenRecord:
        admin_id = opt(hfield(h, "admin_id"))
        user_id = opt(hfield(h, "user_id"))
        return RefreshTokenRecord(
            token=token,
            session_id=b2s(hfield(h, "sid")),
            issued_at=from_ts(hfield(h, "issued_at")),  # type: ignore[arg-type]
            expires_at=from_ts(hfield(h, "expires_at")),  # type: ignore[arg-type]
            admin_id=int(admin_id) if admin_id else None,
            user_id=int(user_id) if user_id else None,
            revoked=b2s(hfield(h, "revoked"), "0") == "1",
            replaced_by=opt(hfield(h, "replaced_by")),
            device_id=opt(hfield(h, "device_id")),
            last_used_at=from_ts(hfield(h, "last_used_at")),
        )

    def _queue_insert(self, p: redis.client.Pipeline, record: RefreshTokenRecord) -> None:
        key = self._k(record.token)
        expire_at = self._expire_at(record)
        p.hset(key, mapping=self._to_mapping(record))
        p.expireat(key, expire_at)
        for index in (self._ks(record.session_id), self._kp(record.principal)):
            p.sadd(index, record.token)
            p.expireat(index, expire_at)

    def _members(self, index_key: str) -> list[str]:
        return sorted(b2s(m) for m in self.r.smembers(index_key))

    def _mark_revoked(self, tokens: Iterable[str]) -> int:
        """Set ``revoked=1`` on every existing record; never resurrect expired keys."""
        keys = [self._k(t) for t in tokens]
        if not keys:
            return 0
        for _ in range(MAX_WATCH_RETRIES):
            try:
                with self.r.pipeline() as p:
                    p.watch(*keys)
                    alive = [k for k in keys if p.exists(k)]
                    p.multi()
                    for k in alive:
                        p.hset(k, "revoked", "1")
                    p.execute()
                    return len(alive)
            except redis.WatchError:
                continue
        raise StoreUnavailable("Too much contention while revoking refresh tokens")

    # -------------------- API ------------------------

    @translate_redis_errors
    def insert(self, record: RefreshTokenRecord) -> None:
        """
        Persist a root record *before* its token is handed to the client.

        :raises ValueError: If the token value already exists.
        """
        key = self._k(record.token)
        if self.r.exists(key):
            raise ValueError("Refresh token already exists.")
        with self.r.pipeline(transaction=True) as p:
            self._queue_insert(p, record)
            p.execute()

    @translate_redis_errors
    def get(self, token: str) -> RefreshTokenRecord | None:
        h = self.r.hgetall(self._k(token))
        if not h:
            return None
        return self._from_hash(token, h)

    @translate_redis_errors
    def consume(
        self, token: str, *, new_token: str, now: datetime, ttl: timedelta
    ) -> Consumption:
        """
        Atomically consume ``token`` and create ``new_token``.

        Uses WATCH/MULTI/EXEC (optimistic locking): the presented record is
        watched while its state is checked; a concurrent writer aborts the
        transaction and the loop re-reads. Of two racing callers only one can
        commit, the other then observes ``revoked=1`` and gets ``REPLAYED``.
        """
        k_old = self._k(token)
        k_new = self._k(new_token)

        for _ in range(MAX_WATCH_RETRIES):
            try:
                with self.r.pipeline() as p:
                    p.watch(k_old, k_new)

                    h = p.hgetall(k_old)
                    if not h:
                        p.unwatch()
                        return Consumption(ConsumeResult.NOT_FOUND)

                    rec = self._from_hash(token, h)
                    if rec.revoked:
                        p.unwatch()
                        return Consumption(ConsumeResult.REPLAYED, rec)
                    if rec.is_expired(now):
                        p.unwatch()
                        return Consumption(ConsumeResult.EXPIRED, rec)
                    if p.exists(k_new):
                        p.unwatch()
                        raise ValueError("Successor token already exists.")

                    successor = rec.successor(token=new_token, now=now, ttl=ttl)

                    p.multi()
                    p.hset(
                        k_old,
                        mapping={
                            "revoked": "1",
                            "replaced_by": new_token,
                            "last_used_at": repr(to_ts(now)),
                        },
                    )
                    self._queue_insert(p, successor)
                    p.execute()

                consumed = replace(rec, revoked=True, replaced_by=new_token, last_used_at=now)
                return Consumption(ConsumeResult.OK, consumed, successor)

            except redis.WatchError:
                # Concurrent modification detected; re-read and decide again
                continue

        raise StoreUnavailable("Too much contention while rotating a refresh token")

    @translate_redis_errors
    def revoke(self, token: str) -> bool:
        return self._mark_revoked([token]) == 1

    @translate_redis_errors
    def revoke_session(self, session_id: str) -> int:
        return self._mark_revoked(self._members(self._ks(session_id)))

    @translate_redis_errors
    def revoke_all_for_principal(self, principal: PrincipalRef) -> int:
        return self._mark_revoked(self._members(self._kp(principal)))

    @translate_redis_errors
    def list_session(self, session_id: str) -> list[RefreshTokenRecord]:
        index = self._ks(session_id)
        records: list[RefreshTokenRecord] = []
        stale: list[str] = []
        for token in self._members(index):
            rec = self.get(token)
            if rec is None:
                # Underlying hash expired -> clean the index lazily
                stale.append(token)
            else:
                records.append(rec)
        if stale:
            self.r.srem(index, *stale)
        return sorted(records, key=lambda rec: rec.issued_at)
