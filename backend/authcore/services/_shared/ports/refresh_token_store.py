from __future__ import annotations

import secrets
import threading
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum, auto
from typing import Protocol

from authcore.services._shared.dto import PrincipalRef


class ConsumeResult(Enum):
    """Outcome of an atomic consume-and-replace attempt."""

    OK = auto()
    NOT_FOUND = auto()
    REPLAYED = auto()
    EXPIRED = auto()


@dataclass(frozen=True)
class RefreshTokenRecord:
    """
    One link of a refresh-token chain.

    :ivar token: Opaque token value handed to the client (unique).
    :ivar session_id: Session the chain belongs to.
    :ivar admin_id: Owner when the principal is an administrator.
    :ivar user_id: Owner when the principal is an end user.
    :ivar issued_at: Creation instant (UTC).
    :ivar expires_at: Absolute expiry (UTC).
    :ivar revoked: ``True`` once consumed or explicitly revoked.
    :ivar replaced_by: Successor token, set only when consumed by rotation.
    :ivar device_id: Client device identifier, when known.
    :ivar last_used_at: Instant the record was consumed.
    """

    token: str
    session_id: str
    issued_at: datetime
    expires_at: datetime
    admin_id: int | None = None
    user_id: int | None = None
    revoked: bool = False
    replaced_by: str | None = None
    device_id: str | None = None
    last_used_at: datetime | None = None

    def __post_init__(self) -> None:
        if (self.admin_id is None) == (self.user_id is None):
            raise ValueError("Exactly one of admin_id or user_id must be set.")

    @property
    def principal(self) -> PrincipalRef:
        if self.admin_id is not None:
            return PrincipalRef(kind="admin", id=self.admin_id)
        return PrincipalRef(kind="user", id=int(self.user_id))  # type: ignore[arg-type]

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    @classmethod
    def issue(
        cls,
        *,
        principal: PrincipalRef,
        session_id: str,
        now: datetime,
        ttl: timedelta,
        device_id: str | None = None,
        token: str | None = None,
    ) -> RefreshTokenRecord:
        """
        Build a fresh, unconsumed record owned by ``principal``.

        :param principal: Owner of the chain.
        :param session_id: Session the record belongs to.
        :param now: Issue instant.
        :param ttl: Lifetime added to ``now``.
        :param device_id: Optional device binding kept for auditing.
        :param token: Explicit token value; generated when omitted.
        """
        return cls(
            token=token or new_token(),
            session_id=session_id,
            issued_at=now,
            expires_at=now + ttl,
            admin_id=principal.id if principal.kind == "admin" else None,
            user_id=principal.id if principal.kind == "user" else None,
            device_id=device_id,
        )

    def successor(self, *, token: str, now: datetime, ttl: timedelta) -> RefreshTokenRecord:
        """Return the next link of the chain, same owner, session and device."""
        return RefreshTokenRecord.issue(
            principal=self.principal,
            session_id=self.session_id,
            now=now,
            ttl=ttl,
            device_id=self.device_id,
            token=token,
        )


@dataclass(frozen=True)
class Consumption:
    """
    Result of :meth:`RefreshTokenStore.consume`.

    :ivar result: Outcome classification.
    :ivar record: Snapshot of the presented record (``None`` when not found).
    :ivar successor: The newly inserted record (only on ``OK``).
    """

    result: ConsumeResult
    record: RefreshTokenRecord | None = None
    successor: RefreshTokenRecord | None = None


def new_token() -> str:
    """Generate a high-entropy opaque refresh token value."""
    return secrets.token_urlsafe(48)


class RefreshTokenStore(Protocol):
    """
    Stateful store for refresh-token records.

    ``consume`` MUST be atomic: the validity check, the consumption of the
    presented record and the insertion of its successor happen as one step so
    that two concurrent callers can never both succeed.
    """

    def insert(self, record: RefreshTokenRecord) -> None:
        """Persist a brand-new record (root of a chain)."""

    def get(self, token: str) -> RefreshTokenRecord | None:
        """Fetch a snapshot of a record, including revoked or expired ones."""

    def consume(
        self, token: str, *, new_token: str, now: datetime, ttl: timedelta
    ) -> Consumption:
        """
        Atomically consume ``token`` and insert its successor ``new_token``.

        Checks run in this order: unknown, revoked (replay), expired.
        """

    def revoke(self, token: str) -> bool:
        """Mark one record revoked. :returns: ``True`` if the record exists."""

    def revoke_session(self, session_id: str) -> int:
        """Revoke every record of a session chain. :returns: records affected."""

    def revoke_all_for_principal(self, principal: PrincipalRef) -> int:
        """Revoke every record owned by ``principal``. :returns: records affected."""

    def list_session(self, session_id: str) -> Iterable[RefreshTokenRecord]:
        """List the records of a session chain, oldest first."""


class InMemoryRefreshTokenStore(RefreshTokenStore):
    """
    Process-local record store.

    Records live in a dict keyed by token value with secondary indexes per
    session and per principal. A single lock makes ``consume`` atomic.
    """

    def __init__(self, *, audit_grace: timedelta = timedelta(days=7)) -> None:
        self.audit_grace = audit_grace
        self._by_token: dict[str, RefreshTokenRecord] = {}
        self._by_session: dict[str, list[str]] = {}
        self._by_principal: dict[str, set[str]] = {}
        self._lock = threading.Lock()

    # ------------------------- helpers -------------------------

    def _index(self, record: RefreshTokenRecord) -> None:
        self._by_token[record.token] = record
        self._by_session.setdefault(record.session_id, []).append(record.token)
        self._by_principal.setdefault(record.principal.key, set()).add(record.token)

    def _revoke_tokens(self, tokens: Iterable[str]) -> int:
        count = 0
        for token in tokens:
            rec = self._by_token.get(token)
            if rec is None:
                continue
            if not rec.revoked:
                self._by_token[token] = replace(rec, revoked=True)
            count += 1
        return count

    # -------------------------- API ----------------------------

    def insert(self, record: RefreshTokenRecord) -> None:
        with self._lock:
            if record.token in self._by_token:
                raise ValueError("Refresh token already exists.")
            # New chains sweep dead ones, standing in for the Redis key TTL
            self._purge(record.issued_at)
            self._index(record)

    def get(self, token: str) -> RefreshTokenRecord | None:
        with self._lock:
            return self._by_token.get(token)

    def consume(
        self, token: str, *, new_token: str, now: datetime, ttl: timedelta
    ) -> Consumption:
        with self._lock:
            rec = self._by_token.get(token)
            if rec is None:
                return Consumption(ConsumeResult.NOT_FOUND)
            if rec.revoked:
                return Consumption(ConsumeResult.REPLAYED, rec)
            if rec.is_expired(now):
                return Consumption(ConsumeResult.EXPIRED, rec)

            consumed = replace(rec, revoked=True, replaced_by=new_token, last_used_at=now)
            successor = rec.successor(token=new_token, now=now, ttl=ttl)
            self._by_token[token] = consumed
            self._index(successor)
            return Consumption(ConsumeResult.OK, consumed, successor)

    def revoke(self, token: str) -> bool:
        with self._lock:
            return self._revoke_tokens([token]) == 1

    def revoke_session(self, session_id: str) -> int:
        with self._lock:
            return self._revoke_tokens(list(self._by_session.get(session_id, [])))

    def revoke_all_for_principal(self, principal: PrincipalRef) -> int:
        with self._lock:
            return self._revoke_tokens(list(self._by_principal.get(principal.key, set())))

    def list_session(self, session_id: str) -> list[RefreshTokenRecord]:
        with self._lock:
            tokens = self._by_session.get(session_id, [])
            return [self._by_token[t] for t in tokens if t in self._by_token]

    def purge_expired(self, now: datetime) -> int:
        """
        Drop records whose audit window (expiry + grace) has elapsed.

        :returns: Number of records removed.
        """
        with self._lock:
            return self._purge(now)

    def _purge(self, now: datetime) -> int:
        dead = [t for t, rec in self._by_token.items() if rec.expires_at + self.audit_grace <= now]
        for token in dead:
            rec = self._by_token.pop(token)
            chain = self._by_session.get(rec.session_id)
            if chain is not None:
                chain.remove(token)
                if not chain:
                    del self._by_session[rec.session_id]
            owned = self._by_principal.get(rec.principal.key)
            if owned is not None:
                owned.discard(token)
                if not owned:
                    del self._by_principal[rec.principal.key]
        return len(dead)
