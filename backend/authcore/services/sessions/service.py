# authcore/services/sessions/service.py
"""
Session registry.

Keeps one :class:`DeviceSession` per signed-in device and mirrors the leaf of
its refresh-token chain. The registry and the ledger must always agree on the
leaf; a disagreement force-closes the session.
"""

from __future__ import annotations

import logging
from datetime import datetime

from authcore.services._shared.base import BaseService, ServiceContext
from authcore.services._shared.dto import DeviceInfo, PrincipalRef
from authcore.services._shared.errors import ConsistencyFault, NotFoundError
from authcore.services._shared.ports import (
    DeviceSession,
    RefreshTokenRecord,
    SessionStore,
    new_session_id,
)
from authcore.services.ledger.service import RefreshTokenLedger

log = logging.getLogger(__name__)


class SessionRegistry(BaseService):
    """Open, advance, list and close device sessions."""

    #: Longest run of lost leaf updates ``touch`` will repair.
    MAX_CATCH_UP = 8

    def __init__(
        self,
        *,
        store: SessionStore,
        ledger: RefreshTokenLedger,
        ctx: ServiceContext | None = None,
    ) -> None:
        super().__init__(ctx=ctx)
        self.store = store
        self.ledger = ledger

    def open(
        self, principal: PrincipalRef, device: DeviceInfo
    ) -> tuple[DeviceSession, RefreshTokenRecord]:
        """
        Start a session and the root of its refresh-token chain.

        :param principal: Authenticated owner.
        :param device: Device metadata captured at sign-in.
        :returns: The new session and its root record.
        """
        session_id = new_session_id()
        record = self.ledger.issue(principal, session_id=session_id, device_id=device.device_id)
        session = DeviceSession(
            id=session_id,
            principal=principal,
            leaf_token=record.token,
            device=device,
            created_at=record.issued_at,
            last_seen_at=record.issued_at,
        )
        try:
            self.store.add(session)
        except Exception:
            self.ledger.revoke_session(session_id)
            raise
        log.info(
            "Session opened",
            extra={
                "event": "session.opened",
                "principal": principal.key,
                "session_id": session_id,
                "device_id": device.device_id,
            },
        )
        return session, record

    def touch(
        self,
        session_id: str,
        new_leaf: str,
        timestamp: datetime,
        *,
        expected_leaf: str,
    ) -> None:
        """
        Advance the session's leaf pointer after a rotation.

        The update applies when the stored leaf still equals ``expected_leaf``.
        A stored leaf that is an older link of the same chain means an earlier
        update was lost to a store outage; the pointer catches up instead.
        Any other disagreement force-closes the session, revokes its chain
        and raises :class:`ConsistencyFault`.
        """
        if self.store.compare_and_set_leaf(
            session_id, expected=expected_leaf, new_leaf=new_leaf, seen_at=timestamp
        ):
            return

        current = self.store.get(session_id)
        if (
            current is not None
            and self._precedes(session_id, current.leaf_token, expected_leaf)
            and self.store.compare_and_set_leaf(
                session_id, expected=current.leaf_token, new_leaf=new_leaf, seen_at=timestamp
            )
        ):
            log.warning(
                "Session leaf was behind the ledger; caught up",
                extra={
                    "event": "session.leaf_caught_up",
                    "session_id": session_id,
                    "principal": current.principal.key,
                },
            )
            return

        log.error(
            "Session leaf mismatch; force-closing session",
            extra={
                "event": "auth.session_inconsistent",
                "session_id": session_id,
                "principal": current.principal.key if current else None,
            },
        )
        self._force_close(session_id)
        raise ConsistencyFault()

    def get(self, session_id: str) -> DeviceSession | None:
        return self.store.get(session_id)

    def list(self, principal: PrincipalRef) -> list[DeviceSession]:
        """
        Return the principal's live sessions, most recently used first.

        A session whose leaf has outlived the refresh lifetime can never
        rotate again; it is closed here and left out of the result.
        """
        now = self.now_utc()
        ttl = self.ledger.policy.refresh_ttl
        live: list[DeviceSession] = []
        for session in self.store.list_for_principal(principal):
            if session.last_seen_at + ttl <= now:
                self._force_close(session.id)
                log.info(
                    "Session expired",
                    extra={
                        "event": "session.expired",
                        "principal": principal.key,
                        "session_id": session.id,
                    },
                )
                continue
            live.append(session)
        return live

    def close(self, session_id: str, *, owner: PrincipalRef | None = None) -> bool:
        """
        Close one session and revoke its chain. Idempotent.

        :param owner: When given, the session must belong to this principal.
        :returns: ``True`` if a registry entry was removed.
        :raises NotFoundError: The session belongs to another principal.
        """
        session = self.store.get(session_id)
        if session is None:
            self.ledger.revoke_session(session_id)
            return False
        if owner is not None and session.principal != owner:
            raise NotFoundError("Session", session_id)
        self._force_close(session_id)
        log.info(
            "Session closed",
            extra={
                "event": "session.closed",
                "principal": session.principal.key,
                "session_id": session_id,
            },
        )
        return True

    def close_all(self, principal: PrincipalRef, *, except_device_id: str | None = None) -> int:
        """
        Close every session of ``principal``.

        Sessions whose device id equals ``except_device_id`` stay open.

        :returns: Number of sessions closed.
        """
        closed = 0
        for session in self.store.list_for_principal(principal):
            if except_device_id and session.device.device_id == except_device_id:
                continue
            self._force_close(session.id)
            closed += 1
        if not except_device_id:
            # Catches chains whose registry entry is already gone
            self.ledger.revoke_all_for_principal(principal)
        log.info(
            "Sessions closed",
            extra={"event": "session.closed_all", "principal": principal.key},
        )
        return closed

    def _precedes(self, session_id: str, older: str, leaf: str) -> bool:
        """Whether following ``replaced_by`` from ``older`` reaches ``leaf`` in this chain."""
        token: str | None = older
        for _ in range(self.MAX_CATCH_UP):
            record = self.ledger.get(token) if token else None
            if record is None or record.session_id != session_id:
                return False
            token = record.replaced_by
            if token == leaf:
                return True
        return False

    def _force_close(self, session_id: str) -> None:
        self.ledger.revoke_session(session_id)
        self.store.remove(session_id)
