from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Protocol
from uuid import uuid4

from authcore.services._shared.dto import DeviceInfo, PrincipalRef


@dataclass(frozen=True)
class DeviceSession:
    """
    One signed-in device of a principal.

    :ivar id: Opaque session identifier.
    :ivar principal: Owner of the session.
    :ivar leaf_token: The only refresh token of the chain still usable.
    :ivar device: Device metadata captured at sign-in.
    :ivar created_at: Sign-in instant.
    :ivar last_seen_at: Instant of the last successful rotation.
    """

    id: str
    principal: PrincipalRef
    leaf_token: str
    device: DeviceInfo
    created_at: datetime
    last_seen_at: datetime


def new_session_id() -> str:
    return uuid4().hex


class SessionStore(Protocol):
    """Persistence port for :class:`DeviceSession` entries."""

    def add(self, session: DeviceSession) -> None:
        """Store a new session."""

    def get(self, session_id: str) -> DeviceSession | None:
        """Fetch one session, or ``None`` if it does not exist."""

    def compare_and_set_leaf(
        self, session_id: str, *, expected: str, new_leaf: str, seen_at: datetime
    ) -> bool:
        """
        Move the leaf pointer to ``new_leaf`` if it currently equals ``expected``.

        :returns: ``False`` when the session is missing or the leaf differs.
        """

    def remove(self, session_id: str) -> bool:
        """Delete a session. :returns: ``True`` if it existed."""

    def list_for_principal(self, principal: PrincipalRef) -> list[DeviceSession]:
        """List a principal's sessions, most recently used first."""


class InMemorySessionStore(SessionStore):
    """Process-local session store guarded by a single lock."""

    def __init__(self) -> None:
        self._by_id: dict[str, DeviceSession] = {}
        self._lock = threading.Lock()

    def add(self, session: DeviceSession) -> None:
        with self._lock:
            self._by_id[session.id] = session

    def get(self, session_id: str) -> DeviceSession | None:
        with self._lock:
            return self._by_id.get(session_id)

    def compare_and_set_leaf(
        self, session_id: str, *, expected: str, new_leaf: str, seen_at: datetime
    ) -> bool:
        with self._lock:
            current = self._by_id.get(session_id)
            if current is None or current.leaf_token != expected:
                return False
            self._by_id[session_id] = replace(current, leaf_token=new_leaf, last_seen_at=seen_at)
            return True

    def remove(self, session_id: str) -> bool:
        with self._lock:
            return self._by_id.pop(session_id, None) is not None

    def list_for_principal(self, principal: PrincipalRef) -> list[DeviceSession]:
        with self._lock:
            owned = [s for s in self._by_id.values() if s.principal == principal]
        return sorted(owned, key=lambda s: s.last_seen_at, reverse=True)
