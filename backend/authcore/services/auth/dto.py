# authcore/services/auth/dto.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from authcore.services._shared.dto import DeviceInfo
from authcore.services._shared.ports import DeviceSession

# ---------------------------- Input DTOs ---------------------------------- #


@dataclass(frozen=True, slots=True)
class LoginIn:
    """
    Input DTO for sign-in.

    :param kind: ``"admin"`` or ``"user"``.
    :type kind: str
    :param login: Username (admins) or email (users).
    :type login: str
    :param secret: Raw secret (to be verified).
    :type secret: str
    :param device: Device metadata for the new session.
    :type device: DeviceInfo
    """

    kind: str
    login: str
    secret: str
    device: DeviceInfo = field(default_factory=DeviceInfo)


# --------------------------- Output DTOs ---------------------------------- #


@dataclass(frozen=True, slots=True)
class TokenPairOut:
    """
    Output DTO returned by sign-in and refresh.

    :param access_token: Signed access JWT.
    :type access_token: str
    :param refresh_token: Opaque refresh token (leaf of the session chain).
    :type refresh_token: str
    :param expires_in: Access token lifetime in seconds.
    :type expires_in: int
    :param session_id: Session the pair belongs to.
    :type session_id: str
    """

    access_token: str
    refresh_token: str
    expires_in: int
    session_id: str
    token_type: str = "Bearer"


@dataclass(frozen=True, slots=True)
class SessionOut:
    """Public view of a device session (never exposes token values)."""

    id: str
    device: DeviceInfo
    created_at: datetime
    last_seen_at: datetime
    current: bool = False

    @classmethod
    def from_session(cls, session: DeviceSession, *, current_id: str | None) -> SessionOut:
        return cls(
            id=session.id,
            device=session.device,
            created_at=session.created_at,
            last_seen_at=session.last_seen_at,
            current=session.id == current_id,
        )
