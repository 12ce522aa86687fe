"""
DTOs for PrincipalService and the credential manager.

DTOs isolate the service layer from ORM models so that nothing returned to
callers is bound to a database session.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from authcore.models.base import as_utc
from authcore.services._shared.dto import PrincipalRef

if TYPE_CHECKING:
    from authcore.models.principal import Principal


@dataclass(frozen=True, slots=True)
class PrincipalCreateIn:
    """
    Input DTO for creating a principal (administrative tooling).

    :param kind: ``"admin"`` or ``"user"``.
    :type kind: str
    :param login: Username (admins) or email (users).
    :type login: str
    :param password: Raw secret, hashed by the model.
    :type password: str
    :param role: Role name.
    :type role: str
    :param permissions: Permission names granted on top of the role.
    :type permissions: tuple[str, ...]
    :param display_name: Optional display name.
    :type display_name: str | None
    :param is_verified: Whether the account starts verified.
    :type is_verified: bool
    """

    kind: str
    login: str
    password: str
    role: str
    permissions: tuple[str, ...] = ()
    display_name: str | None = None
    is_verified: bool = True


@dataclass(frozen=True, slots=True)
class PrincipalOut:
    """
    Session-independent snapshot of a principal.

    :param id: Primary key.
    :param kind: ``"admin"`` or ``"user"``.
    :param login: Normalized login handle.
    :param role: Role name.
    :param permissions: Permission snapshot.
    :param display_name: Optional display name.
    :param is_active: Whether the account can sign in.
    :param is_verified: Whether the account is verified.
    :param last_login_at: Last successful sign-in.
    """

    id: int
    kind: str
    login: str
    role: str
    permissions: tuple[str, ...] = field(default_factory=tuple)
    display_name: str | None = None
    is_active: bool = True
    is_verified: bool = True
    last_login_at: datetime | None = None

    @property
    def ref(self) -> PrincipalRef:
        return PrincipalRef(kind=self.kind, id=self.id)

    @classmethod
    def from_model(cls, principal: Principal) -> PrincipalOut:
        return cls(
            id=principal.id,
            kind=principal.kind,
            login=principal.login,
            role=principal.role,
            permissions=tuple(principal.permissions or ()),
            display_name=principal.display_name,
            is_active=principal.is_active,
            is_verified=principal.is_verified,
            last_login_at=as_utc(principal.last_login_at),
        )
