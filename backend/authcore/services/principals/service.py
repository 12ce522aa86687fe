"""
PrincipalService
================

Administrative operations on the ``Principal`` aggregate: creation,
profile lookup and soft deactivation. Sign-in checks and lockout live in
:mod:`authcore.services.credentials`.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from authcore.models.principal import ADMIN_ROLES, USER_ROLES, Principal
from authcore.repositories.principal import PrincipalRepository
from authcore.services._shared.base import BaseService
from authcore.services._shared.dto import PrincipalRef
from authcore.services._shared.errors import ConflictError, NotFoundError, ServiceError, violates
from authcore.services.principals.dto import PrincipalCreateIn, PrincipalOut

log = logging.getLogger(__name__)


class PrincipalService(BaseService):
    """Application service for the ``Principal`` aggregate."""

    def create(self, dto: PrincipalCreateIn) -> PrincipalOut:
        """
        Create a principal.

        :param dto: Creation input.
        :type dto: PrincipalCreateIn
        :returns: Snapshot of the new principal.
        :rtype: PrincipalOut
        :raises ServiceError: If the role does not fit the principal kind.
        :raises ConflictError: If the login is already taken for that kind.
        """
        allowed = ADMIN_ROLES if dto.kind == "admin" else USER_ROLES
        if dto.role not in allowed:
            raise ServiceError(f"Role {dto.role!r} is not valid for {dto.kind} principals")

        with self.rw_uow() as uow:
            repo: PrincipalRepository = uow.principals
            if repo.exists_by_login(dto.kind, dto.login):
                raise ConflictError("Principal", "login already in use")
            try:
                principal = Principal(
                    kind=dto.kind,
                    login=dto.login,
                    password=dto.password,
                    role=dto.role,
                    permissions=list(dto.permissions),
                    display_name=dto.display_name,
                    is_verified=dto.is_verified,
                    is_active=True,
                    failed_attempts=0,
                )
                repo.add(principal)
            except IntegrityError as exc:
                if violates(exc, "uq_principals_kind_login") or violates(exc, "principals.login"):
                    raise ConflictError("Principal", "login already in use") from exc
                raise
            out = PrincipalOut.from_model(principal)

        log.info("Principal created", extra={"event": "principal.created", "principal": out.ref.key})
        return out

    def get(self, ref: PrincipalRef) -> PrincipalOut:
        """
        Fetch a principal snapshot.

        :raises NotFoundError: If the principal does not exist or has another kind.
        """
        with self.ro_uow() as uow:
            principal = uow.principals.get(ref.id)
            if principal is None or principal.kind != ref.kind:
                raise NotFoundError("Principal", ref.key)
            return PrincipalOut.from_model(principal)

    def find(self, kind: str, login: str) -> PrincipalOut:
        """:raises NotFoundError: If no principal has that login."""
        with self.ro_uow() as uow:
            principal = uow.principals.get_by_login(kind, login)
            if principal is None:
                raise NotFoundError("Principal", f"{kind}:{login}")
            return PrincipalOut.from_model(principal)

    def list(
        self,
        *,
        kind: str | None = None,
        active: bool | None = None,
        sort: tuple[str, ...] = ("kind", "login"),
    ) -> list[PrincipalOut]:
        """List principals, optionally filtered by kind and activity."""
        filters: dict[str, object] = {}
        if kind is not None:
            filters["kind"] = kind
        if active is not None:
            filters["is_active"] = active
        with self.ro_uow() as uow:
            rows = uow.principals.list(filters=filters, sort=sort)
            return [PrincipalOut.from_model(p) for p in rows]

    def set_active(self, ref: PrincipalRef, active: bool) -> PrincipalOut:
        """
        Activate or soft-deactivate a principal. Rows are never deleted.

        Deactivation alone does not end existing sessions; callers revoke them
        through the ledger (the CLI does both).
        """
        with self.rw_uow() as uow:
            repo: PrincipalRepository = uow.principals
            principal = repo.get(ref.id)
            if principal is None or principal.kind != ref.kind:
                raise NotFoundError("Principal", ref.key)
            repo.update(principal, is_active=active)
            out = PrincipalOut.from_model(principal)
        log.info(
            "Principal %s",
            "activated" if active else "deactivated",
            extra={"event": "principal.active_changed", "principal": ref.key},
        )
        return out
