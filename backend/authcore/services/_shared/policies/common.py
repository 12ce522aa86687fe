"""Role/permission checks evaluated on access-token claims."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from authcore.services._shared.errors import AuthorizationError


def authorize(
    claims: Mapping[str, Any],
    *,
    roles: Iterable[str] = (),
    permission: str | None = None,
) -> None:
    """
    Check the role/permission snapshot carried by an access token.

    ``super_admin`` passes every check. Otherwise the role must be one of
    ``roles`` (when given) and ``permission`` must be listed in ``perms``
    (when given).

    :param claims: Decoded access-token claims.
    :param roles: Accepted role names; empty means any role.
    :param permission: Required permission name.
    :raises AuthorizationError: When a check fails.
    """
    role = claims.get("role")
    if role == "super_admin":
        return
    allowed = set(roles)
    if allowed and role not in allowed:
        raise AuthorizationError("Insufficient role")
    if permission and permission not in set(claims.get("perms") or ()):
        raise AuthorizationError("Insufficient permission")
