"""Authentication helpers for tests."""

from __future__ import annotations

from datetime import timedelta

from flask_jwt_extended import create_access_token


def issue_token(
    key: str,
    *,
    role: str = "customer",
    perms: list[str] | None = None,
    sid: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Generate an access JWT shaped like the ones minted at sign-in.

    Parameters
    ----------
    key:
        Principal key (``"<kind>:<id>"``) encoded as ``sub``.
    role, perms, sid:
        Authorization snapshot and session id claims.
    expires_delta:
        Optional expiry delta. If ``None``, the default expiry is used.

    Returns
    -------
    str
        Encoded JWT string.
    """

    kind = key.partition(":")[0]
    return create_access_token(
        identity=key,
        additional_claims={"kind": kind, "role": role, "perms": perms or [], "sid": sid},
        expires_delta=expires_delta,
    )


def expired_token(key: str) -> str:
    """Return an already expired JWT for ``key``."""

    return issue_token(key, expires_delta=timedelta(seconds=-1))


def bearer(token: str) -> dict[str, str]:
    """Authorization header for ``token``."""

    return {"Authorization": f"Bearer {token}"}
