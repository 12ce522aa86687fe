"""
Domain-level exceptions used within the service layer.

These exceptions are **framework-agnostic** and should never import or depend
on Flask or HTTP. They serve as stable contracts between repositories, token
stores and application services.

The translation to HTTP responses (RFC 7807) is handled by
``authcore/core/errors.py`` via ``BaseService.translate_exceptions()``.
"""

from __future__ import annotations

from dataclasses import dataclass

# --------------------------------------------------------------------------- #
# Base types
# --------------------------------------------------------------------------- #


class ServiceError(Exception):
    """
    Base class for all service-level errors.

    Notes
    -----
    - These are *not* HTTP errors.
    - They can be safely raised from repositories or domain logic.
    - The API layer or BaseService will later translate them to APIError.
    """

    pass


# --------------------------------------------------------------------------- #
# Generic domain errors
# --------------------------------------------------------------------------- #


@dataclass(slots=True)
class NotFoundError(ServiceError):
    """
    Raised when an entity is not found.

    :param entity: Entity name (e.g., "Session").
    :type entity: str
    :param key: Identifier or search key.
    :type key: str | int
    """

    entity: str
    key: str | int

    def __str__(self) -> str:
        return f"{self.entity} not found: {self.key}"


@dataclass(slots=True)
class ConflictError(ServiceError):
    """
    Raised when a unique constraint or business rule conflict occurs.

    :param entity: Entity name (e.g., "Principal").
    :type entity: str
    :param detail: Short human-readable explanation.
    :type detail: str
    """

    entity: str
    detail: str

    def __str__(self) -> str:
        return f"Conflict on {self.entity}: {self.detail}"


class AuthorizationError(ServiceError):
    """Raised when the caller lacks the role or permission for an action."""


# --------------------------------------------------------------------------- #
# Authentication errors
# --------------------------------------------------------------------------- #


class AuthError(ServiceError):
    """
    Base class for authentication failures.

    :cvar code: Stable machine-readable identifier rendered in problem bodies.
    """

    code = "unauthorized"
    default_message = "Authentication failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class InvalidCredential(AuthError):
    """Unknown principal or wrong secret."""

    code = "invalid_credentials"
    default_message = "Invalid credentials"


class AccountLocked(AuthError):
    """Sign-in refused because the lockout window is still open."""

    code = "account_locked"
    default_message = "Account temporarily locked"


class AccountDisabled(AuthError):
    """The principal is deactivated or not verified yet."""

    code = "account_disabled"
    default_message = "Account disabled"


class TokenNotFound(AuthError):
    """The presented refresh token is unknown to the ledger."""

    code = "token_not_found"
    default_message = "Refresh token not recognized"


class TokenExpired(AuthError):
    """The presented refresh token is past its expiry."""

    code = "refresh_token_expired"
    default_message = "Refresh token has expired"


class TokenReplayed(AuthError):
    """A consumed or revoked refresh token was presented again; its chain is revoked."""

    code = "token_replayed"
    default_message = "Refresh token reuse detected"


class ConsistencyFault(AuthError):
    """The session registry disagrees with the ledger; the session was force-closed."""

    code = "session_inconsistent"
    default_message = "Session state is inconsistent"


class StoreUnavailable(ServiceError):
    """A backing store could not be reached. Transient; safe to retry."""

    def __init__(self, message: str = "Token store unavailable") -> None:
        super().__init__(message)


def violates(exc: Exception, constraint_name: str) -> bool:
    """
    Check whether an ``IntegrityError`` originates from a specific constraint.

    :param exc: The exception raised by SQLAlchemy during flush/commit.
    :param constraint_name: Constraint name to match (e.g. ``uq_principals_kind_login``).
    :returns: ``True`` if the driver message mentions the constraint.
    """
    orig = getattr(exc, "orig", None)
    message = str(orig).lower() if orig else str(exc).lower()
    return constraint_name.lower() in message
