"""Principal model: the account an administrator or end user signs in with."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, validates
from werkzeug.security import check_password_hash, generate_password_hash

from authcore.core.extensions import db

from .base import PKMixin, ReprMixin, TimestampMixin, as_utc

PRINCIPAL_KINDS = ("admin", "user")
ADMIN_ROLES = ("admin", "manager", "super_admin")
USER_ROLES = ("customer",)


class Principal(PKMixin, ReprMixin, TimestampMixin, db.Model):
    """
    Sign-in identity for either portal.

    Rows are never deleted; ``is_active`` soft-deactivates an account. The
    lockout columns (``failed_attempts``, ``lock_until``) are only written
    through :class:`authcore.services.credentials.service.CredentialManager`
    which updates them with single atomic statements.

    Fields
    ------
    kind : str
        ``"admin"`` (administrative portal) or ``"user"`` (client portal).
    login : str
        Username for admins, email for users. Stored normalized.
    password_hash : str
        Hashed secret (write-only setter via ``password``).
    role : str
        Role name used by authorization checks.
    permissions : list[str]
        Fine-grained permission snapshot copied into access tokens.
    is_active : bool
        ``False`` once the account is deactivated.
    is_verified : bool
        ``False`` until the account has been verified.
    failed_attempts : int
        Consecutive failed sign-ins, kept for audit while locked.
    lock_until : datetime | None
        Sign-in is refused while this lies in the future.
    last_login_at : datetime | None
        Timestamp of the last successful sign-in.
    """

    __tablename__ = "principals"

    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    login: Mapped[str] = mapped_column(String(254), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(254), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    permissions: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    failed_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lock_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_login_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint("kind", "login", name="uq_principals_kind_login"),
        CheckConstraint("kind IN ('admin', 'user')", name="kind_valid"),
        CheckConstraint("failed_attempts >= 0", name="failed_attempts_non_negative"),
    )

    # -------------------- Password API --------------------
    @property
    def password(self) -> Any:  # pragma: no cover - explicit write-only contract
        """
        Disallow reading passwords.

        :raises AttributeError: Always, to ensure password is write-only.
        """
        raise AttributeError("Password is write-only.")

    @password.setter
    def password(self, raw: str) -> None:
        """
        Hash and set the password.

        :param raw: Plain text password to hash.
        :type raw: str
        :raises ValueError: If ``raw`` is empty.
        """
        if not isinstance(raw, str) or not raw:
            raise ValueError("Password must be a non-empty string.")
        self.password_hash = generate_password_hash(raw)

    def verify_password(self, raw: str) -> bool:
        """
        Verify a password against the stored hash.

        :param raw: Plain text password candidate.
        :returns: ``True`` if it matches; otherwise ``False``.
        :rtype: bool
        """
        if not self.password_hash or not raw:
            return False
        return bool(check_password_hash(self.password_hash, raw))

    # -------------------- Lockout view --------------------
    def is_locked(self, now: datetime) -> bool:
        """
        Return whether sign-in is currently refused.

        :param now: Aware reference instant.
        :rtype: bool
        """
        lock = as_utc(self.lock_until)
        return lock is not None and lock > now

    @property
    def key(self) -> str:
        """Stable principal key ``"<kind>:<id>"`` used by the token stores."""
        return f"{self.kind}:{self.id}"

    # -------------------- Validators --------------------
    @validates("kind")
    def _validate_kind(self, key: str, value: str) -> str:
        if value not in PRINCIPAL_KINDS:
            raise ValueError(f"Unknown principal kind: {value!r}")
        return value

    @validates("login")
    def _normalize_login(self, key: str, value: str) -> str:
        """
        Normalize the login handle.

        Both emails and usernames are compared trimmed and lowercased.

        :raises ValueError: If the login is missing or only whitespace.
        """
        if not isinstance(value, str) or not value.strip():
            raise ValueError("Login is required.")
        return normalize_login(value)

    @validates("permissions")
    def _validate_permissions(self, key: str, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str) or not all(isinstance(p, str) for p in value):
            raise ValueError("Permissions must be a list of strings.")
        return sorted(set(value))


def normalize_login(value: str) -> str:
    """Return the canonical form of a login handle (trimmed, lowercase)."""
    return value.strip().lower()
