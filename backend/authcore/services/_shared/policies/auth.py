"""Authentication policy knobs read from application config."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta
from typing import Any


@dataclass(frozen=True, slots=True)
class AuthPolicy:
    """
    Lifetimes and lockout limits shared by the authentication services.

    :param access_ttl: Access token lifetime.
    :param refresh_ttl: Lifetime of each refresh token record.
    :param audit_grace: How long expired records remain visible.
    :param lockout_threshold: Consecutive failures that lock an account.
    :param lockout_duration: Absolute lock length.
    """

    access_ttl: timedelta = timedelta(minutes=30)
    refresh_ttl: timedelta = timedelta(days=30)
    audit_grace: timedelta = timedelta(days=7)
    lockout_threshold: int = 5
    lockout_duration: timedelta = timedelta(hours=2)

    def __post_init__(self) -> None:
        if self.lockout_threshold < 1:
            raise ValueError("lockout_threshold must be >= 1")
        for name in ("access_ttl", "refresh_ttl", "lockout_duration"):
            if getattr(self, name) <= timedelta(0):
                raise ValueError(f"{name} must be positive")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> AuthPolicy:
        """Build a policy from a Flask config mapping, falling back to defaults."""
        default = cls()
        return cls(
            access_ttl=config.get("JWT_ACCESS_TOKEN_EXPIRES") or default.access_ttl,
            refresh_ttl=config.get("REFRESH_TOKEN_TTL") or default.refresh_ttl,
            audit_grace=config.get("REFRESH_TOKEN_AUDIT_GRACE") or default.audit_grace,
            lockout_threshold=int(config.get("LOCKOUT_THRESHOLD") or default.lockout_threshold),
            lockout_duration=config.get("LOCKOUT_DURATION") or default.lockout_duration,
        )
