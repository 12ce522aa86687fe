"""Convenience exports for application schemas."""

from __future__ import annotations

from .auth import (
    DeviceSchema,
    LoginSchema,
    PrincipalSchema,
    RefreshSchema,
    SessionSchema,
    TokenPairSchema,
)

__all__ = [
    "DeviceSchema",
    "LoginSchema",
    "RefreshSchema",
    "TokenPairSchema",
    "SessionSchema",
    "PrincipalSchema",
]
