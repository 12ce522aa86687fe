"""Client-side helpers: single-flight token refresh and an authenticated HTTP client."""

from __future__ import annotations

from .coordinator import CoordinatorState, ReauthCoordinator, Tokens
from .errors import (
    AuthenticationRequired,
    ClientError,
    RefreshRejected,
    RefreshTimeout,
    SignInFailed,
    TransientAuthError,
)
from .http import AuthenticatedClient

__all__ = [
    "AuthenticatedClient",
    "ReauthCoordinator",
    "CoordinatorState",
    "Tokens",
    "ClientError",
    "AuthenticationRequired",
    "RefreshRejected",
    "RefreshTimeout",
    "SignInFailed",
    "TransientAuthError",
]
