"""
authcore.services._shared.ports
===============================

Collection of *ports* (hexagonal interfaces) that define the contracts
for token management and session storage.

Modules
-------
- :mod:`token_provider`:
    Defines :class:`~.TokenProvider`, the abstraction for signing access tokens.

- :mod:`refresh_token_store`:
    Defines :class:`~.RefreshTokenStore`, :class:`~.RefreshTokenRecord` and
    :class:`~.ConsumeResult`, the abstractions for the refresh-token ledger.

- :mod:`session_store`:
    Defines :class:`~.SessionStore` and :class:`~.DeviceSession`.

Design Notes
------------
Each port ships an in-memory implementation used by tests and by
single-process deployments. Redis adapters live under ``authcore.infra``.
"""

from __future__ import annotations

from .refresh_token_store import (
    Consumption,
    ConsumeResult,
    InMemoryRefreshTokenStore,
    RefreshTokenRecord,
    RefreshTokenStore,
    new_token,
)
from .session_store import DeviceSession, InMemorySessionStore, SessionStore, new_session_id
from .token_provider import StubTokenProvider, TokenProvider

__all__ = [
    "TokenProvider",
    "StubTokenProvider",
    "RefreshTokenStore",
    "RefreshTokenRecord",
    "ConsumeResult",
    "Consumption",
    "InMemoryRefreshTokenStore",
    "new_token",
    "SessionStore",
    "DeviceSession",
    "InMemorySessionStore",
    "new_session_id",
]
