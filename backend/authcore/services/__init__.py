"""Service layer public API.

This package exposes the essential building blocks for the service layer so that
callers can import from :mod:`authcore.services` without knowing internal structure.

Re-exports
----------
- Base primitives (from ``authcore.services._shared.base``)
    * :class:`BaseService`
    * :class:`ServiceContext`

- Authentication facade (from ``authcore.services.auth``)
    * :class:`AuthService`
    * DTOs: :class:`LoginIn`, :class:`TokenPairOut`, :class:`SessionOut`

- Components composed by the facade
    * :class:`CredentialManager` (``authcore.services.credentials``)
    * :class:`RefreshTokenLedger`, :class:`RotationOut` (``authcore.services.ledger``)
    * :class:`SessionRegistry` (``authcore.services.sessions``)

- Principal administration (from ``authcore.services.principals``)
    * :class:`PrincipalService`
    * DTOs: :class:`PrincipalCreateIn`, :class:`PrincipalOut`
"""

from __future__ import annotations

# Base primitives (service base + request-scoped context)
from ._shared.base import BaseService, ServiceContext

# Authentication facade + DTOs
from .auth import AuthService, LoginIn, SessionOut, TokenPairOut

# Components
from .credentials import CredentialManager
from .ledger import RefreshTokenLedger, RotationOut

# Principal administration
from .principals import PrincipalCreateIn, PrincipalOut, PrincipalService
from .sessions import SessionRegistry

__all__ = [
    # Base
    "BaseService",
    "ServiceContext",
    # Auth
    "AuthService",
    "LoginIn",
    "TokenPairOut",
    "SessionOut",
    # Components
    "CredentialManager",
    "RefreshTokenLedger",
    "RotationOut",
    "SessionRegistry",
    # Principals
    "PrincipalService",
    "PrincipalCreateIn",
    "PrincipalOut",
]
