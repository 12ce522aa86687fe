"""Shared API helpers: auth guards, service wiring and response helpers."""

from __future__ import annotations

import functools
import time
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from flask import Response, current_app, g, jsonify, request
from flask_jwt_extended import get_jwt, get_jwt_identity, verify_jwt_in_request

from authcore.core.errors import Forbidden
from authcore.core.extensions import get_redis
from authcore.infra.jwt.flask_jwt_token_provider import JWTTokenProvider
from authcore.infra.redis.redis_refresh_token_store import RedisRefreshTokenStore
from authcore.infra.redis.redis_session_store import RedisSessionStore
from authcore.services._shared.base import BaseService, ServiceContext
from authcore.services._shared.dto import DeviceInfo
from authcore.services._shared.errors import AuthorizationError, ServiceError
from authcore.services._shared.policies.auth import AuthPolicy
from authcore.services._shared.policies.common import authorize
from authcore.services._shared.ports import (
    InMemoryRefreshTokenStore,
    InMemorySessionStore,
    RefreshTokenStore,
    SessionStore,
)
from authcore.services.auth import AuthService

F = TypeVar("F", bound=Callable[..., Any])

_STORES_KEY = "authcore_stores"


# ----------------------------- Auth guards -----------------------------


def require_auth(func: F) -> F:
    """Ensure the request carries a valid JWT access token."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        verify_jwt_in_request(optional=False)
        return func(*args, **kwargs)

    return wrapper  # type: ignore[return-value]


def require_role(*roles: str) -> Callable[[F], F]:
    """Ensure the verified JWT carries one of ``roles`` (``super_admin`` always passes)."""

    return _require(roles=roles)


def require_permission(permission: str) -> Callable[[F], F]:
    """Ensure the verified JWT lists ``permission`` in its ``perms`` claim."""

    return _require(permission=permission)


def _require(*, roles: Iterable[str] = (), permission: str | None = None) -> Callable[[F], F]:
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any):
            verify_jwt_in_request(optional=False)
            try:
                authorize(get_jwt() or {}, roles=roles, permission=permission)
            except AuthorizationError as exc:
                raise Forbidden(str(exc)) from exc
            return func(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator


# ----------------------------- Service wiring -----------------------------


def _stores() -> tuple[RefreshTokenStore, SessionStore]:
    """Return the app's stores: Redis when configured, else process-local ones."""

    policy = auth_policy()
    if current_app.config.get("REDIS_URL"):
        client = get_redis()
        return (
            RedisRefreshTokenStore(client, audit_grace=policy.audit_grace),
            RedisSessionStore(client, ttl=policy.refresh_ttl),
        )

    stores = current_app.extensions.get(_STORES_KEY)
    if stores is None:
        stores = (
            InMemoryRefreshTokenStore(audit_grace=policy.audit_grace),
            InMemorySessionStore(),
        )
        current_app.extensions[_STORES_KEY] = stores
    return stores


def auth_policy() -> AuthPolicy:
    return AuthPolicy.from_config(current_app.config)


def service_context(*, authenticated: bool = False) -> ServiceContext:
    """Build the request-scoped context; caller fields come from the verified JWT."""

    request_id = getattr(g, "request_id", None)
    if not authenticated:
        return ServiceContext(request_id=request_id)
    claims = get_jwt() or {}
    identity = get_jwt_identity()
    return ServiceContext(
        principal_key=str(identity) if identity else None,
        session_id=claims.get("sid"),
        request_id=request_id,
    )


def build_auth_service(*, authenticated: bool = False) -> AuthService:
    """Wire the auth facade to the configured stores.

    :param authenticated: Set by routes behind :func:`require_auth` so the
        caller identity is read from the verified access token.
    """
    refresh_store, session_store = _stores()
    return AuthService(
        token_provider=JWTTokenProvider(),
        refresh_store=refresh_store,
        session_store=session_store,
        policy=auth_policy(),
        ctx=service_context(authenticated=authenticated),
    )


# ----------------------------- Request parsing -----------------------------


def device_from_request(body: dict[str, Any] | None = None) -> DeviceInfo:
    """Merge device metadata from the body and ``X-Device-*`` headers (body wins)."""

    body = body or {}
    headers = request.headers
    return DeviceInfo(
        device_id=body.get("device_id") or headers.get("X-Device-Id"),
        name=body.get("name") or headers.get("X-Device-Name"),
        platform=body.get("platform") or headers.get("X-Device-Platform"),
        browser=body.get("browser") or headers.get("X-Device-Browser"),
        user_agent=request.user_agent.string or None,
        ip=request.remote_addr,
    )


# ----------------------------- Responses -----------------------------


def service_errors(func: F) -> F:
    """Re-raise service-layer errors as their HTTP counterparts."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        try:
            return func(*args, **kwargs)
        except ServiceError as exc:
            raise BaseService().translate_exceptions(exc) from exc

    return wrapper  # type: ignore[return-value]


def json_response(payload: Any, *, status: int = 200) -> Response:
    """Return a JSON response enforcing a consistent MIME type."""

    response = jsonify(payload)
    response.status_code = status
    return response


def timing(func: F) -> F:
    """Decorator capturing handler execution time in milliseconds."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            request_endpoint = getattr(request, "endpoint", None)
            current_app.logger.debug(
                "request.elapsed",
                extra={"endpoint": request_endpoint, "elapsed_ms": round(elapsed_ms, 2)},
            )

    return wrapper  # type: ignore[return-value]
