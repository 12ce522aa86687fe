"""Authentication and device-session endpoints."""

from __future__ import annotations

from flask import Blueprint, Response, current_app, request

from authcore.api.deps import (
    build_auth_service,
    device_from_request,
    json_response,
    require_auth,
    require_role,
    service_errors,
    timing,
)
from authcore.core.errors import NotFound
from authcore.core.extensions import limiter
from authcore.schemas import (
    LoginSchema,
    PrincipalSchema,
    RefreshSchema,
    SessionSchema,
    TokenPairSchema,
)
from authcore.services._shared.dto import PRINCIPAL_KINDS, PrincipalRef
from authcore.services._shared.errors import TokenNotFound
from authcore.services.auth import LoginIn

bp = Blueprint("auth", __name__, url_prefix="/auth")

login_schema = LoginSchema()
refresh_schema = RefreshSchema()
token_schema = TokenPairSchema()
session_schema = SessionSchema(many=True)
principal_schema = PrincipalSchema()


def _login_rate_limit() -> str:
    return str(current_app.config.get("AUTH_LOGIN_RATE_LIMIT", "10 per minute"))


def _refresh_rate_limit() -> str:
    return str(current_app.config.get("AUTH_REFRESH_RATE_LIMIT", "30 per minute"))


def _presented_refresh_token() -> str | None:
    data = refresh_schema.load(request.get_json(silent=True) or {})
    return data.get("refresh_token") or request.headers.get("X-Refresh-Token")


@bp.post("/login")
@limiter.limit(_login_rate_limit)
@timing
@service_errors
def login():
    """Verify credentials and open a device session."""

    data = login_schema.load(request.get_json(silent=True) or {})
    dto = LoginIn(
        kind=data["kind"],
        login=data["login"],
        secret=data["secret"],
        device=device_from_request(data.get("device")),
    )
    pair = build_auth_service().login(dto)
    return json_response({"data": token_schema.dump(pair)})


@bp.post("/refresh")
@limiter.limit(_refresh_rate_limit)
@timing
@service_errors
def refresh():
    """Rotate the presented refresh token."""

    token = _presented_refresh_token()
    if not token:
        raise TokenNotFound()
    pair = build_auth_service().refresh(token)
    return json_response({"data": token_schema.dump(pair)})


@bp.post("/logout")
@timing
@service_errors
def logout():
    """Close the session of the presented refresh token. Always 204."""

    token = _presented_refresh_token()
    if token:
        build_auth_service().logout(token)
    return Response(status=204)


@bp.get("/sessions")
@require_auth
@timing
@service_errors
def list_sessions():
    """List the caller's device sessions, most recently used first."""

    sessions = build_auth_service(authenticated=True).list_sessions()
    return json_response({"data": session_schema.dump(sessions)})


@bp.delete("/sessions/<string:session_id>")
@require_auth
@timing
@service_errors
def revoke_session(session_id: str):
    build_auth_service(authenticated=True).revoke_session(session_id)
    return Response(status=204)


@bp.post("/sessions/revoke-all")
@require_auth
@timing
@service_errors
def revoke_all_sessions():
    """Sign out every device except the one named in ``X-Device-Id``."""

    keep = request.headers.get("X-Device-Id") or None
    revoked = build_auth_service(authenticated=True).revoke_all_sessions(except_device_id=keep)
    return json_response({"data": {"revoked": revoked}})


@bp.get("/me")
@require_auth
@timing
@service_errors
def me():
    """Return the authenticated principal profile."""

    principal = build_auth_service(authenticated=True).me()
    return json_response({"data": principal_schema.dump(principal)})


@bp.post("/principals/<string:kind>/<int:principal_id>/revoke-sessions")
@require_role("admin", "super_admin")
@timing
@service_errors
def revoke_principal_sessions(kind: str, principal_id: int):
    """Administrative sign-out of every device of another principal."""

    if kind not in PRINCIPAL_KINDS:
        raise NotFound("Unknown principal kind")
    service = build_auth_service(authenticated=True)
    revoked = service.revoke_principal_sessions(PrincipalRef(kind=kind, id=principal_id))
    return json_response({"data": {"revoked": revoked}})
