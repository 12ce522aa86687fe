# authcore/services/auth/service.py
from __future__ import annotations

import logging

from authcore.services._shared.base import BaseService, ServiceContext
from authcore.services._shared.dto import PrincipalRef
from authcore.services._shared.errors import AuthorizationError, NotFoundError, StoreUnavailable
from authcore.services._shared.policies.auth import AuthPolicy
from authcore.services._shared.ports import (
    RefreshTokenStore,
    SessionStore,
    TokenProvider,
)
from authcore.services.auth.dto import LoginIn, SessionOut, TokenPairOut
from authcore.services.credentials.service import CredentialManager
from authcore.services.ledger.service import RefreshTokenLedger
from authcore.services.principals.dto import PrincipalOut
from authcore.services.principals.service import PrincipalService
from authcore.services.sessions.service import SessionRegistry

log = logging.getLogger(__name__)


class AuthService(BaseService):
    """
    Authentication lifecycle service (login / refresh / logout / sessions).

    Composes the credential manager, the refresh-token ledger and the session
    registry. Access tokens are stateless JWTs minted by a pluggable
    :class:`TokenProvider`; refresh tokens are opaque values owned by the
    ledger, rotated on every use with reuse detection.
    """

    def __init__(
        self,
        *,
        token_provider: TokenProvider,
        refresh_store: RefreshTokenStore,
        session_store: SessionStore,
        policy: AuthPolicy | None = None,
        ctx: ServiceContext | None = None,
    ) -> None:
        """
        Initialize the service with its dependencies.

        :param token_provider: Adapter for signing access JWTs.
        :param refresh_store: Stateful store for refresh-token records.
        :param session_store: Stateful store for device sessions.
        :param policy: Lifetimes and lockout settings.
        :param ctx: Request-scoped caller context.
        """
        super().__init__(ctx=ctx)
        self.policy = policy or AuthPolicy()
        self.credentials = CredentialManager(policy=self.policy, ctx=self.ctx)
        self.ledger = RefreshTokenLedger(
            store=refresh_store,
            token_provider=token_provider,
            policy=self.policy,
            ctx=self.ctx,
        )
        self.registry = SessionRegistry(store=session_store, ledger=self.ledger, ctx=self.ctx)
        self.principals = PrincipalService(ctx=self.ctx)

    # ------------------------------------------------------------------ #
    # Login
    # ------------------------------------------------------------------ #

    def login(self, dto: LoginIn) -> TokenPairOut:
        """
        Verify credentials, open a device session and issue a token pair.

        :raises InvalidCredential: Unknown principal or wrong secret.
        :raises AccountLocked: Lockout window open.
        :raises AccountDisabled: Deactivated or unverified account.
        """
        principal = self.credentials.verify(dto.kind, dto.login, dto.secret)

        # Server state first: the refresh record exists before any token leaves
        session, record = self.registry.open(principal.ref, dto.device)
        access = self.ledger.mint_access_token(principal, session_id=session.id)

        log.info(
            "Sign-in succeeded",
            extra={
                "event": "auth.login",
                "principal": principal.ref.key,
                "session_id": session.id,
                "device_id": dto.device.device_id,
            },
        )
        return self._pair(access, record.token, session.id)

    # ------------------------------------------------------------------ #
    # Refresh with atomic rotation
    # ------------------------------------------------------------------ #

    def refresh(self, refresh_token: str) -> TokenPairOut:
        """
        Rotate a refresh token and emit a new pair for the same session.

        Security
        --------
        - Only the leaf of a chain can be rotated; rotation is atomic.
        - A consumed or revoked token revokes the whole chain (replay).
        - The registry leaf is advanced with compare-and-set; a mismatch
          force-closes the session.
        - Once the token is consumed the new pair is always returned. A
          registry outage at that point is logged and the next rotation
          catches the leaf up, so the client never holds a burnt token.
        """
        rotation = self.ledger.rotate(refresh_token)
        successor = rotation.record
        try:
            self.registry.touch(
                successor.session_id,
                successor.token,
                successor.issued_at,
                expected_leaf=rotation.previous.token,
            )
        except StoreUnavailable:
            log.warning(
                "Session store unavailable after rotation; leaf update deferred",
                extra={
                    "event": "session.touch_deferred",
                    "principal": rotation.principal.ref.key,
                    "session_id": successor.session_id,
                },
            )
        return self._pair(rotation.access_token, successor.token, successor.session_id)

    # ------------------------------------------------------------------ #
    # Logout
    # ------------------------------------------------------------------ #

    def logout(self, refresh_token: str) -> None:
        """
        Close the session the refresh token belongs to. Idempotent.

        Unknown tokens are ignored so a client can always discard its state.
        """
        record = self.ledger.get(refresh_token)
        if record is None:
            return
        self.registry.close(record.session_id)

    # ------------------------------------------------------------------ #
    # Sessions (caller-scoped)
    # ------------------------------------------------------------------ #

    def list_sessions(self) -> list[SessionOut]:
        """List the caller's sessions, most recently used first."""
        caller = self._caller()
        return [
            SessionOut.from_session(s, current_id=self.ctx.session_id)
            for s in self.registry.list(caller)
        ]

    def revoke_session(self, session_id: str) -> None:
        """
        Close one of the caller's sessions.

        :raises NotFoundError: Unknown session or owned by another principal.
        """
        if not self.registry.close(session_id, owner=self._caller()):
            raise NotFoundError("Session", session_id)

    def revoke_all_sessions(self, *, except_device_id: str | None = None) -> int:
        """Close every session of the caller, optionally keeping one device."""
        return self.registry.close_all(self._caller(), except_device_id=except_device_id)

    def revoke_principal_sessions(self, principal: PrincipalRef) -> int:
        """
        Administrative sign-out of every device of ``principal``.

        :raises NotFoundError: Unknown principal.
        """
        self.principals.get(principal)
        closed = self.registry.close_all(principal)
        log.warning(
            "Sessions revoked by administrator",
            extra={
                "event": "auth.admin_revoke",
                "principal": principal.key,
                "session_id": self.ctx.session_id,
            },
        )
        return closed

    def me(self) -> PrincipalOut:
        """Return the caller's profile."""
        return self.principals.get(self._caller())

    # ------------------------------------------------------------------ #
    # Utilities
    # ------------------------------------------------------------------ #

    def _caller(self) -> PrincipalRef:
        if not self.ctx.principal_key:
            raise AuthorizationError("Authenticated principal required.")
        try:
            return PrincipalRef.parse(self.ctx.principal_key)
        except ValueError as exc:
            raise AuthorizationError("Invalid token subject.") from exc

    def _pair(self, access: str, refresh: str, session_id: str) -> TokenPairOut:
        return TokenPairOut(
            access_token=access,
            refresh_token=refresh,
            expires_in=int(self.policy.access_ttl.total_seconds()),
            session_id=session_id,
        )
