# authcore/services/ledger/service.py
from __future__ import annotations

import logging
from typing import Any, NoReturn

from authcore.services._shared.base import BaseService, ServiceContext
from authcore.services._shared.dto import PrincipalRef
from authcore.services._shared.errors import (
    AccountDisabled,
    TokenExpired,
    TokenNotFound,
    TokenReplayed,
)
from authcore.services._shared.policies.auth import AuthPolicy
from authcore.services._shared.ports import (
    ConsumeResult,
    RefreshTokenRecord,
    RefreshTokenStore,
    TokenProvider,
    new_token,
)
from authcore.services.ledger.dto import RotationOut
from authcore.services.principals.dto import PrincipalOut

log = logging.getLogger(__name__)


class RefreshTokenLedger(BaseService):
    """
    Refresh-token issuance, rotation and revocation.

    Each session owns one chain of records linked through ``replaced_by``.
    Only the newest link (the leaf) can be exchanged; presenting any older
    link is treated as theft and revokes the whole chain.
    """

    def __init__(
        self,
        *,
        store: RefreshTokenStore,
        token_provider: TokenProvider,
        policy: AuthPolicy | None = None,
        ctx: ServiceContext | None = None,
    ) -> None:
        """
        :param store: Record store providing atomic consumption.
        :param token_provider: Adapter signing access tokens.
        :param policy: Lifetimes (refresh TTL, access TTL).
        """
        super().__init__(ctx=ctx)
        self.store = store
        self.tokens = token_provider
        self.policy = policy or AuthPolicy()

    # ------------------------------------------------------------------ #
    # Issue
    # ------------------------------------------------------------------ #

    def issue(
        self, principal: PrincipalRef, *, session_id: str, device_id: str | None = None
    ) -> RefreshTokenRecord:
        """
        Create the root record of a new chain.

        The record is persisted before its token value is returned, so a token
        never exists on the client without its server-side record.
        """
        record = RefreshTokenRecord.issue(
            principal=principal,
            session_id=session_id,
            now=self.now_utc(),
            ttl=self.policy.refresh_ttl,
            device_id=device_id,
        )
        self.store.insert(record)
        return record

    # ------------------------------------------------------------------ #
    # Rotate
    # ------------------------------------------------------------------ #

    def rotate(self, presented: str) -> RotationOut:
        """
        Exchange a leaf token for its successor and a new access token.

        Every lookup that can fail on a store outage runs before the record is
        consumed, so an outage leaves the presented token usable for a retry.

        :param presented: Refresh token value sent by the client.
        :returns: New leaf, consumed record and access token.
        :raises TokenNotFound: Unknown token.
        :raises TokenReplayed: Token already consumed or revoked. The whole
            session chain is revoked before raising.
        :raises TokenExpired: Token past its expiry.
        :raises AccountDisabled: Owner deactivated; the chain is revoked.
        """
        now = self.now_utc()
        record = self.store.get(presented)
        if record is None:
            raise TokenNotFound()
        if record.revoked:
            self._replayed(record)
        if record.is_expired(now):
            raise TokenExpired()

        principal = self._load_active_principal(record.principal)
        if principal is None:
            self.store.revoke_session(record.session_id)
            log.warning(
                "Rotation refused for inactive principal; chain revoked",
                extra={
                    "event": "auth.rotation_disabled",
                    "principal": record.principal.key,
                    "session_id": record.session_id,
                },
            )
            raise AccountDisabled()
        access = self.mint_access_token(principal, session_id=record.session_id)

        consumption = self.store.consume(
            presented,
            new_token=new_token(),
            now=now,
            ttl=self.policy.refresh_ttl,
        )
        # A concurrent request may have won between the lookup and the consume
        if consumption.result is ConsumeResult.NOT_FOUND:
            raise TokenNotFound()
        if consumption.result is ConsumeResult.REPLAYED:
            assert consumption.record is not None
            self._replayed(consumption.record)
        if consumption.result is ConsumeResult.EXPIRED:
            raise TokenExpired()

        assert consumption.record is not None and consumption.successor is not None
        return RotationOut(
            record=consumption.successor,
            previous=consumption.record,
            access_token=access,
            principal=principal,
        )

    def _replayed(self, record: RefreshTokenRecord) -> NoReturn:
        revoked = self.store.revoke_session(record.session_id)
        log.warning(
            "Refresh token replay detected; chain revoked (%d records)",
            revoked,
            extra={
                "event": "auth.replay_detected",
                "principal": record.principal.key,
                "session_id": record.session_id,
                "device_id": record.device_id,
            },
        )
        raise TokenReplayed()

    # ------------------------------------------------------------------ #
    # Revoke
    # ------------------------------------------------------------------ #

    def revoke(self, token: str) -> bool:
        """Revoke one record. Idempotent; unknown tokens return ``False``."""
        return self.store.revoke(token)

    def revoke_session(self, session_id: str) -> int:
        """Revoke every record of a session chain, leaf included."""
        return self.store.revoke_session(session_id)

    def revoke_all_for_principal(self, principal: PrincipalRef) -> int:
        """Revoke every chain owned by ``principal`` (global sign-out)."""
        count = self.store.revoke_all_for_principal(principal)
        log.info(
            "All refresh tokens revoked",
            extra={"event": "auth.revoke_all", "principal": principal.key},
        )
        return count

    def get(self, token: str) -> RefreshTokenRecord | None:
        return self.store.get(token)

    def chain(self, session_id: str) -> list[RefreshTokenRecord]:
        """Return the records of a session chain, oldest first."""
        return list(self.store.list_session(session_id))

    # ------------------------------------------------------------------ #
    # Access tokens
    # ------------------------------------------------------------------ #

    def mint_access_token(self, principal: PrincipalOut, *, session_id: str) -> str:
        """
        Sign a short-lived access token for ``principal`` bound to ``session_id``.

        Claims carry a snapshot of role and permissions; nothing is stored.
        """
        claims: dict[str, Any] = {
            "kind": principal.kind,
            "role": principal.role,
            "perms": list(principal.permissions),
            "sid": session_id,
        }
        return self.tokens.create_access_token(
            identity=principal.ref.key,
            additional_claims=claims,
            expires_delta=self.policy.access_ttl,
        )

    # ------------------------------------------------------------------ #
    # Utilities
    # ------------------------------------------------------------------ #

    def _load_active_principal(self, ref: PrincipalRef) -> PrincipalOut | None:
        with self.ro_uow() as uow:
            principal = uow.principals.get(ref.id)
            if principal is None or principal.kind != ref.kind:
                return None
            if not principal.is_active:
                return None
            return PrincipalOut.from_model(principal)
