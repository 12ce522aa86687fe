# authcore/services/credentials/service.py
"""
Credential & lockout manager.

Verifies a principal's secret and maintains the consecutive-failure counter
and the temporary lock. Every counter change is a single atomic ``UPDATE``
committed before the outcome is reported to the caller.
"""

from __future__ import annotations

import logging

from werkzeug.security import check_password_hash, generate_password_hash

from authcore.repositories.principal import LockoutState, PrincipalRepository
from authcore.services._shared.base import BaseService, ServiceContext
from authcore.services._shared.errors import (
    AccountDisabled,
    AccountLocked,
    InvalidCredential,
    NotFoundError,
)
from authcore.services._shared.policies.auth import AuthPolicy
from authcore.services.principals.dto import PrincipalOut

log = logging.getLogger(__name__)

# Compared against when the login is unknown so both paths cost one hash check
_DUMMY_HASH = generate_password_hash("authcore-timing-equalizer")


class CredentialManager(BaseService):
    """
    Verify secrets and enforce the lockout policy.

    Rules
    -----
    - A principal whose ``lock_until`` lies in the future is rejected with
      :class:`AccountLocked` *before* the secret is compared.
    - A wrong secret increments the counter; reaching the threshold locks the
      account for ``policy.lockout_duration`` counted from that failure.
      Failures while locked never extend the lock.
    - A failure after an expired lock restarts the counter at 1.
    - A successful verification clears counter and lock.
    """

    def __init__(self, *, policy: AuthPolicy | None = None, ctx: ServiceContext | None = None) -> None:
        super().__init__(ctx=ctx)
        self.policy = policy or AuthPolicy()

    # ------------------------------------------------------------------ #
    # Verification
    # ------------------------------------------------------------------ #

    def verify(self, kind: str, login: str, secret: str) -> PrincipalOut:
        """
        Check a sign-in attempt.

        :param kind: ``"admin"`` or ``"user"``.
        :param login: Username or email.
        :param secret: Raw secret supplied by the caller.
        :returns: Snapshot of the authenticated principal.
        :raises InvalidCredential: Unknown principal or wrong secret.
        :raises AccountLocked: The lockout window is open.
        :raises AccountDisabled: Right secret but deactivated or unverified account.
        """
        now = self.now_utc()
        failure: Exception | None = None
        out: PrincipalOut | None = None

        with self.rw_uow() as uow:
            repo: PrincipalRepository = uow.principals
            principal = repo.get_by_login(kind, login)

            if principal is None:
                check_password_hash(_DUMMY_HASH, secret or "")
                failure = InvalidCredential()
            elif principal.is_locked(now):
                failure = AccountLocked()
                log.warning(
                    "Sign-in refused: account locked",
                    extra={"event": "auth.login_locked", "principal": principal.key},
                )
            elif not principal.verify_password(secret):
                key = principal.key
                state = repo.register_failure(
                    principal.id,
                    now=now,
                    threshold=self.policy.lockout_threshold,
                    duration=self.policy.lockout_duration,
                )
                failure = InvalidCredential()
                self._log_failure(key, state)
            elif not principal.is_active or not principal.is_verified:
                failure = AccountDisabled()
            else:
                repo.clear_failures(principal.id, last_login_at=now)
                out = PrincipalOut.from_model(principal)

        # Raise only after the unit of work committed the counter update
        if failure is not None:
            raise failure
        assert out is not None
        return out

    # ------------------------------------------------------------------ #
    # Counter maintenance
    # ------------------------------------------------------------------ #

    def record_failure(self, principal_id: int) -> LockoutState:
        """
        Record one failed attempt for ``principal_id`` and commit it.

        :returns: Counter and lock after the update.
        :raises NotFoundError: If the principal does not exist.
        """
        with self.rw_uow() as uow:
            state = uow.principals.register_failure(
                principal_id,
                now=self.now_utc(),
                threshold=self.policy.lockout_threshold,
                duration=self.policy.lockout_duration,
            )
            if state is None:
                raise NotFoundError("Principal", principal_id)
        return state

    def record_success(self, principal_id: int) -> None:
        """
        Clear counter and lock and stamp ``last_login_at``.

        :raises NotFoundError: If the principal does not exist.
        """
        with self.rw_uow() as uow:
            if not uow.principals.clear_failures(principal_id, last_login_at=self.now_utc()):
                raise NotFoundError("Principal", principal_id)

    def unlock(self, principal_id: int) -> None:
        """
        Administrative reset of counter and lock.

        :raises NotFoundError: If the principal does not exist.
        """
        with self.rw_uow() as uow:
            if not uow.principals.clear_failures(principal_id):
                raise NotFoundError("Principal", principal_id)
        log.info("Principal unlocked", extra={"event": "auth.unlocked", "principal": principal_id})

    def lockout_state(self, principal_id: int) -> LockoutState:
        """:raises NotFoundError: If the principal does not exist."""
        with self.ro_uow() as uow:
            state = uow.principals.lockout_state(principal_id)
        if state is None:
            raise NotFoundError("Principal", principal_id)
        return state

    def _log_failure(self, principal_key: str, state: LockoutState | None) -> None:
        if state is None:
            return
        if state.lock_until is not None and state.failed_attempts >= self.policy.lockout_threshold:
            log.warning(
                "Account locked after repeated failures",
                extra={
                    "event": "auth.lockout",
                    "principal": principal_key,
                    "failed_attempts": state.failed_attempts,
                },
            )
        else:
            log.info(
                "Sign-in failed",
                extra={
                    "event": "auth.login_failed",
                    "principal": principal_key,
                    "failed_attempts": state.failed_attempts,
                },
            )
