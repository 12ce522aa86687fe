# authcore/client/coordinator.py
"""
Single-flight reauthentication.

When several requests fail at once because the access token expired, only one
of them refreshes; the others wait for that result and replay with the new
token. A rejected refresh logs the client out exactly once.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from authcore.client.errors import (
    AuthenticationRequired,
    ClientError,
    RefreshRejected,
    RefreshTimeout,
    TransientAuthError,
)

log = logging.getLogger(__name__)


class CoordinatorState(Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"
    LOGGED_OUT = "logged_out"


@dataclass(frozen=True, slots=True)
class Tokens:
    """
    Credentials held by the client.

    :param access_token: Bearer token sent on every request.
    :param refresh_token: Opaque token exchanged on refresh.
    :param session_id: Server session the pair belongs to.
    :param expires_in: Access token lifetime in seconds, as reported by the server.
    """

    access_token: str
    refresh_token: str
    session_id: str | None = None
    expires_in: int | None = None


#: Exchanges a refresh token for a new pair. Raises :class:`RefreshRejected`
#: when the server refuses the token and :class:`TransientAuthError` otherwise.
Refresher = Callable[[str], Tokens]


class ReauthCoordinator:
    """
    Explicit state machine shared by every request of one client process.

    States: ``IDLE -> REFRESHING -> IDLE`` on success or transient failure,
    ``IDLE -> REFRESHING -> LOGGED_OUT`` on rejection. ``install`` brings a
    logged-out coordinator back to ``IDLE`` after a new sign-in.
    """

    def __init__(
        self,
        refresher: Refresher,
        *,
        on_logged_out: Callable[[], None] | None = None,
        wait_timeout: float = 10.0,
    ) -> None:
        """
        :param refresher: Performs the refresh call (see :data:`Refresher`).
        :param on_logged_out: Called once each time credentials are discarded
            after a rejected refresh.
        :param wait_timeout: Seconds a waiter blocks on an in-flight refresh.
        """
        self._refresher = refresher
        self._on_logged_out = on_logged_out
        self.wait_timeout = wait_timeout

        self._cond = threading.Condition()
        self._state = CoordinatorState.LOGGED_OUT
        self._tokens: Tokens | None = None
        # Bumped each time a refresh resolves; waiters watch it change
        self._generation = 0
        self._outcome: ClientError | None = None
        self._logged_out_notified = True

    # ------------------------------------------------------------------ #
    # Credentials
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> CoordinatorState:
        with self._cond:
            return self._state

    @property
    def tokens(self) -> Tokens | None:
        with self._cond:
            return self._tokens

    def current_access_token(self) -> str | None:
        with self._cond:
            return self._tokens.access_token if self._tokens else None

    def install(self, tokens: Tokens) -> None:
        """Store a fresh pair obtained by signing in."""
        with self._cond:
            self._tokens = tokens
            self._state = CoordinatorState.IDLE
            self._outcome = None
            self._logged_out_notified = False
            self._generation += 1
            self._cond.notify_all()

    def clear(self) -> None:
        """Discard credentials after a deliberate sign-out (no callback)."""
        with self._cond:
            self._tokens = None
            self._state = CoordinatorState.LOGGED_OUT
            self._logged_out_notified = True
            self._generation += 1
            self._outcome = AuthenticationRequired()
            self._cond.notify_all()

    # ------------------------------------------------------------------ #
    # Recovery
    # ------------------------------------------------------------------ #

    def recover(self, failed_access_token: str | None) -> str:
        """
        Return an access token to replay a request that failed with it.

        :param failed_access_token: The token the failed request carried.
        :returns: A newer access token.
        :raises AuthenticationRequired: Logged out, or the refresh was rejected.
        :raises TransientAuthError: The refresh failed for a retryable reason.
        :raises RefreshTimeout: The in-flight refresh did not finish in time.
        """
        with self._cond:
            if self._state is CoordinatorState.LOGGED_OUT or self._tokens is None:
                raise AuthenticationRequired()

            if self._state is CoordinatorState.REFRESHING:
                return self._wait_for_refresh()

            if failed_access_token != self._tokens.access_token:
                # A refresh already completed after this request was sent
                return self._tokens.access_token

            self._state = CoordinatorState.REFRESHING
            refresh_token = self._tokens.refresh_token

        # Leader: the network call happens outside the lock
        try:
            tokens = self._refresher(refresh_token)
        except RefreshRejected as exc:
            self._resolve_logged_out(exc)
            raise AuthenticationRequired(status=exc.status, code=exc.code) from exc
        except TransientAuthError as exc:
            self._resolve_transient(exc)
            raise
        except Exception as exc:
            error = TransientAuthError(f"Token refresh failed: {exc}")
            self._resolve_transient(error)
            raise error from exc

        with self._cond:
            if self._state is not CoordinatorState.REFRESHING:
                # Credentials were replaced or discarded while the refresh was in flight
                if self._tokens is None:
                    raise AuthenticationRequired()
                return self._tokens.access_token
            self._tokens = tokens
            self._state = CoordinatorState.IDLE
            self._outcome = None
            self._generation += 1
            self._cond.notify_all()
        return tokens.access_token

    def _wait_for_refresh(self) -> str:
        """Block (lock held) until the in-flight refresh resolves."""
        generation = self._generation
        resolved = self._cond.wait_for(lambda: self._generation != generation, self.wait_timeout)
        if not resolved:
            raise RefreshTimeout()
        if self._outcome is not None:
            if isinstance(self._outcome, AuthenticationRequired):
                raise AuthenticationRequired(status=self._outcome.status, code=self._outcome.code)
            raise TransientAuthError(
                str(self._outcome), status=self._outcome.status, code=self._outcome.code
            )
        assert self._tokens is not None
        return self._tokens.access_token

    def _resolve_logged_out(self, exc: RefreshRejected) -> None:
        with self._cond:
            if self._state is not CoordinatorState.REFRESHING:
                return
            self._tokens = None
            self._state = CoordinatorState.LOGGED_OUT
            self._outcome = AuthenticationRequired(status=exc.status, code=exc.code)
            self._generation += 1
            notify = not self._logged_out_notified
            self._logged_out_notified = True
            self._cond.notify_all()
        log.info("Refresh rejected (%s); credentials discarded", exc.code or exc.status)
        if notify and self._on_logged_out is not None:
            self._on_logged_out()

    def _resolve_transient(self, exc: TransientAuthError) -> None:
        with self._cond:
            if self._state is not CoordinatorState.REFRESHING:
                return
            self._state = CoordinatorState.IDLE
            self._outcome = exc
            self._generation += 1
            self._cond.notify_all()
        log.warning("Token refresh failed transiently: %s", exc)
