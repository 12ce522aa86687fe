# authcore/client/http.py
"""HTTP client that attaches the access token and recovers from expiry once."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

import requests

from authcore.client.coordinator import ReauthCoordinator, Tokens
from authcore.client.errors import (
    AuthenticationRequired,
    ClientError,
    RefreshRejected,
    SignInFailed,
    TransientAuthError,
)

#: Problem codes meaning "the access token is not usable", as opposed to
#: ``forbidden`` (authenticated but not allowed).
RECOVERABLE_CODES = frozenset({"token_expired", "invalid_token", "authorization_required"})

_DEVICE_HEADERS = {
    "device_id": "X-Device-Id",
    "name": "X-Device-Name",
    "platform": "X-Device-Platform",
    "browser": "X-Device-Browser",
}


def problem_code(response: requests.Response) -> str | None:
    """Return the ``code`` of a problem+json body, or ``None``."""
    try:
        body = response.json()
    except ValueError:
        return None
    return body.get("code") if isinstance(body, dict) else None


class AuthenticatedClient:
    """
    Thin wrapper over :class:`requests.Session` for the authcore API.

    Every request carries ``Authorization: Bearer <access>``. When the server
    answers 401/403 with a recoverable code, the coordinator provides a new
    token and the request is replayed exactly once.
    """

    def __init__(
        self,
        base_url: str,
        *,
        session: requests.Session | None = None,
        coordinator: ReauthCoordinator | None = None,
        timeout: float = 10.0,
        wait_timeout: float = 10.0,
        on_logged_out: Callable[[], None] | None = None,
        device: Mapping[str, str] | None = None,
    ) -> None:
        """
        :param base_url: API root, e.g. ``https://host/api/v1``.
        :param session: Shared ``requests`` session (created when omitted).
        :param coordinator: Shared coordinator; one is built around
            :meth:`refresh_tokens` when omitted.
        :param timeout: Per-request timeout in seconds.
        :param device: Device metadata sent as ``X-Device-*`` headers.
        """
        self.base_url = base_url.rstrip("/")
        self.http = session or requests.Session()
        self.timeout = timeout
        self.coordinator = coordinator or ReauthCoordinator(
            self.refresh_tokens,
            on_logged_out=on_logged_out,
            wait_timeout=wait_timeout,
        )
        self.device_headers = {
            header: str(device[key])
            for key, header in _DEVICE_HEADERS.items()
            if device and device.get(key)
        }

    # ------------------------------------------------------------------ #
    # Generic requests
    # ------------------------------------------------------------------ #

    def request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """
        Send an authenticated request, replaying it once after a refresh.

        Non-authentication failures (including 403 ``forbidden``) are returned
        unchanged for the caller to inspect.

        :raises AuthenticationRequired: No credentials, refresh rejected, or
            the replay failed authentication again.
        :raises TransientAuthError: Refresh failed for a retryable reason.
        """
        token = self.coordinator.current_access_token()
        response = self._send(method, path, token, **kwargs)
        if not self._needs_recovery(response):
            return response

        new_token = self.coordinator.recover(token)
        response = self._send(method, path, new_token, **kwargs)
        if self._needs_recovery(response):
            raise AuthenticationRequired(status=response.status_code, code=problem_code(response))
        return response

    def _send(self, method: str, path: str, token: str | None, **kwargs: Any) -> requests.Response:
        headers = dict(self.device_headers)
        headers.update(kwargs.pop("headers", None) or {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        kwargs.setdefault("timeout", self.timeout)
        return self.http.request(method, self._url(path), headers=headers, **kwargs)

    @staticmethod
    def _needs_recovery(response: requests.Response) -> bool:
        if response.status_code not in (401, 403):
            return False
        return problem_code(response) in RECOVERABLE_CODES

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    # ------------------------------------------------------------------ #
    # Auth endpoints
    # ------------------------------------------------------------------ #

    def login(self, kind: str, login: str, secret: str) -> Tokens:
        """
        Sign in and install the returned pair in the coordinator.

        :raises SignInFailed: The server refused the attempt.
        :raises TransientAuthError: Network failure or 5xx.
        """
        try:
            response = self.http.post(
                self._url("/auth/login"),
                json={"kind": kind, "login": login, "secret": secret},
                headers=self.device_headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TransientAuthError(f"Sign-in request failed: {exc}") from exc
        if response.status_code >= 500 or response.status_code == 429:
            raise TransientAuthError(
                "Sign-in temporarily unavailable",
                status=response.status_code,
                code=problem_code(response),
            )
        if not response.ok:
            raise SignInFailed(
                "Sign-in failed", status=response.status_code, code=problem_code(response)
            )
        tokens = self._tokens_from(response)
        self.coordinator.install(tokens)
        return tokens

    def refresh_tokens(self, refresh_token: str) -> Tokens:
        """
        Exchange ``refresh_token`` for a new pair (used by the coordinator).

        :raises RefreshRejected: 4xx from the server.
        :raises TransientAuthError: Network failure, timeout or 5xx.
        """
        try:
            response = self.http.post(
                self._url("/auth/refresh"),
                json={"refresh_token": refresh_token},
                headers=self.device_headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TransientAuthError(f"Refresh request failed: {exc}") from exc
        if response.status_code >= 500 or response.status_code == 429:
            raise TransientAuthError(
                "Refresh temporarily unavailable",
                status=response.status_code,
                code=problem_code(response),
            )
        if not response.ok:
            raise RefreshRejected(
                "Refresh token rejected", status=response.status_code, code=problem_code(response)
            )
        return self._tokens_from(response)

    def logout(self) -> None:
        """
        Close the server session and drop local credentials.

        Credentials are dropped even when the call fails; the transport error
        still propagates to the caller.
        """
        tokens = self.coordinator.tokens
        try:
            if tokens is not None:
                self.http.post(
                    self._url("/auth/logout"),
                    json={"refresh_token": tokens.refresh_token},
                    timeout=self.timeout,
                )
        finally:
            self.coordinator.clear()

    def list_sessions(self) -> list[dict[str, Any]]:
        return self._data(self.request("GET", "/auth/sessions"))

    def revoke_session(self, session_id: str) -> None:
        self._check(self.request("DELETE", f"/auth/sessions/{session_id}"))

    def revoke_other_sessions(self) -> int:
        """Sign out every other device; this client's device must be set."""
        return int(self._data(self.request("POST", "/auth/sessions/revoke-all"))["revoked"])

    def me(self) -> dict[str, Any]:
        return self._data(self.request("GET", "/auth/me"))

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _check(response: requests.Response) -> requests.Response:
        if not response.ok:
            raise ClientError(
                f"Request failed with status {response.status_code}",
                status=response.status_code,
                code=problem_code(response),
            )
        return response

    def _data(self, response: requests.Response) -> Any:
        return self._check(response).json()["data"]

    @staticmethod
    def _tokens_from(response: requests.Response) -> Tokens:
        data = response.json()["data"]
        return Tokens(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            session_id=data.get("session_id"),
            expires_in=data.get("expires_in"),
        )
