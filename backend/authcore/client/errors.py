"""
Client-side exceptions.

These never cross the wire; they tell the embedding application what to do
next (sign in again, retry later, ...).
"""

from __future__ import annotations


class ClientError(Exception):
    """
    Base class for client errors.

    :param message: Human readable explanation.
    :param status: HTTP status of the response that caused it, if any.
    :param code: Problem ``code`` of that response, if any.
    """

    def __init__(self, message: str, *, status: int | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.code = code


class AuthenticationRequired(ClientError):
    """The client holds no usable credentials; the user must sign in again."""

    def __init__(self, message: str = "Sign-in required", **kwargs) -> None:
        super().__init__(message, **kwargs)


class SignInFailed(ClientError):
    """The server refused a sign-in attempt (wrong secret, locked, disabled)."""


class RefreshRejected(ClientError):
    """The server rejected the refresh token (unknown, expired or replayed)."""


class TransientAuthError(ClientError):
    """The refresh could not complete for a retryable reason; credentials are kept."""


class RefreshTimeout(TransientAuthError):
    """Waiting for an in-flight refresh took longer than allowed."""

    def __init__(self, message: str = "Timed out waiting for token refresh", **kwargs) -> None:
        super().__init__(message, **kwargs)
