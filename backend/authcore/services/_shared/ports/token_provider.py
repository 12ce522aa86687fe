from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any, Protocol


class TokenProvider(Protocol):
    """Port for minting and decoding signed access tokens."""

    def create_access_token(
        self,
        *,
        identity: str,
        additional_claims: dict[str, Any] | None = None,
        expires_delta: timedelta | None = None,
        fresh: bool = False,
    ) -> str: ...

    def decode(self, token: str) -> dict[str, Any]: ...

    def get_expires_at(self, token: str) -> datetime: ...


class StubTokenProvider(TokenProvider):
    """Deterministic token provider used in unit tests."""

    def __init__(self) -> None:
        self._seq = 0
        self._issued: dict[str, dict[str, Any]] = {}

    def create_access_token(
        self,
        *,
        identity: str,
        additional_claims: dict[str, Any] | None = None,
        expires_delta: timedelta | None = None,
        fresh: bool = False,
    ) -> str:
        self._seq += 1
        token = f"access.{identity}.{self._seq}"
        exp = datetime.now(UTC) + (expires_delta or timedelta(minutes=30))
        payload: dict[str, Any] = {
            "sub": identity,
            "type": "access",
            "fresh": fresh,
            "exp": int(exp.timestamp()),
        }
        if additional_claims:
            payload.update(additional_claims)
        self._issued[token] = payload
        return token

    def decode(self, token: str) -> dict[str, Any]:
        return self._issued[token]

    def get_expires_at(self, token: str) -> datetime:
        return datetime.fromtimestamp(int(self.decode(token)["exp"]), tz=UTC)
