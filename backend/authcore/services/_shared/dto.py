# comments in English; reST docstrings strict
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

PRINCIPAL_KINDS = ("admin", "user")


@dataclass(frozen=True, slots=True)
class PrincipalRef:
    """
    Lightweight reference to a principal shared by the token stores.

    :param kind: ``"admin"`` or ``"user"``.
    :type kind: str
    :param id: Primary key of the principal row.
    :type id: int
    """

    kind: str
    id: int

    def __post_init__(self) -> None:
        if self.kind not in PRINCIPAL_KINDS:
            raise ValueError(f"Unknown principal kind: {self.kind!r}")

    @property
    def key(self) -> str:
        """Return the store key ``"<kind>:<id>"``."""
        return f"{self.kind}:{self.id}"

    @classmethod
    def parse(cls, key: str) -> PrincipalRef:
        """
        Rebuild a reference from its ``"<kind>:<id>"`` key.

        :param key: Value produced by :attr:`key` (e.g. a JWT ``sub``).
        :returns: Parsed reference.
        :raises ValueError: If the key is malformed.
        """
        kind, sep, raw_id = str(key).partition(":")
        if not sep or not raw_id.isdigit():
            raise ValueError(f"Malformed principal key: {key!r}")
        return cls(kind=kind, id=int(raw_id))


@dataclass(frozen=True, slots=True)
class DeviceInfo:
    """
    Client device metadata recorded for a session.

    :param device_id: Client-chosen stable device identifier.
    :type device_id: str | None
    :param name: Human readable device name (e.g. "Alice's laptop").
    :type name: str | None
    :param platform: Operating system / platform label.
    :type platform: str | None
    :param browser: Browser or app label.
    :type browser: str | None
    :param user_agent: Raw ``User-Agent`` header.
    :type user_agent: str | None
    :param ip: Remote address observed at sign-in.
    :type ip: str | None
    """

    device_id: str | None = None
    name: str | None = None
    platform: str | None = None
    browser: str | None = None
    user_agent: str | None = None
    ip: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "device_id": self.device_id,
            "name": self.name,
            "platform": self.platform,
            "browser": self.browser,
            "user_agent": self.user_agent,
            "ip": self.ip,
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> DeviceInfo:
        data = data or {}
        return cls(**{k: data.get(k) or None for k in cls.__dataclass_fields__})
