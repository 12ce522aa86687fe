# comments in English; reST docstrings
"""Encoding helpers shared by the Redis adapters."""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, TypeVar, cast

from redis.exceptions import RedisError  # type: ignore[import-untyped]

from authcore.services._shared.errors import StoreUnavailable

log = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

#: Upper bound of optimistic-lock retries before giving up.
MAX_WATCH_RETRIES = 32


def b2s(value: bytes | str | None, default: str = "") -> str:
    """Decode a Redis reply (bytes or str) to ``str``."""
    if value is None:
        return default
    if isinstance(value, bytes | bytearray):
        return value.decode()
    return str(value)


def opt(value: bytes | str | None) -> str | None:
    """Decode a reply, mapping empty strings to ``None``."""
    text = b2s(value)
    return text or None


def hfield(h: dict[Any, Any], name: str) -> bytes | str | None:
    """Read a hash field whether the client decodes responses or not."""
    if name in h:
        return cast(bytes | str | None, h[name])
    return cast(bytes | str | None, h.get(name.encode()))


def to_ts(dt: datetime) -> float:
    """Serialize an aware datetime to epoch seconds (naive means UTC)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.timestamp()


def from_ts(raw: bytes | str | None) -> datetime | None:
    """Parse epoch seconds back to an aware UTC datetime."""
    text = b2s(raw)
    if not text:
        return None
    return datetime.fromtimestamp(float(text), tz=UTC)


def translate_redis_errors(fn: F) -> F:
    """Re-raise connection and command failures as :class:`StoreUnavailable`."""

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except RedisError as exc:
            log.error("Redis call %s failed: %s", fn.__qualname__, exc)
            raise StoreUnavailable() from exc

    return cast(F, wrapper)
