"""Repository package exposing persistence-layer access for domain models."""

from __future__ import annotations

from authcore.repositories.base import BaseRepository, apply_sorting, parse_sort_tokens
from authcore.repositories.principal import LockoutState, PrincipalRepository

__all__ = [
    "BaseRepository",
    "apply_sorting",
    "parse_sort_tokens",
    "LockoutState",
    "PrincipalRepository",
]
