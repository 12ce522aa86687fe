"""Principal repository: lookups and atomic lockout-counter updates."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import NamedTuple, cast

from sqlalchemy import DateTime, and_, case, literal, null, select, update
from sqlalchemy.orm.util import identity_key

from authcore.models.base import as_utc
from authcore.models.principal import Principal, normalize_login
from authcore.repositories.base import BaseRepository


class LockoutState(NamedTuple):
    """Counter and lock read back right after an atomic update."""

    failed_attempts: int
    lock_until: datetime | None


class PrincipalRepository(BaseRepository[Principal]):
    """Persistence-only repository for :class:`Principal`.

    The lockout counters are written with single ``UPDATE`` statements whose
    ``SET`` clauses only reference the row's pre-update values, so concurrent
    failures can never lose an increment.
    """

    model = Principal

    # ---------------------------- Whitelists ----------------------------

    def _sortable_fields(self):
        return {
            "id": Principal.id,
            "kind": Principal.kind,
            "login": Principal.login,
            "created_at": Principal.created_at,
            "last_login_at": Principal.last_login_at,
        }

    def _filterable_fields(self):
        return {
            "kind": Principal.kind,
            "login": Principal.login,
            "role": Principal.role,
            "is_active": Principal.is_active,
        }

    def _updatable_fields(self):
        """Administrative fields; lockout columns are never mass-assigned."""
        return {"display_name", "role", "permissions", "is_active", "is_verified"}

    # ---------------------------- Lookup helpers ----------------------------

    def get_by_login(self, kind: str, login: str) -> Principal | None:
        """Fetch a principal by kind and (normalized) login.

        :param kind: ``"admin"`` or ``"user"``.
        :type kind: str
        :param login: Username or email as typed by the caller.
        :type login: str
        :returns: Principal instance or ``None`` when not found.
        :rtype: Principal | None
        """
        stmt = select(Principal).where(
            Principal.kind == kind,
            Principal.login == normalize_login(login),
        )
        return cast(Principal | None, self.session.execute(stmt).scalars().first())

    def exists_by_login(self, kind: str, login: str) -> bool:
        stmt = select(Principal.id).where(
            Principal.kind == kind,
            Principal.login == normalize_login(login),
        )
        return self.session.execute(stmt).first() is not None

    def lockout_state(self, principal_id: int) -> LockoutState | None:
        """Read the counter and lock straight from the table."""
        row = self.session.execute(
            select(Principal.failed_attempts, Principal.lock_until).where(
                Principal.id == principal_id
            )
        ).first()
        if row is None:
            return None
        return LockoutState(int(row.failed_attempts), as_utc(row.lock_until))

    # ---------------------------- Lockout ops ----------------------------

    def register_failure(
        self,
        principal_id: int,
        *,
        now: datetime,
        threshold: int,
        duration: timedelta,
    ) -> LockoutState | None:
        """Record one failed sign-in atomically.

        - An expired lock is cleared and the counter restarts at 1.
        - Otherwise the counter is incremented; reaching ``threshold`` while
          no lock is active sets ``lock_until = now + duration``.
        - An active lock is never extended.

        :param principal_id: Target row.
        :param now: Aware reference instant, bound as a parameter.
        :param threshold: Failures that trigger a lock.
        :param duration: Absolute lock length.
        :returns: Resulting state, or ``None`` if the row does not exist.
        """
        col_lock = Principal.lock_until
        col_count = Principal.failed_attempts
        now_p = literal(now, DateTime(timezone=True))
        lock_at = literal(now + duration, DateTime(timezone=True))

        lock_expired = and_(col_lock.is_not(None), col_lock <= now_p)
        lock_active = and_(col_lock.is_not(None), col_lock > now_p)

        stmt = (
            update(Principal)
            .where(Principal.id == principal_id)
            .values(
                failed_attempts=case((lock_expired, 1), else_=col_count + 1),
                lock_until=case(
                    (lock_expired, null()),
                    (lock_active, col_lock),
                    (col_count + 1 >= threshold, lock_at),
                    else_=null(),
                ),
            )
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        if not result.rowcount:
            return None
        self._expire_cached(principal_id)
        return self.lockout_state(principal_id)

    def clear_failures(self, principal_id: int, *, last_login_at: datetime | None = None) -> bool:
        """Reset the counter and lock; optionally stamp ``last_login_at``.

        :returns: ``True`` if the row exists.
        """
        values: dict[str, object] = {"failed_attempts": 0, "lock_until": None}
        if last_login_at is not None:
            values["last_login_at"] = last_login_at
        stmt = (
            update(Principal)
            .where(Principal.id == principal_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        self._expire_cached(principal_id)
        return bool(result.rowcount)

    def _expire_cached(self, principal_id: int) -> None:
        """Drop stale attribute values of an identity-mapped instance."""
        obj = self.session.identity_map.get(identity_key(Principal, principal_id))
        if obj is not None:
            self.session.expire(obj)
