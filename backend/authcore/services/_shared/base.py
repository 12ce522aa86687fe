# authcore/services/_shared/base.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from authcore.core import errors as api_errors
from authcore.services._shared.errors import (
    AccountDisabled,
    AccountLocked,
    AuthError,
    AuthorizationError,
    ConflictError,
    InvalidCredential,
    NotFoundError,
    ServiceError,
    StoreUnavailable,
)
from authcore.uow.sqlalchemy_uow import (
    SQLAlchemyReadOnlyUnitOfWork,
    SQLAlchemyUnitOfWork,
)

#: The same detail is shown for every sign-in failure so callers learn nothing
#: about which check rejected them.
SIGN_IN_FAILED = "Sign-in failed"


@dataclass(slots=True)
class ServiceContext:
    """
    Carry cross-cutting request-scoped data (caller, session, request ids).

    :param principal_key: Authenticated principal key (``"<kind>:<id>"``).
    :param session_id: Session of the presented access token.
    :param request_id: Correlation id for logging/tracing.
    """

    principal_key: str | None = None
    session_id: str | None = None
    request_id: str | None = None


class BaseService:
    """
    Base class for application services.

    Responsibilities
    ----------------
    * Provide helpers to run read-only and read-write units of work.
    * Centralize error translation to API errors.
    * Provide a single clock (``now_utc``) so tests can freeze time.

    Notes
    -----
    - Services must never touch the global session; always use a Unit of Work.
    """

    DEFAULT_READ_ISOLATION = "READ COMMITTED"

    def __init__(self, *, ctx: ServiceContext | None = None) -> None:
        """
        Initialize the base service.

        :param ctx: Optional request-scoped context.
        :type ctx: ServiceContext | None
        """
        self.ctx = ctx or ServiceContext()

    # -------------------------- UoW helpers ---------------------------------

    def rw_uow(self) -> SQLAlchemyUnitOfWork:
        """
        Create a read-write Unit of Work.

        :returns: Read-write UoW instance.
        :rtype: SQLAlchemyUnitOfWork
        """
        return SQLAlchemyUnitOfWork()

    def ro_uow(
        self, *, isolation: str | None = None, enforce_db_readonly: bool = True
    ) -> SQLAlchemyReadOnlyUnitOfWork:
        """
        Create a read-only Unit of Work.

        :param isolation: Transaction isolation level (e.g. "READ COMMITTED").
        :type isolation: str | None
        :param enforce_db_readonly: Apply ``SET TRANSACTION READ ONLY`` when supported.
        :type enforce_db_readonly: bool
        :returns: Read-only UoW instance.
        :rtype: SQLAlchemyReadOnlyUnitOfWork
        """
        return SQLAlchemyReadOnlyUnitOfWork(
            isolation_level=isolation or self.DEFAULT_READ_ISOLATION,
            enforce_db_readonly=enforce_db_readonly,
        )

    @staticmethod
    def now_utc() -> datetime:
        return datetime.now(UTC)

    # -------------------------- Error handling ------------------------------

    def translate_exceptions(self, exc: Exception) -> Exception:
        """
        Map domain/service-level errors to API-level (HTTP) errors.

        :param exc: Exception raised within the service.
        :type exc: Exception
        :returns: Translated exception ready to be re-raised.
        :rtype: Exception
        """
        if isinstance(exc, InvalidCredential):
            return api_errors.Unauthorized(SIGN_IN_FAILED, code=exc.code)

        if isinstance(exc, AccountLocked):
            # → 423 Locked
            return api_errors.Locked(SIGN_IN_FAILED, code=exc.code)

        if isinstance(exc, AccountDisabled):
            return api_errors.Forbidden(SIGN_IN_FAILED, code=exc.code)

        if isinstance(exc, AuthError):
            # Token and session failures: the client must sign in again
            return api_errors.Unauthorized(str(exc), code=exc.code)

        if isinstance(exc, AuthorizationError):
            return api_errors.Forbidden(str(exc))

        if isinstance(exc, StoreUnavailable):
            return api_errors.ServiceUnavailable()

        if isinstance(exc, NotFoundError):
            return api_errors.NotFound(str(exc))

        if isinstance(exc, ConflictError):
            return api_errors.Conflict(str(exc))

        # Any other ServiceError subclass → 400 Bad Request
        if isinstance(exc, ServiceError):
            return api_errors.APIError(
                message=str(exc),
                status_code=400,
                code="bad_request",
            )

        # Fallback: return untouched (will bubble up to Flask handler)
        return exc
