"""Units of work wrapping the principal repository in a transaction.

Services open a read-write unit for lockout updates and administration and a
read-only unit for lookups such as the active-principal check on rotation.
"""

from .base import SupportsCommit, UnitOfWork
from .sqlalchemy_uow import SQLAlchemyReadOnlyUnitOfWork, SQLAlchemyUnitOfWork

__all__ = [
    "SupportsCommit",
    "UnitOfWork",
    "SQLAlchemyUnitOfWork",
    "SQLAlchemyReadOnlyUnitOfWork",
]
