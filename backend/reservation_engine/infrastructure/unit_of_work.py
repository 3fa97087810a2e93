from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain.errors import RestaurantNotFoundError, StoreUnavailableError, TransientConflictError
from .repositories import (
    SqlAlchemyPolicyRepository,
    SqlAlchemyReservationRepository,
    SqlAlchemySlotOverrideRepository,
)

logger = logging.getLogger(__name__)

# serialization_failure / deadlock_detected (PostgreSQL), deadlock / lock wait timeout (MySQL)
_TRANSIENT_SQLSTATES = frozenset({"40001", "40P01"})
_TRANSIENT_MYSQL_CODES = frozenset({1213, 1205})


def is_serialization_failure(exc: DBAPIError) -> bool:
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _TRANSIENT_SQLSTATES:
        return True
    args = getattr(orig, "args", ())
    return bool(args) and isinstance(args[0], int) and args[0] in _TRANSIENT_MYSQL_CODES


class SqlAlchemyBookingStore:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.policies = SqlAlchemyPolicyRepository(session)
        self.overrides = SqlAlchemySlotOverrideRepository(session)
        self.reservations = SqlAlchemyReservationRepository(session)


class SqlAlchemyUnitOfWork:
    """
    Opens one session and transaction per ``transaction()`` block.

    Driver errors are translated at this boundary: serialization failures and
    deadlocks become ``TransientConflictError``, everything else from the
    database becomes ``StoreUnavailableError``. Domain errors raised inside
    the block roll the transaction back and propagate unchanged.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    @asynccontextmanager
    async def transaction(self, *, lock_restaurant_id: int | None = None) -> AsyncIterator[SqlAlchemyBookingStore]:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    store = SqlAlchemyBookingStore(session)
                    if lock_restaurant_id is not None and not await store.policies.lock_restaurant(lock_restaurant_id):
                        raise RestaurantNotFoundError(f"restaurant {lock_restaurant_id} not found")
                    yield store
        except DBAPIError as exc:
            if is_serialization_failure(exc):
                raise TransientConflictError() from exc
            logger.exception("database error")
            raise StoreUnavailableError("reservation store unavailable") from exc
        except SQLAlchemyError as exc:
            logger.exception("database error")
            raise StoreUnavailableError("reservation store unavailable") from exc
