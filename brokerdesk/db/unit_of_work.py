"""Unit of Work for cross-entity mutations.

Every lead/load transition, booking attribution and keyword add runs inside
one UnitOfWork so that the conditional updates it issues are committed
together or not at all.
"""

import logging
import zlib
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class UnitOfWork:
    """
    Transaction scope over an AsyncSession.

    Usage:
        async with UnitOfWork(db) as uow:
            await crud_lead.transition_lead(uow.session, ...)
            await crud_load.transition_load(uow.session, ...)

    The context manager:
    - commits on clean exit
    - rolls back on any exception (domain errors included) and re-raises
    """

    def __init__(self, session: AsyncSession):
        self._session: AsyncSession = session
        self._committed: bool = False

    @property
    def session(self) -> AsyncSession:
        return self._session

    async def commit(self) -> None:
        if self._committed:
            return
        await self._session.commit()
        self._committed = True
        logger.debug("UnitOfWork committed")

    async def rollback(self) -> None:
        await self._session.rollback()
        logger.debug("UnitOfWork rolled back")

    async def lock(self, key: str) -> None:
        """
        Serialize concurrent units of work on `key` until this one ends.

        Uses a transaction-scoped advisory lock on PostgreSQL. Other backends
        (SQLite in tests) serialize writers on their own.
        """
        bind = self._session.get_bind()
        if bind.dialect.name != "postgresql":
            return
        lock_id = zlib.crc32(key.encode("utf-8"))
        await self._session.execute(
            text("SELECT pg_advisory_xact_lock(:lock_id)"), {"lock_id": lock_id}
        )

    async def __aenter__(self) -> "UnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> Optional[bool]:
        if exc_type is not None:
            await self.rollback()
            logger.debug("UnitOfWork rolled back due to: %s", exc_type.__name__)
        elif not self._committed:
            await self.commit()
        return None
