import logging
from contextlib import asynccontextmanager
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_engine.domain.exceptions import ConflictError, PersistenceError
from order_engine.infrastructure.repositories import (
    SQLAlchemyProductRepository,
    SQLAlchemyCartRepository,
    SQLAlchemyOrderRepository
)


logger = logging.getLogger(__name__)


class UnitOfWork:
    """One transaction per `async with uow() as u:` block.

    Leaving the block without `commit()`, or with any exception, rolls back
    every statement issued through the repositories, stock decrements included.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def __call__(self):
        async with self._session_factory() as session:
            try:
                yield _UnitOfWorkImpl(session)
                # commit was not called: discard
                await session.rollback()
            except IntegrityError as e:
                await session.rollback()
                logger.warning(f"Integrity violation, transaction rolled back: {e.orig}")
                raise ConflictError(f"Conflicting write: {e.orig}") from e
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Database error, transaction rolled back: {e}")
                raise PersistenceError(f"Database error: {e}") from e
            except Exception:
                await session.rollback()
                raise


class _UnitOfWorkImpl:
    def __init__(self, session: AsyncSession):
        self._session = session
        self.products = SQLAlchemyProductRepository(session)
        self.carts = SQLAlchemyCartRepository(session)
        self.orders = SQLAlchemyOrderRepository(session)

    async def commit(self):
        await self._session.commit()

    async def rollback(self):
        await self._session.rollback()
