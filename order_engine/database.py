from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from order_engine.config import settings
from order_engine.infrastructure.db_schema import metadata


engine = create_async_engine(settings.DATABASE_URL, pool_pre_ping=True)
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(bind=engine):
    async with bind.begin() as conn:
        await conn.run_sync(metadata.create_all)
