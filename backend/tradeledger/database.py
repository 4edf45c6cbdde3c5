"""Database engine, session factory, and declarative base.

All tables share a single `Base`. FastAPI routes receive a session from
`get_db()`, which commits when the request handler returns and rolls
back on any exception, so a request is one transaction and multi-row
writes (shipment + items, payment + allocations) land together or not
at all.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase

from tradeledger.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=20,
    max_overflow=10,
)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncSession:
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
