from typing import AsyncIterator

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from ledger.core.exceptions import FatalInitError
from ledger.core.logging import app_logger


class Base(DeclarativeBase):
    pass


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine. Its connection pool lives until ``dispose()``."""
    return create_async_engine(database_url, echo=echo, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def ensure_schema(engine: AsyncEngine) -> None:
    """
    Create the transactions table if it does not exist yet.

    Raises:
        FatalInitError: the store is unreachable or rejected the DDL
    """
    # Import models so they register on Base.metadata
    from ledger import models  # noqa: F401

    app_logger.info("Connecting to the database and ensuring schema")
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except (SQLAlchemyError, OSError) as e:
        app_logger.critical(f"Database initialization failed: {e}")
        raise FatalInitError() from e

    app_logger.info("Database connected, transactions table ensured")


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Yield a session from the factory created at application startup."""
    async with request.app.state.session_factory() as session:
        yield session
