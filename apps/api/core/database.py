from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from apps.api.core.errors import PersistenceError

logger = logging.getLogger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]


def to_asyncpg_dsn(dsn: str) -> str:
    """Ensure the SQLAlchemy DSN uses the asyncpg driver."""

    if dsn.startswith("postgresql+asyncpg://"):
        return dsn
    if dsn.startswith("postgresql://"):
        return "postgresql+asyncpg://" + dsn[len("postgresql://") :]
    return dsn


def create_engine_and_factory(dsn: str) -> tuple[AsyncEngine, SessionFactory]:
    engine = create_async_engine(to_asyncpg_dsn(dsn), future=True)
    return engine, async_sessionmaker(engine, expire_on_commit=False)


async def ensure_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as connection:
        await connection.run_sync(SQLModel.metadata.create_all)


async def check_connection(engine: AsyncEngine) -> bool:
    async with engine.connect() as connection:
        await connection.execute(text("SELECT 1"))
    return True


@asynccontextmanager
async def transaction(session_factory: SessionFactory) -> AsyncIterator[AsyncSession]:
    """Open a session with one transaction; commit on success, roll back otherwise.

    Database failures surface as :class:`PersistenceError`; service errors raised
    inside the block propagate unchanged after the rollback.
    """

    try:
        async with session_factory() as session:
            async with session.begin():
                yield session
    except SQLAlchemyError as exc:
        logger.exception("Transaction rolled back after database error")
        raise PersistenceError("The operation could not be persisted") from exc


def ensure_datetime(value: datetime | None) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    raise TypeError("Expected datetime value from database")


def optional_datetime(value: datetime | None) -> datetime | None:
    return None if value is None else ensure_datetime(value)
