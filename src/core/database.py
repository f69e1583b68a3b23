from contextlib import asynccontextmanager
from typing import AsyncIterator

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from src.config import get_settings
from src.core.lifespan import manager


class Base(DeclarativeBase):
    """Declarative base shared by users, rides and weekly_stats."""

    pass


settings = get_settings()


def engine_options() -> dict:
    """Keyword arguments for ``create_async_engine``.

    SQLite (tests, local dev) pools don't accept sizing arguments.
    """
    options = {"pool_pre_ping": True}
    if not settings.is_sqlite:
        options.update(pool_size=10, max_overflow=20)
    return options


@manager.add
@asynccontextmanager
async def database_lifespan() -> AsyncIterator[dict]:
    """
    Open the engine at startup and dispose of it at shutdown.
    The session maker is handed to request handlers via ``request.state``.
    """
    engine: AsyncEngine = create_async_engine(settings.DATABASE_URL, **engine_options())
    session_maker = async_sessionmaker(engine, expire_on_commit=False)

    logger.info(
        "Database engine started",
        dialect=engine.dialect.name,
        pool=type(engine.pool).__name__,
    )

    yield {"session_maker": session_maker}

    await engine.dispose()
    logger.info("Database engine disposed")
