"""Database connection and session management for elcalc.

One async engine per process serves the learning store (feedback,
calibration audit trail, catalog and stored templates). The estimation
pipeline never opens a session; only CLI commands and the learning cycle do.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from elcalc.config import DBConfig, get_config
from elcalc.db.models import Base

logger = logging.getLogger(__name__)

# Seconds before a pooled server connection is replaced
POOL_RECYCLE_SECONDS = 3600

_engine: AsyncEngine | None = None
_session_factory: sessionmaker | None = None


def display_url(url: str) -> str:
    """Connection string safe to print: the password is masked."""
    return make_url(url).render_as_string(hide_password=True)


def engine_options(db_config: DBConfig) -> dict[str, Any]:
    """Keyword arguments for ``create_async_engine``.

    SQLite takes no pool sizing; server databases get a bounded pool whose
    connections are pinged before use and recycled hourly.
    """
    options: dict[str, Any] = {"echo": db_config.echo}
    if make_url(db_config.url).get_backend_name() != "sqlite":
        options.update(
            pool_size=db_config.pool_size,
            max_overflow=db_config.pool_max_overflow,
            pool_timeout=db_config.pool_timeout,
            pool_pre_ping=True,
            pool_recycle=POOL_RECYCLE_SECONDS,
        )
    return options


def get_engine() -> AsyncEngine:
    """Get or create the process-wide async engine.

    Raises:
        KeyError: If DATABASE_URL is not configured
    """
    global _engine

    if _engine is None:
        db_config = get_config().db
        _engine = create_async_engine(db_config.url, **engine_options(db_config))
        logger.info(f"Learning store engine created for {display_url(db_config.url)}")

    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory

    if _session_factory is None:
        _session_factory = sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )

    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Unit of work over the learning store.

    Commits on success and rolls back on any exception, which is re-raised.

    Usage:
        async with get_session() as session:
            engine = LearningEngine(FeedbackRepository(session))
            await engine.collect_feedback_from_projects()
    """
    session = get_session_factory()()

    try:
        yield session
        await session.commit()
    except Exception as e:
        logger.warning(f"Rolling back learning store session: {e.__class__.__name__}")
        await session.rollback()
        raise
    finally:
        await session.close()


async def init_db(drop: bool = False) -> list[str]:
    """Create the elcalc tables, optionally dropping them first.

    Returns:
        Names of the tables in the schema, in creation order

    Raises:
        SQLAlchemyError: If table creation fails
    """
    async with get_engine().begin() as conn:
        if drop:
            logger.warning("Dropping all elcalc tables")
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    tables = [table.name for table in Base.metadata.sorted_tables]
    logger.info(f"Schema ready: {len(tables)} tables")
    return tables


async def close_db() -> None:
    """Dispose the engine; call when a command or cycle is done."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
