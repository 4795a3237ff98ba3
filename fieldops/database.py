"""
Document store configuration.

Every ticket and note lives in a relational table behind an async SQLAlchemy
engine. Services open their own short-lived sessions through
``async_session_maker`` so concurrent fan-out operations never share one.
"""

import logging
import time

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from fieldops.config import settings

logger = logging.getLogger(__name__)

SLOW_QUERY_THRESHOLD_MS = 500


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_size": 20,
        "max_overflow": 10,
        "pool_recycle": 3600,
        "pool_pre_ping": True,
    }


# Slow query logging
def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    conn.info["query_start_time"] = time.monotonic()


def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    start = conn.info.get("query_start_time")
    if start is None:
        return
    duration_ms = (time.monotonic() - start) * 1000
    if duration_ms >= SLOW_QUERY_THRESHOLD_MS:
        param_count = len(parameters) if parameters else 0
        truncated = statement[:200] + ("..." if len(statement) > 200 else "")
        logger.warning(
            "Slow query (%.0fms, %d params): %s", duration_ms, param_count, truncated
        )


def create_engine(url: str, **kwargs) -> AsyncEngine:
    """Create an async engine with slow query logging attached."""
    options = _engine_options(url)
    options.update(kwargs)
    new_engine = create_async_engine(url, future=True, **options)
    event.listen(new_engine.sync_engine, "before_cursor_execute", _before_cursor_execute)
    event.listen(new_engine.sync_engine, "after_cursor_execute", _after_cursor_execute)
    return new_engine


# SECURITY: Use sqlalchemy_echo property which is disabled outside development
engine = create_engine(settings.DATABASE_URL, echo=settings.sqlalchemy_echo)

# Session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


async def init_db(bind: AsyncEngine | None = None):
    """Initialize database tables."""
    # Register tables on Base.metadata
    import fieldops.models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
