# chatrooms/core/database.py
"""Database engine and session factory using SQLAlchemy async."""
import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from chatrooms.core.config import settings
from chatrooms.models.db import Base

logger = logging.getLogger(__name__)


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine. In-memory sqlite shares one connection so the schema survives."""
    kwargs = {"echo": echo, "pool_pre_ping": True}
    if url.startswith("sqlite") and ":memory:" in url:
        kwargs["poolclass"] = StaticPool
    return create_async_engine(url, **kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        expire_on_commit=False,
        class_=AsyncSession,
        autoflush=False,
    )


engine = build_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)


async def init_models(bind: AsyncEngine = engine) -> None:
    """Create tables that don't exist yet."""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("✓ Database schema ready")


async def health_check_db(bind: AsyncEngine = engine) -> bool:
    try:
        async with bind.connect() as conn:
            await conn.execute(text("SELECT 1"))
            return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False
