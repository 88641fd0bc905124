"""
Async SQLAlchemy database session configuration.

Provides the async engine, the session factory and the per-request
Store dependency. MySQL runs through aiomysql; SQLite through aiosqlite.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from parkflow.core.config import get_settings
from parkflow.core.logging import get_logger
from parkflow.infrastructure.db.repository import SqlStore

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """
    Get or create the async database engine.

    Uses connection pooling for MySQL and NullPool for SQLite.

    Returns:
        AsyncEngine: SQLAlchemy async engine instance.
    """
    global _engine
    if _engine is None:
        settings = get_settings()
        if settings.database_url.startswith("sqlite"):
            _engine = create_async_engine(
                settings.database_url,
                echo=settings.debug,
                poolclass=NullPool,
            )
        else:
            _engine = create_async_engine(
                settings.database_url,
                echo=settings.debug,
                pool_pre_ping=True,
                pool_recycle=3600,
            )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Get or create the async session factory.

    Returns:
        async_sessionmaker: Factory for creating async sessions.
    """
    global _session_factory
    if _session_factory is None:
        _session_factory = make_session_factory(get_engine())
    return _session_factory


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build a session factory bound to `engine`."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def get_store() -> AsyncGenerator[SqlStore, None]:
    """
    Dependency that provides a Store over a fresh session.

    Services commit explicitly; anything left uncommitted when the
    request ends is rolled back.

    Usage with FastAPI:
        @router.get("/spots")
        async def list_spots(store: Store = Depends(get_store)):
            ...

    Yields:
        SqlStore: Unit of work that auto-closes on exit.
    """
    session_factory = get_session_factory()
    async with session_factory() as session:
        try:
            yield SqlStore(session)
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db(engine: AsyncEngine | None = None) -> None:
    """
    Initialize database by creating all tables.

    Should be called during application startup.
    """
    from parkflow.infrastructure.db.models import Base

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_initialized", url=engine.url.render_as_string(hide_password=True))


async def close_db() -> None:
    """
    Close database connections.

    Should be called during application shutdown.
    """
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def create_test_engine(database_url: str) -> AsyncEngine:
    """
    Create a test engine with NullPool for isolated testing.

    Args:
        database_url: Test database connection string.

    Returns:
        AsyncEngine: Test engine instance.
    """
    return create_async_engine(
        database_url,
        echo=False,
        poolclass=NullPool,
    )
