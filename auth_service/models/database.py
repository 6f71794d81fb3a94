"""Database configuration and base models"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all database models"""

    pass


def to_async_url(db_url: str) -> str:
    """
    Convert a plain SQLite URL to its aiosqlite form

    Args:
        db_url: Database URL from settings

    Returns:
        URL usable by create_async_engine
    """
    if db_url.startswith("sqlite:///"):
        return db_url.replace("sqlite:///", "sqlite+aiosqlite:///")
    return db_url


def create_engine(db_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create the async engine

    File-backed SQLite databases get WAL mode and a busy timeout so concurrent
    requests wait on the write lock instead of failing immediately.
    """
    engine = create_async_engine(to_async_url(db_url), echo=echo, future=True)

    if "sqlite" in db_url and ":memory:" not in db_url:

        @event.listens_for(engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            """Set SQLite pragmas for better concurrency"""
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA busy_timeout=30000")  # 30 seconds
            cursor.close()

    return engine


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the async session factory"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Initialize database (create tables)"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    """Close database connections"""
    await engine.dispose()
