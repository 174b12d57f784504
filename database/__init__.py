"""Database session/engine bootstrap for AdWatch."""

import os

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from database.models import Ad, Alert, Base, Competitor, ScrapeJob  # noqa: F401

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "sqlite+aiosqlite:///adwatch.db",
)


def make_engine(url: str = DATABASE_URL) -> AsyncEngine:
    connect_args = {"timeout": 30} if url.startswith("sqlite") else {}
    return create_async_engine(url, echo=False, connect_args=connect_args)


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = make_engine()
async_session = make_session_factory(engine)


async def init_db(bind: AsyncEngine | None = None):
    """Create tables (SQLite: WAL pragmas first)."""
    bind = bind or engine
    async with bind.begin() as conn:
        if bind.dialect.name == "sqlite":
            await conn.exec_driver_sql("PRAGMA journal_mode=WAL")
            await conn.exec_driver_sql("PRAGMA synchronous=NORMAL")
            await conn.exec_driver_sql("PRAGMA cache_size=10000")

        await conn.run_sync(Base.metadata.create_all)
