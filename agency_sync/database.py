"""Async engine, session factory and schema setup for the canonical store.

SQLite is the default backend. Every sync item and every merge commits on its
own, so one engine is shared by the API and background sync tasks.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from .config import settings


def build_engine(url: str, echo: bool = False, *, pooled: bool = True) -> AsyncEngine:
    """Create an engine; ``pooled=False`` for callers that run one event loop per command."""
    if pooled:
        return create_async_engine(url, echo=echo)
    return create_async_engine(url, echo=echo, poolclass=NullPool)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.database_url, echo=settings.echo_sql)
async_session_factory = build_session_factory(engine)


async def get_db():
    """FastAPI dependency that yields an async session."""
    async with async_session_factory() as session:
        yield session


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create all tables (sqlite / local dev)."""
    from .models import Base

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
