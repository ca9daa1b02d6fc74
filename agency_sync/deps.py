"""Process-wide runtime objects and their FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .config import settings
from .database import async_session_factory
from .sync.engine import SyncEngine
from .sync.rate_limit import RateLimiter, build_rate_limiters


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_session_factory


@lru_cache(maxsize=1)
def get_limiters() -> dict[str, RateLimiter]:
    """One limiter per provider for the life of the process."""
    return build_rate_limiters(settings)


@lru_cache(maxsize=1)
def get_sync_engine() -> SyncEngine:
    return SyncEngine(async_session_factory, settings)
