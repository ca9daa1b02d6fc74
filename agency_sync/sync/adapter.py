"""Sync adapter contract: fetch_all (batches) + map_and_upsert (per-item upserts)."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

import httpx
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import SyncSettings
from ..entities.matcher import CandidateSet, EntityMatcher, load_client_candidates
from ..schemas.sync import BatchResult, SyncContext
from ..services.integration_svc import get_config_json
from .rate_limit import RateLimiter

log = logging.getLogger(__name__)


def is_unique_violation(exc: IntegrityError) -> bool:
    """Natural-key conflicts (SQLite "UNIQUE constraint failed", Postgres "violates unique constraint")."""
    return "unique" in str(exc.orig).lower()


class SyncAdapter(ABC):
    """One (provider, resource) pair.

    Subclasses implement ``fetch_all`` (an async generator of raw batches)
    and ``upsert_item``. ``map_and_upsert`` runs every item in its own
    transaction: failures are counted and recorded, natural-key conflicts
    are dropped, and the batch always runs to the end.
    """

    provider: str = ""
    resource: str = ""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        limiter: RateLimiter,
        settings: SyncSettings,
        *,
        matcher: EntityMatcher | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.session_factory = session_factory
        self.limiter = limiter
        self.settings = settings
        self.matcher = matcher or EntityMatcher()
        self.transport = transport
        self._candidates: CandidateSet | None = None

    @property
    def name(self) -> str:
        return f"{self.provider}:{self.resource}"

    @abstractmethod
    def fetch_all(self, ctx: SyncContext) -> AsyncIterator[list[dict[str, Any]]]:
        """Yield batches of raw records; zero batches when nothing is configured."""

    @abstractmethod
    async def upsert_item(self, db: AsyncSession, item: dict[str, Any], ctx: SyncContext) -> bool:
        """Normalize, resolve and upsert one record. Return False when skipped."""

    def item_label(self, item: dict[str, Any], index: int) -> str:
        for key in ("name", "Name", "id", "ID"):
            value = item.get(key) if isinstance(item, dict) else None
            if value:
                return str(value)
        return f"item {index + 1}"

    async def load_config(self) -> dict[str, Any]:
        """Provider config_json stored on IntegrationConfig."""
        async with self.session_factory() as db:
            return await get_config_json(db, self.provider)

    async def client_candidates(self, db: AsyncSession) -> CandidateSet:
        """Client candidate set for the matcher, cached for the current batch."""
        if self._candidates is None:
            self._candidates = await load_client_candidates(db, self.provider)
        return self._candidates

    def reset_batch_state(self) -> None:
        self._candidates = None

    async def map_and_upsert(self, batch: list[dict[str, Any]], ctx: SyncContext) -> BatchResult:
        result = BatchResult()
        self.reset_batch_state()
        async with self.session_factory() as db:
            for index, item in enumerate(batch):
                label = self.item_label(item, index)
                try:
                    written = await self.upsert_item(db, item, ctx)
                    await db.commit()
                except IntegrityError as exc:
                    await db.rollback()
                    self.reset_batch_state()
                    if is_unique_violation(exc):
                        log.info("[%s] %s superseded by existing record: %s", self.name, label, exc.orig)
                        continue
                    result.failed += 1
                    result.errors.append(f"{label}: {exc.orig}")
                    log.warning("[%s] failed to sync %s: %s", self.name, label, exc.orig)
                    continue
                except Exception as exc:
                    await db.rollback()
                    self.reset_batch_state()
                    result.failed += 1
                    result.errors.append(f"{label}: {exc}")
                    log.warning("[%s] failed to sync %s: %s", self.name, label, exc)
                    continue
                if written:
                    result.synced += 1
        return result
