"""Sync orchestrator - drives one adapter end-to-end and maintains its progress record."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import SyncSettings
from ..models.data_import import DataImport
from ..schemas.sync import SyncContext, SyncProgress
from ..services.integration_svc import record_last_sync
from .adapter import SyncAdapter
from .run_log import SyncRunLogger

log = logging.getLogger(__name__)

STALE_STEP = "Expired: no progress"


class SyncAlreadyRunning(Exception):
    """A run of the same adapter is already in progress."""

    def __init__(self, adapter_name: str):
        self.adapter_name = adapter_name
        super().__init__(f"Sync already running for {adapter_name}")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_progress(record: DataImport) -> SyncProgress:
    return SyncProgress(
        import_id=record.id,
        provider=record.provider,
        resource=record.resource,
        status=record.status,
        records_found=record.records_found,
        records_synced=record.records_synced,
        records_failed=record.records_failed,
        current_step=record.current_step,
        errors=list(record.error_log or []),
        started_at=record.started_at,
        completed_at=record.completed_at,
    )


async def get_progress(db: AsyncSession, import_id: uuid.UUID) -> SyncProgress | None:
    record = await db.get(DataImport, import_id)
    if record is None:
        return None
    await db.refresh(record)
    return to_progress(record)


async def list_imports(db: AsyncSession, limit: int = 20) -> list[SyncProgress]:
    stmt = select(DataImport).order_by(DataImport.started_at.desc()).limit(limit)
    return [to_progress(r) for r in (await db.execute(stmt)).scalars().all()]


async def expire_stale_runs(
    db: AsyncSession,
    stale_after_seconds: int,
    *,
    exclude: set[uuid.UUID] | None = None,
) -> int:
    """Mark "running" records older than the threshold as failed."""
    cutoff = _utcnow() - timedelta(seconds=stale_after_seconds)
    stmt = select(DataImport).where(DataImport.status == "running", DataImport.started_at < cutoff)
    expired = 0
    for record in (await db.execute(stmt)).scalars().all():
        if exclude and record.id in exclude:
            continue
        record.status = "failed"
        record.current_step = STALE_STEP
        record.completed_at = _utcnow()
        expired += 1
    if expired:
        await db.commit()
        log.warning("Expired %d stale sync run(s)", expired)
    return expired


async def running_import_id(db: AsyncSession, provider: str, resource: str) -> uuid.UUID | None:
    stmt = (
        select(DataImport.id)
        .where(DataImport.provider == provider, DataImport.resource == resource, DataImport.status == "running")
        .limit(1)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


class SyncEngine:
    """Runs adapters; at most one run per adapter at a time."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], settings: SyncSettings):
        self.session_factory = session_factory
        self.settings = settings
        self._locks: dict[str, asyncio.Lock] = {}
        self._active: dict[uuid.UUID, str] = {}
        self._tasks: dict[uuid.UUID, asyncio.Task] = {}

    @property
    def active_import_ids(self) -> set[uuid.UUID]:
        return set(self._active)

    def is_running(self, adapter_name: str) -> bool:
        lock = self._locks.get(adapter_name)
        return bool(lock and lock.locked())

    async def begin(
        self,
        adapter: SyncAdapter,
        *,
        sync_type: str = "full",
        triggered_by: str | None = None,
    ) -> SyncContext:
        """Claim the adapter and create its "running" progress record."""
        lock = self._locks.setdefault(adapter.name, asyncio.Lock())
        if lock.locked():
            raise SyncAlreadyRunning(adapter.name)
        await lock.acquire()
        try:
            async with self.session_factory() as db:
                await expire_stale_runs(
                    db, self.settings.sync_stale_after_seconds, exclude=self.active_import_ids
                )
                # Another process (CLI or API) may hold the same adapter.
                if await running_import_id(db, adapter.provider, adapter.resource) is not None:
                    raise SyncAlreadyRunning(adapter.name)
                record = DataImport(
                    provider=adapter.provider,
                    resource=adapter.resource,
                    sync_type=sync_type,
                    status="running",
                    current_step="Starting sync...",
                    error_log=[],
                    started_at=_utcnow(),
                    triggered_by=triggered_by,
                )
                db.add(record)
                await db.commit()
                import_id = record.id
        except BaseException:
            lock.release()
            raise

        self._active[import_id] = adapter.name
        return SyncContext(
            import_id=import_id,
            provider=adapter.provider,
            resource=adapter.resource,
            sync_type=sync_type,
            triggered_by=triggered_by,
        )

    async def _update(self, import_id: uuid.UUID, **values: Any) -> None:
        async with self.session_factory() as db:
            record = await db.get(DataImport, import_id)
            if record is None:
                return
            for name, value in values.items():
                setattr(record, name, value)
            await db.commit()

    async def execute(self, adapter: SyncAdapter, ctx: SyncContext) -> SyncProgress:
        """Pull batches, feed map_and_upsert, keep counters; release the adapter when done."""
        run_log = SyncRunLogger(ctx.import_id, limit=self.settings.error_log_limit)
        found = synced = failed = 0
        status = "completed"
        step = "Complete"

        try:
            run_log.info("Starting %s sync", adapter.name)
            try:
                async for batch in adapter.fetch_all(ctx):
                    found += len(batch)
                    await self._update(
                        ctx.import_id,
                        records_found=found,
                        current_step=f"Processing batch ({found} found)...",
                    )
                    result = await adapter.map_and_upsert(batch, ctx)
                    synced += result.synced
                    failed += result.failed
                    for error in result.errors:
                        run_log.error(error)
                    await self._update(
                        ctx.import_id,
                        records_synced=synced,
                        records_failed=failed,
                        current_step=f"Synced {synced}/{found}",
                        error_log=list(run_log.errors),
                    )
            except Exception as exc:
                status = "failed"
                step = str(exc) or exc.__class__.__name__
                run_log.error(f"Sync failed: {step}")

            await self._update(
                ctx.import_id,
                status=status,
                current_step=step,
                records_found=found,
                records_synced=synced,
                records_failed=failed,
                error_log=list(run_log.errors),
                completed_at=_utcnow(),
            )
            if status == "failed":
                last_status = "failed"
            else:
                last_status = "partial" if failed > 0 else "success"
            async with self.session_factory() as db:
                await record_last_sync(db, adapter.provider, last_status)
            run_log.info("Finished %s: %s (%d/%d synced, %d failed)", adapter.name, status, synced, found, failed)
        finally:
            self._active.pop(ctx.import_id, None)
            lock = self._locks.get(adapter.name)
            if lock and lock.locked():
                lock.release()

        async with self.session_factory() as db:
            progress = await get_progress(db, ctx.import_id)
        return progress

    async def run(
        self,
        adapter: SyncAdapter,
        *,
        sync_type: str = "full",
        triggered_by: str | None = None,
    ) -> SyncProgress:
        """Run a sync to completion and return its final progress."""
        ctx = await self.begin(adapter, sync_type=sync_type, triggered_by=triggered_by)
        return await self.execute(adapter, ctx)

    async def start(
        self,
        adapter: SyncAdapter,
        *,
        sync_type: str = "full",
        triggered_by: str | None = None,
    ) -> uuid.UUID:
        """Launch a sync in the background and return its import id for polling."""
        ctx = await self.begin(adapter, sync_type=sync_type, triggered_by=triggered_by)
        task = asyncio.create_task(self.execute(adapter, ctx))
        self._tasks[ctx.import_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(ctx.import_id, None))
        return ctx.import_id

    async def wait(self, import_id: uuid.UUID) -> SyncProgress | None:
        """Await a background run started with ``start``."""
        task = self._tasks.get(import_id)
        if task is not None:
            return await task
        async with self.session_factory() as db:
            return await get_progress(db, import_id)
