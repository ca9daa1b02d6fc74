"""JSON API for starting sync runs and polling their progress."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import settings
from ..database import get_db
from ..deps import get_limiters, get_session_factory, get_sync_engine
from ..integrations.registry import UnknownAdapterError, create_adapter, list_adapters
from ..schemas.sync import SyncProgress, SyncStartResponse
from ..sync.engine import SyncAlreadyRunning, SyncEngine, expire_stale_runs, get_progress, list_imports
from ..sync.rate_limit import RateLimiter

router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.get("/adapters")
async def adapters():
    return {"adapters": list_adapters()}


@router.post("/{provider}/{resource}", status_code=202, response_model=SyncStartResponse)
async def start_sync(
    provider: str,
    resource: str,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    limiters: dict[str, RateLimiter] = Depends(get_limiters),
    engine: SyncEngine = Depends(get_sync_engine),
):
    try:
        adapter = create_adapter(provider, resource, session_factory, limiters, settings)
    except UnknownAdapterError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    try:
        import_id = await engine.start(adapter, triggered_by="api")
    except SyncAlreadyRunning as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return SyncStartResponse(import_id=import_id, provider=provider, resource=resource)


@router.get("/imports", response_model=list[SyncProgress])
async def imports(
    limit: int = 20,
    db: AsyncSession = Depends(get_db),
    engine: SyncEngine = Depends(get_sync_engine),
):
    await expire_stale_runs(db, settings.sync_stale_after_seconds, exclude=engine.active_import_ids)
    return await list_imports(db, limit=limit)


@router.get("/imports/{import_id}", response_model=SyncProgress)
async def import_status(import_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    progress = await get_progress(db, import_id)
    if progress is None:
        raise HTTPException(status_code=404, detail="Import not found")
    return progress
