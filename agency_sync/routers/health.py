"""Liveness and readiness probes."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..deps import get_sync_engine
from ..integrations.registry import list_adapters
from ..sync.engine import SyncEngine

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    await db.execute(text("SELECT 1"))
    return {"status": "healthy", "service": "agency-sync"}


@router.get("/ready")
async def readiness(
    db: AsyncSession = Depends(get_db),
    sync_engine: SyncEngine = Depends(get_sync_engine),
):
    """Database reachable, plus what the sync engine is doing right now."""
    await db.execute(text("SELECT 1"))
    return {
        "status": "ready",
        "adapters": len(list_adapters()),
        "running_imports": sorted(str(i) for i in sync_engine.active_import_ids),
    }
