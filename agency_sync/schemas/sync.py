"""Sync run schemas."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel


class SyncContext(BaseModel):
    """Per-run context handed to every adapter call."""

    import_id: uuid.UUID
    provider: str
    resource: str
    sync_type: str = "full"  # full, incremental
    triggered_by: str | None = None


class BatchResult(BaseModel):
    synced: int = 0
    failed: int = 0
    errors: list[str] = []


class SyncProgress(BaseModel):
    import_id: uuid.UUID
    provider: str
    resource: str | None = None
    status: str
    records_found: int = 0
    records_synced: int = 0
    records_failed: int = 0
    current_step: str | None = None
    errors: list[str] = []
    started_at: datetime | None = None
    completed_at: datetime | None = None


class SyncStartResponse(BaseModel):
    import_id: uuid.UUID
    provider: str
    resource: str
