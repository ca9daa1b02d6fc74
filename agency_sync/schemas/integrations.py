"""Integration config schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class IntegrationConfigRead(BaseModel):
    provider: str
    enabled: bool = False
    config: dict[str, Any] = {}
    last_sync_at: datetime | None = None
    last_sync_status: str | None = None


class IntegrationConfigUpdate(BaseModel):
    config: dict[str, Any] = {}
    enabled: bool | None = None
