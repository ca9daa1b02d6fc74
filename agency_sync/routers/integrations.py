"""JSON API for per-provider integration config (board ids, column mappings, channel lists)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import PROVIDERS
from ..database import get_db
from ..schemas.integrations import IntegrationConfigRead, IntegrationConfigUpdate
from ..services.integration_svc import get_integration_config, mask_config, save_integration_config

router = APIRouter(prefix="/api/integrations", tags=["integrations"])


def _check_provider(provider: str) -> None:
    if provider not in PROVIDERS:
        raise HTTPException(status_code=404, detail=f"Unknown provider: {provider}")


@router.get("/{provider}", response_model=IntegrationConfigRead)
async def read_config(provider: str, db: AsyncSession = Depends(get_db)):
    _check_provider(provider)
    config = await get_integration_config(db, provider)
    if config is None:
        return IntegrationConfigRead(provider=provider)
    return IntegrationConfigRead(
        provider=provider,
        enabled=config.enabled,
        config=mask_config(config.config_json or {}),
        last_sync_at=config.last_sync_at,
        last_sync_status=config.last_sync_status,
    )


@router.put("/{provider}")
async def update_config(provider: str, data: IntegrationConfigUpdate, db: AsyncSession = Depends(get_db)):
    _check_provider(provider)
    config = await save_integration_config(db, provider, data.config, enabled=data.enabled)
    return {"provider": config.provider, "enabled": config.enabled}
