"""Per-provider integration config and last-sync bookkeeping."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.data_import import IntegrationConfig

SECRET_MARKERS = ("token", "secret", "key")


async def get_integration_config(db: AsyncSession, provider: str) -> IntegrationConfig | None:
    stmt = select(IntegrationConfig).where(IntegrationConfig.provider == provider)
    return (await db.execute(stmt)).scalar_one_or_none()


async def get_config_json(db: AsyncSession, provider: str) -> dict[str, Any]:
    config = await get_integration_config(db, provider)
    if config is None or not isinstance(config.config_json, dict):
        return {}
    return dict(config.config_json)


async def save_integration_config(
    db: AsyncSession, provider: str, config_json: dict[str, Any], *, enabled: bool | None = None
) -> IntegrationConfig:
    """Merge ``config_json`` over the stored top-level keys; ``enabled=None`` keeps the current flag."""
    config = await get_integration_config(db, provider)
    if config is None:
        config = IntegrationConfig(provider=provider, config_json={}, enabled=True if enabled is None else enabled)
        db.add(config)
    elif enabled is not None:
        config.enabled = enabled
    # Reassign so the JSON column sees the change.
    config.config_json = {**(config.config_json or {}), **config_json}
    await db.commit()
    await db.refresh(config)
    return config


def mask_config(config_json: dict[str, Any]) -> dict[str, Any]:
    """Hide string values whose key looks like a credential."""
    masked = dict(config_json)
    for name, value in masked.items():
        if isinstance(value, str) and any(marker in name.lower() for marker in SECRET_MARKERS):
            masked[name] = f"{value[:4]}****{value[-4:]}" if len(value) > 8 else "****"
    return masked


async def record_last_sync(db: AsyncSession, provider: str, status: str) -> IntegrationConfig:
    """Stamp last_sync_at / last_sync_status (success, partial, failed)."""
    config = await get_integration_config(db, provider)
    if config is None:
        config = IntegrationConfig(provider=provider, config_json={})
        db.add(config)
    config.last_sync_at = datetime.now(timezone.utc)
    config.last_sync_status = status
    await db.commit()
    return config
