"""Canonical client lookups, creation and alias bookkeeping."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..entities.matcher import Candidate, CandidateSet, EntityMatcher
from ..models.client import Client, ClientAlias

log = logging.getLogger(__name__)


async def get_client_by_key(db: AsyncSession, field: str, value: str | None) -> Client | None:
    """Look a client up by one of its unique external keys."""
    if not value:
        return None
    stmt = select(Client).where(getattr(Client, field) == value)
    return (await db.execute(stmt)).scalar_one_or_none()


async def create_client(db: AsyncSession, *, name: str, source: str, **fields: Any) -> Client:
    client = Client(name=name.strip(), source=source, **fields)
    db.add(client)
    await db.flush()
    log.info("Created client %r from %s", client.name, source)
    return client


async def ensure_alias(
    db: AsyncSession,
    *,
    client_id: uuid.UUID,
    alias: str,
    source: str,
    external_id: str | None = None,
) -> tuple[ClientAlias | None, bool]:
    """Upsert an alias on (alias, source); re-points an existing alias to ``client_id``."""
    alias = (alias or "").strip()
    if not alias:
        return None, False
    stmt = select(ClientAlias).where(ClientAlias.alias == alias, ClientAlias.source == source)
    existing = (await db.execute(stmt)).scalar_one_or_none()
    if existing:
        existing.client_id = client_id
        if external_id:
            existing.external_id = external_id
        return existing, False

    row = ClientAlias(client_id=client_id, alias=alias, source=source, external_id=external_id)
    db.add(row)
    await db.flush()
    return row, True


def fill_missing(client: Client, values: dict[str, Any]) -> list[str]:
    """Set fields that are currently empty; never overwrite. Returns fields changed."""
    changed = []
    for name, value in values.items():
        if value in (None, ""):
            continue
        if getattr(client, name) in (None, ""):
            setattr(client, name, value)
            changed.append(name)
    return changed


async def resolve_or_create_client(
    db: AsyncSession,
    matcher: EntityMatcher,
    candidates: CandidateSet,
    *,
    name: str,
    source: str,
    key_field: str | None = None,
    key_value: str | None = None,
    display_name: str | None = None,
    create: bool = True,
    defaults: dict[str, Any] | None = None,
) -> tuple[Client | None, bool]:
    """Find the owning client by external key, then by name; optionally create it.

    A name match claims the external key when the matched client has none.
    New clients are named ``display_name`` when given.
    Returns (client, created).
    """
    if key_field and key_value:
        client = await get_client_by_key(db, key_field, key_value)
        if client:
            return client, False

    matched_id = matcher.resolve(name, candidates)
    if matched_id is not None:
        client = await db.get(Client, matched_id)
        if client is not None:
            if key_field and key_value and not getattr(client, key_field):
                setattr(client, key_field, key_value)
            return client, False

    if not create:
        return None, False

    fields = dict(defaults or {})
    if key_field and key_value:
        fields[key_field] = key_value
    client = await create_client(db, name=display_name or name, source=source, **fields)
    candidates.add(Candidate(id=client.id, name=client.name))
    return client, True
