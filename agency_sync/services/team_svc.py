"""Team member resolution: source user id, then email, then name."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..entities.names import normalize_person_name
from ..models.team import TeamMember

log = logging.getLogger(__name__)

USER_ID_FIELDS = {
    "monday": "monday_user_id",
    "slack": "slack_user_id",
}


async def resolve_team_member(
    db: AsyncSession,
    *,
    source: str | None = None,
    source_user_id: str | None = None,
    email: str | None = None,
    name: str | None = None,
) -> TeamMember | None:
    field = USER_ID_FIELDS.get(source or "")
    if field and source_user_id:
        stmt = select(TeamMember).where(getattr(TeamMember, field) == str(source_user_id))
        found = (await db.execute(stmt)).scalar_one_or_none()
        if found:
            return found

    if email:
        stmt = select(TeamMember).where(func.lower(TeamMember.email) == email.strip().lower())
        found = (await db.execute(stmt)).scalar_one_or_none()
        if found:
            return found

    if name and name.strip():
        target = normalize_person_name(name)
        rows = (await db.execute(select(TeamMember).order_by(TeamMember.name, TeamMember.id))).scalars().all()
        for member in rows:
            if normalize_person_name(member.name) == target:
                return member
    return None


async def get_or_create_team_member(
    db: AsyncSession,
    *,
    source: str,
    name: str,
    source_user_id: str | None = None,
    email: str | None = None,
    values: dict[str, Any] | None = None,
) -> tuple[TeamMember, bool]:
    """Resolve a team member and fill identifiers it lacks, creating one if unmatched."""
    member = await resolve_team_member(
        db, source=source, source_user_id=source_user_id, email=email, name=name
    )
    field = USER_ID_FIELDS.get(source)
    if member:
        if field and source_user_id and not getattr(member, field):
            setattr(member, field, str(source_user_id))
        if email and not member.email:
            member.email = email.strip().lower()
        for key, value in (values or {}).items():
            if value is not None:
                setattr(member, key, value)
        return member, False

    fields: dict[str, Any] = {k: v for k, v in (values or {}).items() if v is not None}
    if field and source_user_id:
        fields[field] = str(source_user_id)
    member = TeamMember(
        name=name.strip(),
        email=email.strip().lower() if email else None,
        source=source,
        **fields,
    )
    db.add(member)
    await db.flush()
    log.info("Created team member %r from %s", member.name, source)
    return member, True
