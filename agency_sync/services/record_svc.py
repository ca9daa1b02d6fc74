"""Upsert-by-natural-key helpers for dependent records.

No commit is performed here; the adapter commits once per item.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.communication import CommunicationLog, MeetingAttendee, MeetingLog
from ..models.financial import FinancialRecord
from ..models.package import Package
from ..models.work import Deliverable, DeliverableAssignment, TimeEntry

M = TypeVar("M")


async def upsert_by_key(
    db: AsyncSession,
    model: type[M],
    key: dict[str, Any],
    values: dict[str, Any] | None = None,
) -> tuple[M, bool]:
    """Select by natural key, then update or insert. Returns (obj, created)."""
    stmt = select(model)
    for name, value in key.items():
        column = getattr(model, name)
        stmt = stmt.where(column.is_(None) if value is None else column == value)
    existing = (await db.execute(stmt)).scalar_one_or_none()

    values = values or {}
    if existing is not None:
        for name, value in values.items():
            setattr(existing, name, value)
        return existing, False

    obj = model(**key, **values)
    db.add(obj)
    await db.flush()
    return obj, True


async def upsert_financial_record(
    db: AsyncSession,
    *,
    client_id: uuid.UUID,
    month: str,
    type: str,
    category: str | None,
    amount: float,
    source: str,
    external_id: str | None = None,
    description: str | None = None,
    hours: float | None = None,
) -> tuple[FinancialRecord, bool]:
    values: dict[str, Any] = {
        "amount": amount,
        "source": source,
        "external_id": external_id,
        "description": description,
    }
    if hours is not None:
        values["hours"] = hours
    return await upsert_by_key(
        db,
        FinancialRecord,
        {"client_id": client_id, "month": month, "type": type, "category": category or "general"},
        values,
    )


async def upsert_time_entry(
    db: AsyncSession,
    *,
    monday_item_id: str,
    team_member_id: uuid.UUID | None,
    entry_date: date,
    client_id: uuid.UUID | None,
    hours: float | None,
    monday_board_id: str | None = None,
    description: str | None = None,
    is_overhead: bool = False,
) -> tuple[TimeEntry, bool]:
    return await upsert_by_key(
        db,
        TimeEntry,
        {"monday_item_id": monday_item_id, "team_member_id": team_member_id, "date": entry_date},
        {
            "client_id": client_id,
            "hours": hours,
            "is_incomplete": not hours,
            "is_overhead": is_overhead,
            "monday_board_id": monday_board_id,
            "description": description,
        },
    )


async def upsert_deliverable(
    db: AsyncSession, *, monday_item_id: str, values: dict[str, Any]
) -> tuple[Deliverable, bool]:
    return await upsert_by_key(db, Deliverable, {"monday_item_id": monday_item_id}, values)


async def ensure_deliverable_assignment(
    db: AsyncSession, *, deliverable_id: uuid.UUID, team_member_id: uuid.UUID, role: str
) -> tuple[DeliverableAssignment, bool]:
    return await upsert_by_key(
        db,
        DeliverableAssignment,
        {"deliverable_id": deliverable_id, "team_member_id": team_member_id, "role": role},
    )


async def upsert_communication(
    db: AsyncSession,
    *,
    source: str,
    external_id: str,
    client_id: uuid.UUID,
    type: str,
    date: datetime,
    subject: str | None,
    summary: str | None,
) -> tuple[CommunicationLog, bool]:
    return await upsert_by_key(
        db,
        CommunicationLog,
        {"source": source, "external_id": external_id},
        {
            "client_id": client_id,
            "type": type,
            "date": date,
            "subject": subject[:200] if subject else None,
            "summary": summary[:500] if summary else None,
        },
    )


async def upsert_meeting(
    db: AsyncSession,
    *,
    external_id: str,
    client_id: uuid.UUID | None,
    title: str,
    date: datetime,
    duration: int | None,
    summary: str | None = None,
    attendees: list[tuple[str, str | None]] | None = None,
) -> tuple[MeetingLog, bool]:
    meeting, created = await upsert_by_key(
        db,
        MeetingLog,
        {"external_id": external_id},
        {"client_id": client_id, "title": title, "date": date, "duration": duration, "summary": summary},
    )
    for email, name in attendees or []:
        await upsert_by_key(
            db, MeetingAttendee, {"meeting_id": meeting.id, "email": email.lower()}, {"name": name}
        )
    return meeting, created


async def upsert_package(db: AsyncSession, *, name: str, values: dict[str, Any]) -> tuple[Package, bool]:
    return await upsert_by_key(db, Package, {"name": name}, values)
