"""Time entries, deliverables and deliverable assignments (monday boards)."""

from __future__ import annotations

import uuid
import datetime as dt

from sqlalchemy import Boolean, Date, Float, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin, client_fk, team_member_fk


class TimeEntry(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "time_entry"
    __table_args__ = (
        UniqueConstraint("monday_item_id", "team_member_id", "date", name="uq_time_entry_item_member_date"),
    )

    client_id: Mapped[uuid.UUID | None] = client_fk(nullable=True)
    team_member_id: Mapped[uuid.UUID | None] = team_member_fk(nullable=True)
    monday_item_id: Mapped[str] = mapped_column(String(100))
    monday_board_id: Mapped[str | None] = mapped_column(String(100), default=None)
    date: Mapped[dt.date] = mapped_column(Date)
    hours: Mapped[float | None] = mapped_column(Float, default=None)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    is_incomplete: Mapped[bool] = mapped_column(Boolean, default=False)
    is_overhead: Mapped[bool] = mapped_column(Boolean, default=False)


class Deliverable(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "deliverable"

    client_id: Mapped[uuid.UUID | None] = client_fk(nullable=True)
    monday_item_id: Mapped[str] = mapped_column(String(100), unique=True)
    monday_board_id: Mapped[str | None] = mapped_column(String(100), default=None)
    name: Mapped[str] = mapped_column(String(500))
    edit_code: Mapped[str | None] = mapped_column(String(20), default=None)
    status: Mapped[str | None] = mapped_column(String(100), default=None)
    due_date: Mapped[dt.date | None] = mapped_column(Date, default=None)
    completed_date: Mapped[dt.date | None] = mapped_column(Date, default=None)
    revision_count: Mapped[int] = mapped_column(Integer, default=0)


class DeliverableAssignment(UUIDMixin, Base):
    __tablename__ = "deliverable_assignment"
    __table_args__ = (
        UniqueConstraint("deliverable_id", "team_member_id", "role", name="uq_deliverable_member_role"),
    )

    deliverable_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("deliverable.id", ondelete="CASCADE"), index=True
    )
    team_member_id: Mapped[uuid.UUID] = team_member_fk()
    role: Mapped[str] = mapped_column(String(50), default="editor")
