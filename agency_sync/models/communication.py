"""Communication logs (Slack, Gmail) and meeting logs (Calendar)."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin, client_fk


class CommunicationLog(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "communication_log"
    __table_args__ = (
        UniqueConstraint("source", "external_id", name="uq_communication_source_external"),
    )

    client_id: Mapped[uuid.UUID] = client_fk()
    type: Mapped[str] = mapped_column(String(20))  # slack, email
    subject: Mapped[str | None] = mapped_column(String(200), default=None)
    summary: Mapped[str | None] = mapped_column(Text, default=None)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    source: Mapped[str] = mapped_column(String(50))
    external_id: Mapped[str] = mapped_column(String(200))


class MeetingLog(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "meeting_log"

    client_id: Mapped[uuid.UUID | None] = client_fk(nullable=True)
    title: Mapped[str] = mapped_column(String(500))
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    duration: Mapped[int | None] = mapped_column(Integer, default=None)  # minutes
    summary: Mapped[str | None] = mapped_column(Text, default=None)
    external_id: Mapped[str] = mapped_column(String(200), unique=True)


class MeetingAttendee(UUIDMixin, Base):
    __tablename__ = "meeting_attendee"
    __table_args__ = (
        UniqueConstraint("meeting_id", "email", name="uq_meeting_attendee_email"),
    )

    meeting_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("meeting_log.id", ondelete="CASCADE"), index=True
    )
    email: Mapped[str] = mapped_column(String(255))
    name: Mapped[str | None] = mapped_column(String(255), default=None)
