"""Base model classes and mixins for canonical store models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class UUIDMixin:
    """Adds a UUID primary key."""

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )


class TimestampMixin:
    """Adds created_at / updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class SourceMixin:
    """Adds source system / external id tracking columns."""

    source: Mapped[str | None] = mapped_column(String(50), default=None)
    external_id: Mapped[str | None] = mapped_column(String(200), default=None)


def client_fk(nullable: bool = False):
    """FK column to client.id, cascading on delete."""
    return mapped_column(
        Uuid,
        ForeignKey("client.id", ondelete="CASCADE"),
        index=True,
        nullable=nullable,
        default=None,
    )


def team_member_fk(nullable: bool = False):
    return mapped_column(
        Uuid,
        ForeignKey("team_member.id", ondelete="CASCADE"),
        index=True,
        nullable=nullable,
    )
