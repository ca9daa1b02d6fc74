"""Canonical client, alias and division models."""

from __future__ import annotations

import uuid
from datetime import date

from sqlalchemy import Date, Float, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, UUIDMixin, TimestampMixin, client_fk

CLIENT_STATUSES = ("prospect", "active", "churned")

# Per-source external keys; each is unique-or-null.
EXTERNAL_KEY_FIELDS = {
    "monday": "monday_item_id",
    "hubspot": "hubspot_deal_id",
    "hubspot_company": "hubspot_company_id",
    "xero": "xero_contact_id",
}


class Client(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "client"

    name: Mapped[str] = mapped_column(String(255), index=True)
    status: Mapped[str] = mapped_column(String(20), default="active")
    industry: Mapped[str | None] = mapped_column(String(100), default=None)
    website: Mapped[str | None] = mapped_column(String(255), default=None)
    retainer_value: Mapped[float | None] = mapped_column(Float, default=None)
    deal_stage: Mapped[str | None] = mapped_column(String(100), default=None)
    notes: Mapped[str | None] = mapped_column(Text, default=None)
    source: Mapped[str | None] = mapped_column(String(50), default=None)
    start_date: Mapped[date | None] = mapped_column(Date, default=None)
    end_date: Mapped[date | None] = mapped_column(Date, default=None)
    sheets_row_index: Mapped[int | None] = mapped_column(Integer, default=None)

    hubspot_deal_id: Mapped[str | None] = mapped_column(String(100), unique=True, default=None)
    hubspot_company_id: Mapped[str | None] = mapped_column(String(100), unique=True, default=None)
    monday_item_id: Mapped[str | None] = mapped_column(String(100), unique=True, default=None)
    xero_contact_id: Mapped[str | None] = mapped_column(String(100), unique=True, default=None)

    aliases: Mapped[list["ClientAlias"]] = relationship(
        back_populates="client", cascade="all, delete-orphan", passive_deletes=True
    )
    divisions: Mapped[list["Division"]] = relationship(
        back_populates="client", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Client {self.name!r} ({self.status})>"


class ClientAlias(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "client_alias"
    __table_args__ = (
        UniqueConstraint("alias", "source", name="uq_alias_source"),
    )

    client_id: Mapped[uuid.UUID] = client_fk()
    alias: Mapped[str] = mapped_column(String(255))
    source: Mapped[str] = mapped_column(String(50))
    external_id: Mapped[str | None] = mapped_column(String(200), default=None)

    client: Mapped[Client] = relationship(back_populates="aliases")

    def __repr__(self) -> str:
        return f"<ClientAlias {self.alias!r} [{self.source}]>"


class Division(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "division"
    __table_args__ = (
        UniqueConstraint("client_id", "name", name="uq_division_client_name"),
    )

    client_id: Mapped[uuid.UUID] = client_fk()
    name: Mapped[str] = mapped_column(String(100))

    client: Mapped[Client] = relationship(back_populates="divisions")
