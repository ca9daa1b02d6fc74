"""Financial record model, unique per (client, month, type, category)."""

from __future__ import annotations

import uuid

from sqlalchemy import Float, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin, SourceMixin, client_fk

FINANCIAL_TYPES = ("retainer", "project", "cost", "labor")


class FinancialRecord(UUIDMixin, TimestampMixin, SourceMixin, Base):
    __tablename__ = "financial_record"
    __table_args__ = (
        UniqueConstraint("client_id", "month", "type", "category", name="uq_financial_period"),
    )

    client_id: Mapped[uuid.UUID] = client_fk()
    month: Mapped[str] = mapped_column(String(7), index=True)  # YYYY-MM
    type: Mapped[str] = mapped_column(String(20))
    category: Mapped[str] = mapped_column(String(100), default="general")
    amount: Mapped[float] = mapped_column(Float, default=0.0)
    hours: Mapped[float | None] = mapped_column(Float, default=None)
    description: Mapped[str | None] = mapped_column(Text, default=None)

    def __repr__(self) -> str:
        return f"<FinancialRecord {self.month} {self.type}/{self.category} {self.amount}>"
