"""Service package catalogue (sheet-driven)."""

from __future__ import annotations

from sqlalchemy import Float, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin


class Package(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "package"

    name: Mapped[str] = mapped_column(String(255), unique=True)
    tier: Mapped[str | None] = mapped_column(String(50), default=None)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    hours_included: Mapped[float | None] = mapped_column(Float, default=None)
    monthly_rate: Mapped[float | None] = mapped_column(Float, default=None)
