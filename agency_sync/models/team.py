"""Team member and client assignment models."""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Float, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin, client_fk, team_member_fk


class TeamMember(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "team_member"

    name: Mapped[str] = mapped_column(String(255), index=True)
    email: Mapped[str | None] = mapped_column(String(255), unique=True, default=None)
    role: Mapped[str | None] = mapped_column(String(100), default=None)
    division: Mapped[str | None] = mapped_column(String(100), default=None)
    location: Mapped[str | None] = mapped_column(String(100), default=None)
    employment_type: Mapped[str | None] = mapped_column(String(50), default=None)
    cost_type: Mapped[str | None] = mapped_column(String(50), default=None)
    annual_salary: Mapped[float | None] = mapped_column(Float, default=None)
    hourly_rate: Mapped[float | None] = mapped_column(Float, default=None)
    weekly_hours: Mapped[float | None] = mapped_column(Float, default=None)
    monday_user_id: Mapped[str | None] = mapped_column(String(100), unique=True, default=None)
    slack_user_id: Mapped[str | None] = mapped_column(String(100), unique=True, default=None)
    source: Mapped[str | None] = mapped_column(String(50), default=None)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<TeamMember {self.name!r}>"


class ClientAssignment(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "client_assignment"
    __table_args__ = (
        UniqueConstraint("client_id", "team_member_id", "role", name="uq_assignment_client_member_role"),
    )

    client_id: Mapped[uuid.UUID] = client_fk()
    team_member_id: Mapped[uuid.UUID] = team_member_fk()
    role: Mapped[str] = mapped_column(String(50), default="account_manager")
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)
