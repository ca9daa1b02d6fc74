"""Sync run progress records and per-provider integration config."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UUIDMixin, TimestampMixin

IMPORT_STATUSES = ("running", "completed", "failed")


class DataImport(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "data_import"

    provider: Mapped[str] = mapped_column(String(50), index=True)
    resource: Mapped[str | None] = mapped_column(String(50), default=None)
    sync_type: Mapped[str] = mapped_column(String(20), default="full")  # full, incremental
    status: Mapped[str] = mapped_column(String(20), default="running", index=True)
    records_found: Mapped[int] = mapped_column(Integer, default=0)
    records_synced: Mapped[int] = mapped_column(Integer, default=0)
    records_failed: Mapped[int] = mapped_column(Integer, default=0)
    current_step: Mapped[str | None] = mapped_column(String(500), default=None)
    error_log: Mapped[list] = mapped_column(JSON, default=list)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    triggered_by: Mapped[str | None] = mapped_column(String(100), default=None)

    def __repr__(self) -> str:
        return f"<DataImport {self.provider}/{self.resource} {self.status}>"


class IntegrationConfig(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "integration_config"

    provider: Mapped[str] = mapped_column(String(50), unique=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    config_json: Mapped[dict] = mapped_column(JSON, default=dict)
    last_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    last_sync_status: Mapped[str | None] = mapped_column(String(20), default=None)  # success, partial, failed
