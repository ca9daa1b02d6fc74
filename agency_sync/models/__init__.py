"""Canonical store models - re-exports all models and Base.metadata."""

from .base import Base, UUIDMixin, TimestampMixin, SourceMixin
from .client import Client, ClientAlias, Division, EXTERNAL_KEY_FIELDS
from .team import TeamMember, ClientAssignment
from .financial import FinancialRecord
from .work import TimeEntry, Deliverable, DeliverableAssignment
from .communication import CommunicationLog, MeetingLog, MeetingAttendee
from .package import Package
from .data_import import DataImport, IntegrationConfig

__all__ = [
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    "SourceMixin",
    "Client",
    "ClientAlias",
    "Division",
    "EXTERNAL_KEY_FIELDS",
    "TeamMember",
    "ClientAssignment",
    "FinancialRecord",
    "TimeEntry",
    "Deliverable",
    "DeliverableAssignment",
    "CommunicationLog",
    "MeetingLog",
    "MeetingAttendee",
    "Package",
    "DataImport",
    "IntegrationConfig",
]
