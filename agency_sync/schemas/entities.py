"""Entity resolution and merge schemas."""

from __future__ import annotations

import uuid

from pydantic import BaseModel


class ClientSuggestion(BaseModel):
    client_a_id: uuid.UUID
    client_a_name: str
    client_a_source: str | None = None
    client_b_id: uuid.UUID
    client_b_name: str
    client_b_source: str | None = None
    confidence: int  # percent
    status: str = "pending"  # pending, confirmed


class TeamMemberSuggestion(BaseModel):
    member_a_id: uuid.UUID
    member_a_name: str
    member_b_id: uuid.UUID
    member_b_name: str
    confidence: int
    match_type: str  # email, name
    status: str = "pending"


class ConfirmMatchRequest(BaseModel):
    keep_id: uuid.UUID
    merge_id: uuid.UUID


class MergeOutcome(BaseModel):
    duplicate_id: uuid.UUID
    duplicate_name: str
    primary_id: uuid.UUID
    primary_name: str
    strategy: str | None = None
    repointed: int = 0
    discarded: int = 0
    backfilled: list[str] = []


class MergeReport(BaseModel):
    dry_run: bool = False
    pass1_merged: list[MergeOutcome] = []
    pass2_merged: list[MergeOutcome] = []
    unmatched: list[str] = []

    @property
    def total_merged(self) -> int:
        return len(self.pass1_merged) + len(self.pass2_merged)
