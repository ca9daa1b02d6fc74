"""Test cross-source suggestions and manual confirmation."""

from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import select

from agency_sync.entities.merge import MergeError
from agency_sync.entities.suggestions import (
    confirm_client_match,
    confirm_team_member_match,
    find_client_suggestions,
    find_team_member_suggestions,
    similarity_score,
)
from agency_sync.models.client import Client, ClientAlias
from agency_sync.models.team import ClientAssignment, TeamMember
from agency_sync.models.work import TimeEntry


def test_similarity_score():
    assert similarity_score("", "Acme") == 0.0
    assert similarity_score("Acme Co", "ACME Pty Ltd") == 1.0
    assert similarity_score("Acme", "Acme Studios") == 0.95
    assert 0.0 < similarity_score("Bloom", "Blume") < 0.95
    assert similarity_score("ana editor", "Ana  Editor", kind="person") == 1.0


@pytest.mark.asyncio
async def test_client_suggestions_cross_source_only(db, make_client):
    await make_client("Acme Co", source="monday")
    await make_client("Acme Pty Ltd", source="hubspot")
    await make_client("Acme Studios", source="monday")
    bloom = await make_client("Bloom Florist", source="xero")
    await make_client("Bloom Florist", source="sheets")
    await make_client("Zebra Labs", source="xero")
    db.add(ClientAlias(client_id=bloom.id, alias="Bloom Florist", source="sheets"))
    await db.commit()

    suggestions = await find_client_suggestions(db, threshold=0.8)

    found = {
        (frozenset((s.client_a_name, s.client_b_name)), s.confidence, s.status) for s in suggestions
    }
    assert found == {
        (frozenset(("Acme Co", "Acme Pty Ltd")), 100, "confirmed"),
        (frozenset(("Acme Pty Ltd", "Acme Studios")), 95, "pending"),
    }
    assert suggestions[0].confidence == 100


@pytest.mark.asyncio
async def test_team_member_suggestions(db):
    db.add_all([
        TeamMember(name="Ana Editor", email="ana@agency.com", source="sheets"),
        TeamMember(name="Ana", email="ANA@agency.com", source="slack"),
        TeamMember(name="Zoe Park", source="sheets"),
        TeamMember(name="zoe  park", source="monday"),
    ])
    await db.commit()

    suggestions = await find_team_member_suggestions(db, threshold=0.8)

    found = {(frozenset((s.member_a_name, s.member_b_name)), s.match_type, s.status) for s in suggestions}
    assert found == {
        (frozenset(("Ana Editor", "Ana")), "email", "confirmed"),
        (frozenset(("Zoe Park", "zoe  park")), "name", "pending"),
    }
    assert all(s.confidence == 100 for s in suggestions)


@pytest.mark.asyncio
async def test_confirm_client_match_carries_aliases(db, session_factory, make_client):
    keep = await make_client("Acme Co", source="monday", monday_item_id="m-1")
    merge = await make_client("Acme Pty Ltd", source="xero", xero_contact_id="x-1")
    db.add(ClientAlias(client_id=merge.id, alias="ACME PTY LIMITED", source="xero"))
    await db.commit()
    keep_id, merge_id = keep.id, merge.id

    outcome = await confirm_client_match(db, keep_id, merge_id)

    assert outcome.strategy == "manual"
    assert outcome.backfilled == ["xero_contact_id"]
    async with session_factory() as s:
        assert await s.get(Client, merge_id) is None
        kept = await s.get(Client, keep_id)
        aliases = {(a.alias, a.source) for a in (await s.execute(select(ClientAlias))).scalars()}
        owners = set((await s.execute(select(ClientAlias.client_id))).scalars())
    assert kept.xero_contact_id == "x-1"
    assert aliases == {("ACME PTY LIMITED", "xero"), ("Acme Pty Ltd", "xero")}
    assert owners == {keep_id}


@pytest.mark.asyncio
async def test_confirm_team_member_match(db, session_factory, make_client):
    acme = await make_client("Acme Co")
    keep = TeamMember(name="Ana Editor", source="sheets", annual_salary=85000)
    merge = TeamMember(name="Ana", source="slack", email="ana@agency.com", slack_user_id="U1")
    db.add_all([keep, merge])
    await db.flush()
    db.add_all([
        TimeEntry(client_id=acme.id, team_member_id=merge.id, monday_item_id="t-1", date=date(2024, 3, 4), hours=1),
        ClientAssignment(client_id=acme.id, team_member_id=keep.id, role="account_manager"),
        ClientAssignment(client_id=acme.id, team_member_id=merge.id, role="account_manager"),
    ])
    await db.commit()
    keep_id, merge_id = keep.id, merge.id

    backfilled = await confirm_team_member_match(db, keep_id, merge_id)

    assert sorted(backfilled) == ["email", "slack_user_id"]
    async with session_factory() as s:
        assert await s.get(TeamMember, merge_id) is None
        kept = await s.get(TeamMember, keep_id)
        entry = (await s.execute(select(TimeEntry))).scalar_one()
        assignments = (await s.execute(select(ClientAssignment))).scalars().all()
    assert (kept.email, kept.slack_user_id, kept.annual_salary) == ("ana@agency.com", "U1", 85000)
    assert entry.team_member_id == keep_id
    assert [a.team_member_id for a in assignments] == [keep_id]


@pytest.mark.asyncio
async def test_confirm_team_member_rejects_self(db):
    member = TeamMember(name="Ana Editor")
    db.add(member)
    await db.commit()

    with pytest.raises(MergeError):
        await confirm_team_member_match(db, member.id, member.id)
