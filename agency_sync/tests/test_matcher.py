"""Test name helpers, the matching strategies and candidate loading."""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from agency_sync.entities.matcher import (
    AliasMatch,
    Candidate,
    CandidateSet,
    EntityMatcher,
    ExactNameMatch,
    load_client_candidates,
)
from agency_sync.entities.names import (
    email_domain,
    extract_company_name,
    get_service_type,
    normalize_company_name,
    normalize_for_match,
    website_domain,
)
from agency_sync.models.client import ClientAlias


def make_set(*names: str, aliases: dict[str, uuid.UUID] | None = None) -> tuple[CandidateSet, dict[str, uuid.UUID]]:
    ids = {name: uuid.uuid4() for name in names}
    return CandidateSet([Candidate(id=i, name=n) for n, i in ids.items()], aliases or {}), ids


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Acme Co - Paid Content", "Acme Co"),
        ("Acme Co (Ads Management)", "Acme Co"),
        ("Bloom Florist Round 2", "Bloom Florist"),
        ("Acme Co – Content", "Acme Co"),
        ("Plain Name", "Plain Name"),
        ("", ""),
    ],
)
def test_extract_company_name(raw, expected):
    assert extract_company_name(raw) == expected


def test_get_service_type():
    assert get_service_type("Acme Co - Paid Content") == "Paid Content"
    assert get_service_type("Acme Co (SM)") == "SM"
    assert get_service_type("Acme Co") is None


def test_name_normalizers():
    assert normalize_for_match("  Smith & Sons, Co. ") == "smith and sons co"
    assert normalize_company_name("Acme Pty Ltd") == "acme"
    assert normalize_company_name("Widgets Inc.") == "widgets"


def test_domains():
    assert email_domain("Jane <jane@Acme.com.au>") == "acme.com.au"
    assert email_domain("no address") is None
    assert website_domain("https://www.acme.com/about") == "acme.com"


def test_alias_wins_over_name():
    candidates, ids = make_set("Acme Co", "Other")
    candidates.add_alias("ACME Paid", ids["Other"])

    result = EntityMatcher().match("acme paid", candidates)

    assert result.id == ids["Other"]
    assert result.strategy == "alias"


def test_exact_name_case_insensitive():
    candidates, ids = make_set("Acme Co", "Acme Co Extra")
    result = EntityMatcher().match("ACME CO", candidates)
    assert (result.id, result.strategy) == (ids["Acme Co"], "exact")


def test_containment_matches_service_suffix():
    candidates, ids = make_set("Acme Co")
    result = EntityMatcher().match("Acme Co - Paid Content", candidates)
    assert (result.id, result.strategy) == (ids["Acme Co"], "containment")


def test_containment_requires_four_characters():
    candidates, _ = make_set("Abc")
    assert EntityMatcher().resolve("Abc Holdings", candidates) is None


def test_first_word_match():
    candidates, ids = make_set("Bloomfield Dental")
    result = EntityMatcher().match("Bloomfield Orthodontics", candidates)
    assert (result.id, result.strategy) == (ids["Bloomfield Dental"], "first_word")


def test_short_first_word_never_matches():
    candidates, _ = make_set("Blue Dental")
    assert EntityMatcher().resolve("Blue Orthodontics", candidates) is None


def test_no_match_returns_none():
    candidates, _ = make_set("Acme Co")
    assert EntityMatcher().resolve("Zebra Labs", candidates) is None
    assert EntityMatcher().resolve("", candidates) is None
    assert EntityMatcher().resolve(None, candidates) is None


def test_resolution_is_deterministic_across_orders():
    first = uuid.uuid4()
    second = uuid.uuid4()
    forward = CandidateSet([Candidate(first, "Acme Labs"), Candidate(second, "Acme Studio")])
    backward = CandidateSet([Candidate(second, "Acme Studio"), Candidate(first, "Acme Labs")])

    matcher = EntityMatcher()
    assert matcher.resolve("Acme", forward) == matcher.resolve("Acme", backward) == first


def test_custom_strategy_list():
    candidates, _ = make_set("Acme Co")
    strict = EntityMatcher([AliasMatch(), ExactNameMatch()])
    assert strict.resolve("Acme Co - Paid Content", candidates) is None


@pytest.mark.asyncio
async def test_load_client_candidates(db: AsyncSession, make_client):
    acme = await make_client("Acme Co")
    await make_client("Prospect Ltd", status="prospect")
    db.add(ClientAlias(client_id=acme.id, alias="Acme Deal", source="hubspot"))
    db.add(ClientAlias(client_id=acme.id, alias="Acme Board", source="monday"))
    await db.commit()

    candidates = await load_client_candidates(db, "hubspot")
    assert sorted(c.name for c in candidates.candidates) == ["Acme Co", "Prospect Ltd"]
    assert candidates.aliases == {"acme deal": acme.id}

    without_prospects = await load_client_candidates(db, include_prospects=False)
    assert [c.name for c in without_prospects.candidates] == ["Acme Co"]
    assert without_prospects.aliases == {}
