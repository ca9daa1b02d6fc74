"""Test the HubSpot client and deal / company adapters against a mock transport."""

from __future__ import annotations

import httpx
import pytest
from sqlalchemy import select

from agency_sync.integrations.http import ProviderAuthError
from agency_sync.integrations.hubspot import (
    HubSpotClient,
    HubSpotCompaniesAdapter,
    HubSpotDealsAdapter,
    deal_stage_to_status,
)
from agency_sync.entities.merge import DuplicateMergeResolver
from agency_sync.models.client import Client, ClientAlias
from agency_sync.models.financial import FinancialRecord
from agency_sync.sync.rate_limit import RateLimiter


def deal(deal_id, name, amount=None, stage="closedwon", closedate="2024-02-10T00:00:00Z", pipeline="default"):
    return {
        "id": deal_id,
        "properties": {
            "hs_object_id": deal_id,
            "dealname": name,
            "amount": amount,
            "dealstage": stage,
            "closedate": closedate,
            "pipeline": pipeline,
        },
    }


def paged(pages):
    """Serve ``pages`` in order, chaining them with ``paging.next.after`` tokens."""

    def handler(request):
        after = request.url.params.get("after")
        index = int(after) if after else 0
        body = {"results": pages[index]}
        if index + 1 < len(pages):
            body["paging"] = {"next": {"after": str(index + 1)}}
        return body

    return handler


def test_deal_stage_to_status():
    assert deal_stage_to_status("closedwon") == "active"
    assert deal_stage_to_status("Closed Lost") == "churned"
    assert deal_stage_to_status("appointmentscheduled") == "prospect"
    assert deal_stage_to_status(None) == "prospect"


@pytest.mark.asyncio
async def test_client_sends_bearer_and_properties(mock_transport):
    seen = []
    transport = mock_transport(lambda r: {"results": [{"id": "1"}], "paging": {"next": {"after": "abc"}}}, seen)

    async with HubSpotClient("hs-token", limiter=RateLimiter(10, 1.0), transport=transport) as hubspot:
        page = await hubspot.list_objects("deals", limit=5, properties=("dealname", "amount"))

    assert page.items == [{"id": "1"}]
    assert page.next_token == "abc"
    request = seen[0]
    assert request.headers["Authorization"] == "Bearer hs-token"
    assert request.url.path == "/crm/v3/objects/deals"
    assert request.url.params["properties"] == "dealname,amount"
    assert "after" not in request.url.params


@pytest.mark.asyncio
async def test_client_maps_auth_errors(mock_transport):
    transport = mock_transport(lambda r: httpx.Response(401, text="expired"))
    async with HubSpotClient("bad", limiter=RateLimiter(10, 1.0), transport=transport) as hubspot:
        with pytest.raises(ProviderAuthError) as exc_info:
            await hubspot.list_objects("deals")
    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_deals_sync_creates_clients_and_records(session_factory, settings, limiters, sync_engine, mock_transport):
    pages = [
        [deal("101", "Acme Co - Paid Content", amount="1500"), deal("102", "Bloom Florist", stage="qualifiedtobuy")],
        [deal("103", "Zeta Labs", amount="0")],
    ]
    adapter = HubSpotDealsAdapter(session_factory, limiters["hubspot"], settings, transport=mock_transport(paged(pages)))

    progress = await sync_engine.run(adapter)

    assert progress.status == "completed"
    assert (progress.records_found, progress.records_synced) == (3, 3)

    async with session_factory() as s:
        clients = {c.name: c for c in (await s.execute(select(Client))).scalars()}
        records = (await s.execute(select(FinancialRecord))).scalars().all()

    assert set(clients) == {"Acme Co", "Bloom Florist", "Zeta Labs"}
    assert clients["Acme Co"].hubspot_deal_id == "101"
    assert clients["Acme Co"].status == "active"
    assert clients["Acme Co"].retainer_value == 1500.0
    assert clients["Bloom Florist"].status == "prospect"
    assert len(records) == 1
    assert (records[0].month, records[0].type, records[0].amount) == ("2024-02", "retainer", 1500.0)


@pytest.mark.asyncio
async def test_deals_resync_is_idempotent(session_factory, settings, limiters, sync_engine, mock_transport):
    pages = [[deal("101", "Acme Co - Paid Content", amount="1500")]]

    for _ in range(2):
        adapter = HubSpotDealsAdapter(
            session_factory, limiters["hubspot"], settings, transport=mock_transport(paged(pages))
        )
        await sync_engine.run(adapter)

    async with session_factory() as s:
        assert len((await s.execute(select(Client))).scalars().all()) == 1
        assert len((await s.execute(select(FinancialRecord))).scalars().all()) == 1


@pytest.mark.asyncio
async def test_deal_matching_existing_client_records_alias(
    session_factory, settings, limiters, sync_engine, mock_transport, make_client
):
    acme = await make_client("Acme Co", source="monday", monday_item_id="m-1")
    pages = [[deal("101", "Acme Co - Paid Content", amount="900")]]
    adapter = HubSpotDealsAdapter(session_factory, limiters["hubspot"], settings, transport=mock_transport(paged(pages)))

    await sync_engine.run(adapter)

    async with session_factory() as s:
        clients = (await s.execute(select(Client))).scalars().all()
        alias = (await s.execute(select(ClientAlias))).scalar_one()
    assert [c.id for c in clients] == [acme.id]
    assert clients[0].hubspot_deal_id == "101"
    assert clients[0].retainer_value == 900.0
    assert (alias.alias, alias.source, alias.client_id) == ("Acme Co - Paid Content", "hubspot", acme.id)


@pytest.mark.asyncio
async def test_deals_filtered_by_pipeline(session_factory, settings, limiters, sync_engine, mock_transport):
    settings.hubspot_pipeline_id = "sales"
    pages = [[deal("1", "Kept Co", pipeline="sales"), deal("2", "Dropped Co", pipeline="other")]]
    adapter = HubSpotDealsAdapter(session_factory, limiters["hubspot"], settings, transport=mock_transport(paged(pages)))

    progress = await sync_engine.run(adapter)

    assert progress.records_found == 1
    async with session_factory() as s:
        names = [c.name for c in (await s.execute(select(Client))).scalars()]
    assert names == ["Kept Co"]


@pytest.mark.asyncio
async def test_missing_token_fails_run(session_factory, settings, limiters, sync_engine):
    settings.hubspot_token = None
    adapter = HubSpotDealsAdapter(session_factory, limiters["hubspot"], settings)

    progress = await sync_engine.run(adapter)

    assert progress.status == "failed"
    assert "No hubspot token configured" in progress.current_step


@pytest.mark.asyncio
async def test_companies_backfill_and_alias(session_factory, settings, limiters, sync_engine, mock_transport, make_client):
    acme = await make_client("Acme Co", website="acme.com")
    props = {"hs_object_id": "c-1", "name": "Acme Co", "domain": "other.com", "industry": "Retail"}
    pages = [[{"id": "c-1", "properties": props}]]
    adapter = HubSpotCompaniesAdapter(session_factory, limiters["hubspot"], settings, transport=mock_transport(paged(pages)))

    await sync_engine.run(adapter)

    async with session_factory() as s:
        row = await s.get(Client, acme.id)
        alias = (await s.execute(select(ClientAlias))).scalar_one()
    assert row.hubspot_company_id == "c-1"
    assert row.industry == "Retail"
    assert row.website == "acme.com"
    assert alias.external_id == "c-1"


@pytest.mark.asyncio
async def test_resync_after_merge_resolves_to_primary(
    session_factory, settings, limiters, sync_engine, mock_transport, make_client
):
    primary = await make_client("Acme Co (SM)", source="monday", monday_item_id="m-1")
    pages = [[
        deal("101", "Acme Co - Paid Content", amount="1000", closedate="2024-01-15T00:00:00Z"),
        deal("102", "Acme Co - Ads Management", amount="500", closedate="2024-02-15T00:00:00Z"),
    ]]

    def deals_adapter():
        return HubSpotDealsAdapter(session_factory, limiters["hubspot"], settings, transport=mock_transport(paged(pages)))

    await sync_engine.run(deals_adapter())
    async with session_factory() as s:
        aliases = {a.alias for a in (await s.execute(select(ClientAlias))).scalars()}
    assert aliases == {"Acme Co - Paid Content", "Acme Co - Ads Management"}

    report = await DuplicateMergeResolver(session_factory, settings=settings).run()
    assert [o.duplicate_name for o in report.pass1_merged] == ["Acme Co"]

    progress = await sync_engine.run(deals_adapter())
    assert progress.status == "completed"

    async with session_factory() as s:
        clients = (await s.execute(select(Client))).scalars().all()
        records = (await s.execute(select(FinancialRecord).order_by(FinancialRecord.month))).scalars().all()
        owners = {a.client_id for a in (await s.execute(select(ClientAlias))).scalars()}
    assert [(c.id, c.hubspot_deal_id) for c in clients] == [(primary.id, "101")]
    assert [(r.client_id, r.month, r.amount) for r in records] == [
        (primary.id, "2024-01", 1000.0),
        (primary.id, "2024-02", 500.0),
    ]
    assert owners == {primary.id}
