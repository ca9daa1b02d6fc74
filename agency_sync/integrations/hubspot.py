"""HubSpot CRM client and deal / company / contact sync adapters."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

from ..entities.names import extract_company_name
from ..schemas.sync import BatchResult, SyncContext
from ..services.client_svc import ensure_alias, fill_missing, resolve_or_create_client
from ..services.record_svc import upsert_financial_record
from ..sync.adapter import SyncAdapter
from ..sync.normalize import normalize, normalize_month
from ..sync.pagination import Page, paginate_after
from .http import ProviderClient

log = logging.getLogger(__name__)

DEAL_PROPERTIES = ("dealname", "amount", "dealstage", "closedate", "pipeline", "hs_object_id")
COMPANY_PROPERTIES = ("name", "domain", "industry", "hs_object_id")
CONTACT_PROPERTIES = ("firstname", "lastname", "email", "company", "hs_object_id")


class HubSpotClient(ProviderClient):
    provider = "hubspot"
    base_url = "https://api.hubapi.com"

    async def list_objects(
        self,
        object_type: str,
        *,
        after: str | None = None,
        limit: int = 100,
        properties: tuple[str, ...] = (),
    ) -> Page:
        data = await self._get(
            f"/crm/v3/objects/{object_type}",
            limit=limit,
            after=after,
            properties=",".join(properties) or None,
        )
        paging = data.get("paging") or {}
        next_after = (paging.get("next") or {}).get("after")
        return Page(items=list(data.get("results") or []), next_token=next_after)


def deal_stage_to_status(stage: str | None) -> str:
    if not stage:
        return "prospect"
    lower = stage.lower()
    if "closed" in lower and "won" in lower:
        return "active"
    if "closed" in lower and "lost" in lower:
        return "churned"
    return "prospect"


class HubSpotAdapter(SyncAdapter):
    provider = "hubspot"
    object_type = ""
    properties: tuple[str, ...] = ()

    def client(self) -> HubSpotClient:
        return HubSpotClient(
            self.settings.hubspot_token,
            limiter=self.limiter,
            base_url=self.settings.hubspot_base_url,
            timeout=self.settings.http_timeout_seconds,
            transport=self.transport,
        )

    def keep(self, item: dict[str, Any]) -> bool:
        return True

    async def fetch_all(self, ctx: SyncContext) -> AsyncIterator[list[dict[str, Any]]]:
        page_size = self.settings.page_size
        async with self.client() as hubspot:

            async def fetch_page(after: str | None) -> Page:
                return await hubspot.list_objects(
                    self.object_type, after=after, limit=page_size, properties=self.properties
                )

            async for batch in paginate_after(fetch_page, page_size, self.settings.max_pages):
                kept = [item for item in batch if self.keep(item)]
                if kept:
                    yield kept

    def item_label(self, item: dict[str, Any], index: int) -> str:
        props = item.get("properties") or {}
        return props.get("dealname") or props.get("name") or str(item.get("id") or f"item {index + 1}")


class HubSpotDealsAdapter(HubSpotAdapter):
    """Deals -> clients (new deals become prospects) + retainer financial records."""

    resource = "deals"
    object_type = "deals"
    properties = DEAL_PROPERTIES

    def keep(self, item: dict[str, Any]) -> bool:
        pipeline_id = self.settings.hubspot_pipeline_id
        if not pipeline_id:
            return True
        return (item.get("properties") or {}).get("pipeline") == pipeline_id

    async def upsert_item(self, db: AsyncSession, item: dict[str, Any], ctx: SyncContext) -> bool:
        props = item.get("properties") or {}
        deal_id = str(props.get("hs_object_id") or item.get("id") or "")
        deal_name = (props.get("dealname") or "").strip()
        if not deal_id or not deal_name:
            raise ValueError("deal has no id or name")

        stage = props.get("dealstage")
        status = deal_stage_to_status(stage)
        amount = normalize("number", props.get("amount"))
        company = extract_company_name(deal_name) or deal_name

        candidates = await self.client_candidates(db)
        client, created = await resolve_or_create_client(
            db,
            self.matcher,
            candidates,
            name=deal_name,
            display_name=company,
            source="hubspot",
            key_field="hubspot_deal_id",
            key_value=deal_id,
            defaults={"status": status, "deal_stage": stage, "retainer_value": amount},
        )
        if not created:
            if client.source == "hubspot" and client.hubspot_deal_id == deal_id:
                client.status = status
                client.deal_stage = stage or client.deal_stage
                if amount is not None:
                    client.retainer_value = amount
            else:
                fill_missing(client, {"deal_stage": stage, "retainer_value": amount})
        # Deals resolve on their full name.
        if client.name != deal_name:
            await ensure_alias(db, client_id=client.id, alias=deal_name, source="hubspot", external_id=deal_id)

        if amount and amount > 0:
            month = normalize_month(props.get("closedate")) or datetime.now(timezone.utc).strftime("%Y-%m")
            await upsert_financial_record(
                db,
                client_id=client.id,
                month=month,
                type="retainer",
                category="deal",
                amount=amount,
                source="hubspot",
                external_id=deal_id,
                description=deal_name,
            )
        return True


class HubSpotCompaniesAdapter(HubSpotAdapter):
    """Companies -> client external key, industry/website backfill and alias."""

    resource = "companies"
    object_type = "companies"
    properties = COMPANY_PROPERTIES

    async def upsert_item(self, db: AsyncSession, item: dict[str, Any], ctx: SyncContext) -> bool:
        props = item.get("properties") or {}
        company_id = str(props.get("hs_object_id") or item.get("id") or "")
        name = (props.get("name") or "").strip()
        if not company_id or not name:
            return False

        candidates = await self.client_candidates(db)
        client, created = await resolve_or_create_client(
            db,
            self.matcher,
            candidates,
            name=name,
            source="hubspot",
            key_field="hubspot_company_id",
            key_value=company_id,
            defaults={"status": "prospect", "industry": props.get("industry"), "website": props.get("domain")},
        )
        if not created:
            fill_missing(client, {"industry": props.get("industry"), "website": props.get("domain")})
        await ensure_alias(db, client_id=client.id, alias=name, source="hubspot", external_id=company_id)
        return True


class HubSpotContactsAdapter(HubSpotAdapter):
    """Contacts are counted and reported only."""

    resource = "contacts"
    object_type = "contacts"
    properties = CONTACT_PROPERTIES

    async def upsert_item(self, db: AsyncSession, item: dict[str, Any], ctx: SyncContext) -> bool:
        return True

    async def map_and_upsert(self, batch: list[dict[str, Any]], ctx: SyncContext) -> BatchResult:
        with_company = sum(1 for c in batch if (c.get("properties") or {}).get("company"))
        log.info(
            "[Sync %s] Contacts batch: %d total, %d with company, %d without",
            str(ctx.import_id)[:8], len(batch), with_company, len(batch) - with_company,
        )
        return BatchResult(synced=len(batch))
