"""Google Sheets client and per-tab sync adapters (salary, clients, costs, aliases, packages)."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator
from urllib.parse import quote

from sqlalchemy.ext.asyncio import AsyncSession

from ..entities.matcher import AliasMatch, EntityMatcher, ExactNameMatch
from ..models.client import CLIENT_STATUSES
from ..schemas.sync import SyncContext
from ..services.client_svc import ensure_alias, fill_missing, resolve_or_create_client
from ..services.record_svc import upsert_financial_record, upsert_package
from ..services.team_svc import get_or_create_team_member
from ..sync.adapter import SyncAdapter
from ..sync.normalize import normalize, normalize_month, parse_number
from .http import ProviderClient, ProviderNotConfigured

log = logging.getLogger(__name__)


class SheetsClient(ProviderClient):
    provider = "sheets"
    base_url = "https://sheets.googleapis.com"

    async def read_tab(self, spreadsheet_id: str, tab: str) -> list[dict[str, Any]]:
        """Read a tab into header-keyed rows (headers lowercased, row index attached)."""
        data = await self._get(f"/v4/spreadsheets/{spreadsheet_id}/values/{quote(repr_tab(tab), safe='')}")
        values = data.get("values") or []
        if not values:
            return []
        headers = [str(h).strip().lower() for h in values[0]]
        rows = []
        for offset, raw in enumerate(values[1:], start=2):
            if not any(str(cell).strip() for cell in raw):
                continue
            row = {header: (str(raw[i]).strip() if i < len(raw) else "") for i, header in enumerate(headers) if header}
            row["_row_index"] = offset
            rows.append(row)
        return rows


def repr_tab(tab: str) -> str:
    return "'" + tab.replace("'", "''") + "'"


def cell(row: dict[str, Any], *headers: str) -> str | None:
    """First non-empty value among ``headers`` (case-insensitive)."""
    for header in headers:
        value = row.get(header.lower())
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def number_cell(row: dict[str, Any], *headers: str) -> float | None:
    for header in headers:
        value = parse_number(row.get(header.lower()))
        if value is not None:
            return value
    return None


class SheetsTabAdapter(SyncAdapter):
    provider = "sheets"
    tab = ""

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        # Sheet names are curated by hand; only alias / exact lookups apply.
        self.strict_matcher = EntityMatcher([AliasMatch(), ExactNameMatch()])

    def client(self) -> SheetsClient:
        return SheetsClient(
            self.settings.sheets_token,
            limiter=self.limiter,
            base_url=self.settings.sheets_base_url,
            timeout=self.settings.http_timeout_seconds,
            transport=self.transport,
        )

    def item_label(self, item: dict[str, Any], index: int) -> str:
        return f"Row {item.get('_row_index', index + 2)}"

    async def fetch_all(self, ctx: SyncContext) -> AsyncIterator[list[dict[str, Any]]]:
        spreadsheet_id = self.settings.sheets_spreadsheet_id
        if not spreadsheet_id:
            raise ProviderNotConfigured("No spreadsheet id configured", provider=self.provider)
        async with self.client() as sheets:
            rows = await sheets.read_tab(spreadsheet_id, self.tab)
        log.info("[Sync %s] Read %d rows from %r", str(ctx.import_id)[:8], len(rows), self.tab)
        size = max(1, self.settings.sheets_batch_size)
        for start in range(0, len(rows), size):
            yield rows[start:start + size]


class SheetsSalaryAdapter(SheetsTabAdapter):
    resource = "salary"
    tab = "4.3 Salary Data"

    async def upsert_item(self, db: AsyncSession, item: dict[str, Any], ctx: SyncContext) -> bool:
        name = cell(item, "name")
        if not name:
            return False
        values = {
            "role": cell(item, "role"),
            "division": cell(item, "division"),
            "location": cell(item, "location"),
            "employment_type": cell(item, "employment type", "type"),
            "cost_type": cell(item, "cost type", "pay type"),
            "annual_salary": number_cell(item, "salary", "annual salary"),
            "hourly_rate": number_cell(item, "hourly rate"),
            "weekly_hours": number_cell(item, "weekly hours", "hours per week"),
        }
        await get_or_create_team_member(
            db, source="sheets", name=name, email=cell(item, "email"), values=values
        )
        return True


class SheetsClientDataAdapter(SheetsTabAdapter):
    """Client rows supplement existing clients; unknown names become new clients."""

    resource = "clients"
    tab = "4.2 Client Data"

    async def upsert_item(self, db: AsyncSession, item: dict[str, Any], ctx: SyncContext) -> bool:
        name = cell(item, "client name", "client", "name")
        if not name:
            return False
        values = {
            "retainer_value": number_cell(item, "retainer value", "retainer"),
            "deal_stage": cell(item, "deal stage", "stage"),
            "industry": cell(item, "industry"),
            "website": cell(item, "website"),
            "notes": cell(item, "notes"),
            "start_date": normalize("date", cell(item, "start date")),
        }
        status = (cell(item, "status") or "active").lower()
        client, created = await resolve_or_create_client(
            db,
            self.strict_matcher,
            await self.client_candidates(db),
            name=name,
            source="sheets",
            defaults={
                "status": status if status in CLIENT_STATUSES else "active",
                "sheets_row_index": item.get("_row_index"),
                **{k: v for k, v in values.items() if v is not None},
            },
        )
        if not created:
            fill_missing(client, {**values, "sheets_row_index": item.get("_row_index")})
        return True


class SheetsCostAdapter(SheetsTabAdapter):
    """Segmented cost rows -> cost financial records; unknown clients fail the row."""

    resource = "costs"
    tab = "4.4 Segmented Cost Data"

    async def upsert_item(self, db: AsyncSession, item: dict[str, Any], ctx: SyncContext) -> bool:
        client_name = cell(item, "client name", "client", "name")
        raw_month = cell(item, "month", "period")
        if not client_name or not raw_month:
            return False
        month = normalize_month(raw_month)
        if month is None:
            raise ValueError(f'Unable to parse month value "{raw_month}"')
        amount = number_cell(item, "cost", "cost amount", "amount")
        if amount is None:
            return False

        client_id = self.matcher.resolve(client_name, await self.client_candidates(db))
        if client_id is None:
            raise ValueError(f'Client not found: "{client_name}"')

        await upsert_financial_record(
            db,
            client_id=client_id,
            month=month,
            type="cost",
            category=cell(item, "category", "cost category") or "general",
            amount=amount,
            hours=number_cell(item, "hours"),
            source="sheets",
            external_id=f"row-{item.get('_row_index')}",
            description=cell(item, "description", "notes"),
        )
        return True


class SheetsClientMatchAdapter(SheetsTabAdapter):
    """Client match table -> aliases for monday / hubspot / canonical names."""

    resource = "client_match"
    tab = "5.3 Client Match"

    async def upsert_item(self, db: AsyncSession, item: dict[str, Any], ctx: SyncContext) -> bool:
        monday_name = cell(item, "monday name", "monday")
        hubspot_name = cell(item, "hubspot name", "hubspot")
        canonical_name = cell(item, "canonical name", "client name", "name")
        primary_name = canonical_name or hubspot_name or monday_name
        if not primary_name:
            return False

        candidates = await self.client_candidates(db)
        client, _ = await resolve_or_create_client(
            db,
            self.strict_matcher,
            candidates,
            name=primary_name,
            source="sheets",
            defaults={"status": "active"},
        )
        client_id = client.id

        aliases: list[tuple[str, str]] = []
        if monday_name and monday_name.lower() != primary_name.lower():
            aliases.append((monday_name, "monday"))
        if hubspot_name and hubspot_name.lower() != primary_name.lower():
            aliases.append((hubspot_name, "hubspot"))
        if canonical_name and monday_name and canonical_name.lower() != monday_name.lower():
            aliases.append((canonical_name, "sheets"))
        for alias, source in aliases:
            await ensure_alias(db, client_id=client_id, alias=alias, source=source)
            if source == candidates.source:
                candidates.add_alias(alias, client_id)
        return True


class SheetsPackagesAdapter(SheetsTabAdapter):
    resource = "packages"
    tab = "5.2 Package Lookup"

    async def upsert_item(self, db: AsyncSession, item: dict[str, Any], ctx: SyncContext) -> bool:
        name = cell(item, "package name", "package", "name")
        if not name:
            return False
        await upsert_package(
            db,
            name=name,
            values={
                "tier": cell(item, "tier", "level"),
                "description": cell(item, "description", "details"),
                "hours_included": number_cell(item, "hours included", "hours"),
                "monthly_rate": number_cell(item, "monthly rate", "rate", "price"),
            },
        )
        return True
