"""Xero accounting client and invoice / expense / contact sync adapters."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

from ..schemas.sync import SyncContext
from ..services.client_svc import ensure_alias, resolve_or_create_client
from ..services.record_svc import upsert_financial_record
from ..sync.adapter import SyncAdapter
from ..sync.normalize import normalize, normalize_month
from ..sync.pagination import paginate_pages
from .http import ProviderClient, ProviderNotConfigured

log = logging.getLogger(__name__)

XERO_PAGE_SIZE = 100  # fixed by the API


class XeroClient(ProviderClient):
    provider = "xero"
    base_url = "https://api.xero.com"

    def __init__(self, token: str | None, *, tenant_id: str | None, **kwargs: Any):
        if not tenant_id:
            raise ProviderNotConfigured("No xero tenant id configured", provider="xero")
        self.tenant_id = tenant_id
        super().__init__(token, **kwargs)

    def default_headers(self) -> dict[str, str]:
        headers = super().default_headers()
        headers["xero-tenant-id"] = self.tenant_id
        return headers

    async def list_page(self, collection: str, page: int, where: str | None = None) -> list[dict[str, Any]]:
        data = await self._get(f"/api.xro/2.0/{collection}", page=page, where=where)
        return list(data.get(collection) or [])


def _month_of(value: Any) -> str:
    return normalize_month(value) or datetime.now(timezone.utc).strftime("%Y-%m")


class XeroAdapter(SyncAdapter):
    provider = "xero"
    collection = ""
    where: str | None = None

    def client(self) -> XeroClient:
        return XeroClient(
            self.settings.xero_token,
            tenant_id=self.settings.xero_tenant_id,
            limiter=self.limiter,
            base_url=self.settings.xero_base_url,
            timeout=self.settings.http_timeout_seconds,
            transport=self.transport,
        )

    async def fetch_all(self, ctx: SyncContext) -> AsyncIterator[list[dict[str, Any]]]:
        async with self.client() as xero:

            async def fetch_page(page: int) -> list[dict[str, Any]]:
                return await xero.list_page(self.collection, page, self.where)

            async for batch in paginate_pages(fetch_page, XERO_PAGE_SIZE, self.settings.max_pages):
                yield batch

    async def contact_client(self, db: AsyncSession, contact: dict[str, Any]):
        """Find or create the client owning a Xero contact."""
        contact_id = contact.get("ContactID")
        name = (contact.get("Name") or "").strip()
        if not contact_id:
            return None
        client, _ = await resolve_or_create_client(
            db,
            self.matcher,
            await self.client_candidates(db),
            name=name or f"Xero contact {contact_id}",
            source="xero",
            key_field="xero_contact_id",
            key_value=contact_id,
            defaults={"status": "active"},
        )
        return client


class XeroInvoicesAdapter(XeroAdapter):
    """Accounts-receivable invoices -> retainer financial records."""

    resource = "invoices"
    collection = "Invoices"

    def item_label(self, item: dict[str, Any], index: int) -> str:
        return f"Invoice {item.get('InvoiceNumber') or item.get('InvoiceID') or index + 1}"

    async def upsert_item(self, db: AsyncSession, item: dict[str, Any], ctx: SyncContext) -> bool:
        if item.get("Type") != "ACCREC" or item.get("Status") in ("DELETED", "VOIDED"):
            return False
        contact = item.get("Contact") or {}
        client = await self.contact_client(db, contact)
        if client is None:
            raise ValueError("invoice has no contact")

        number = item.get("InvoiceNumber") or item.get("InvoiceID")
        amount = normalize("number", item.get("Total"))
        await upsert_financial_record(
            db,
            client_id=client.id,
            month=_month_of(item.get("DateString") or item.get("Date")),
            type="retainer",
            category=f"invoice-{number}",
            amount=amount or 0.0,
            source="xero",
            external_id=item.get("InvoiceID"),
            description=f"Xero invoice: {number} - {contact.get('Name') or 'Unknown'}",
        )
        return True


class XeroExpensesAdapter(XeroAdapter):
    """SPEND bank transactions -> cost financial records."""

    resource = "expenses"
    collection = "BankTransactions"
    where = 'Type=="SPEND"'

    def item_label(self, item: dict[str, Any], index: int) -> str:
        return f"Expense {item.get('BankTransactionID') or index + 1}"

    async def upsert_item(self, db: AsyncSession, item: dict[str, Any], ctx: SyncContext) -> bool:
        if item.get("Status") == "DELETED":
            return False
        client = await self.contact_client(db, item.get("Contact") or {})
        if client is None:
            raise ValueError("no client match")

        line_items = item.get("LineItems") or []
        description = (line_items[0].get("Description") if line_items else None) or "Xero expense"
        await upsert_financial_record(
            db,
            client_id=client.id,
            month=_month_of(item.get("DateString") or item.get("Date")),
            type="cost",
            category=f"expense-{item.get('BankTransactionID')}",
            amount=normalize("number", item.get("Total")) or 0.0,
            source="xero",
            external_id=item.get("BankTransactionID"),
            description=f"Xero expense: {description}",
        )
        return True


class XeroContactsAdapter(XeroAdapter):
    """Contacts -> client xero key plus alias."""

    resource = "contacts"
    collection = "Contacts"

    async def upsert_item(self, db: AsyncSession, item: dict[str, Any], ctx: SyncContext) -> bool:
        if item.get("ContactStatus") == "ARCHIVED":
            return False
        name = (item.get("Name") or "").strip()
        client = await self.contact_client(db, item)
        if client is None:
            raise ValueError("contact has no id")
        if name:
            await ensure_alias(db, client_id=client.id, alias=name, source="xero", external_id=item.get("ContactID"))
        return True
