"""(provider, resource) -> adapter class lookup."""

from __future__ import annotations

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import SyncSettings
from ..entities.matcher import EntityMatcher
from ..sync.adapter import SyncAdapter
from ..sync.rate_limit import RateLimiter
from .google import CalendarMeetingsAdapter, GmailEmailsAdapter
from .hubspot import HubSpotCompaniesAdapter, HubSpotContactsAdapter, HubSpotDealsAdapter
from .monday import MondayClientsAdapter, MondayCreativesAdapter, MondayTimeTrackingAdapter
from .sheets import (
    SheetsClientDataAdapter,
    SheetsClientMatchAdapter,
    SheetsCostAdapter,
    SheetsPackagesAdapter,
    SheetsSalaryAdapter,
)
from .slack import SlackMessagesAdapter, SlackUsersAdapter
from .xero import XeroContactsAdapter, XeroExpensesAdapter, XeroInvoicesAdapter


class UnknownAdapterError(LookupError):
    def __init__(self, provider: str, resource: str):
        self.provider = provider
        self.resource = resource
        super().__init__(f"Unknown sync adapter: {provider}:{resource}")


ADAPTERS: dict[tuple[str, str], type[SyncAdapter]] = {
    (cls.provider, cls.resource): cls
    for cls in (
        HubSpotDealsAdapter,
        HubSpotCompaniesAdapter,
        HubSpotContactsAdapter,
        MondayClientsAdapter,
        MondayTimeTrackingAdapter,
        MondayCreativesAdapter,
        SheetsSalaryAdapter,
        SheetsClientDataAdapter,
        SheetsCostAdapter,
        SheetsClientMatchAdapter,
        SheetsPackagesAdapter,
        XeroInvoicesAdapter,
        XeroExpensesAdapter,
        XeroContactsAdapter,
        SlackMessagesAdapter,
        SlackUsersAdapter,
        CalendarMeetingsAdapter,
        GmailEmailsAdapter,
    )
}


def list_adapters() -> list[str]:
    return sorted(f"{provider}:{resource}" for provider, resource in ADAPTERS)


def create_adapter(
    provider: str,
    resource: str,
    session_factory: async_sessionmaker[AsyncSession],
    limiters: dict[str, RateLimiter],
    settings: SyncSettings,
    *,
    matcher: EntityMatcher | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> SyncAdapter:
    """Build the adapter for (provider, resource) bound to that provider's limiter."""
    cls = ADAPTERS.get((provider, resource))
    if cls is None:
        raise UnknownAdapterError(provider, resource)
    return cls(session_factory, limiters[provider], settings, matcher=matcher, transport=transport)
