"""Client directory for free-text attribution (message bodies, email domains, titles)."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.client import Client, ClientAlias
from .names import email_domain, website_domain

# Shorter names match too much ordinary text.
MIN_TEXT_NAME_LENGTH = 3


@dataclass
class DirectoryEntry:
    id: uuid.UUID
    name: str
    domain: str | None = None
    aliases: list[str] = field(default_factory=list)

    def names(self) -> list[str]:
        return [n.lower() for n in [self.name, *self.aliases] if n and len(n.strip()) >= MIN_TEXT_NAME_LENGTH]


@dataclass
class ClientDirectory:
    entries: list[DirectoryEntry] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.entries.sort(key=lambda e: (e.name.lower(), str(e.id)))

    def match_domain(self, domain: str | None) -> uuid.UUID | None:
        if not domain:
            return None
        domain = domain.lower()
        for entry in self.entries:
            if entry.domain and (domain == entry.domain or domain.endswith("." + entry.domain)):
                return entry.id
        return None

    def match_emails(self, addresses: Iterable[str | None]) -> uuid.UUID | None:
        """First client whose website domain, or name, appears in any address."""
        addresses = [a.lower() for a in addresses if a]
        for address in addresses:
            found = self.match_domain(email_domain(address))
            if found:
                return found
        for address in addresses:
            for entry in self.entries:
                compact = entry.name.lower().replace(" ", "")
                if len(compact) >= MIN_TEXT_NAME_LENGTH and compact in address:
                    return entry.id
        return None

    def match_text(self, text: str | None) -> uuid.UUID | None:
        """First client whose name or alias occurs in ``text`` (case-insensitive)."""
        if not text:
            return None
        haystack = text.lower()
        for entry in self.entries:
            if any(name in haystack for name in entry.names()):
                return entry.id
        return None


async def load_client_directory(db: AsyncSession) -> ClientDirectory:
    rows = (await db.execute(select(Client.id, Client.name, Client.website))).all()
    alias_rows = (await db.execute(select(ClientAlias.client_id, ClientAlias.alias))).all()
    aliases: dict[uuid.UUID, list[str]] = {}
    for client_id, alias in alias_rows:
        aliases.setdefault(client_id, []).append(alias)
    return ClientDirectory(
        entries=[
            DirectoryEntry(id=row_id, name=name, domain=website_domain(website), aliases=aliases.get(row_id, []))
            for row_id, name, website in rows
        ]
    )
