"""Google Calendar and Gmail clients plus meeting / email sync adapters."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Any, AsyncIterator
from urllib.parse import quote

from sqlalchemy.ext.asyncio import AsyncSession

from ..entities.directory import ClientDirectory, load_client_directory
from ..schemas.sync import SyncContext
from ..services.record_svc import upsert_communication, upsert_meeting
from ..sync.adapter import SyncAdapter
from ..sync.pagination import Page, paginate_after
from .http import ProviderClient

log = logging.getLogger(__name__)

CALENDAR_PAGE_SIZE = 250
GMAIL_PAGE_SIZE = 100
GMAIL_HEADERS = ["Subject", "From", "To", "Date"]

_ADDRESS_RE = re.compile(r"<([^>]+)>")


class GoogleCalendarClient(ProviderClient):
    provider = "calendar"
    base_url = "https://www.googleapis.com/calendar/v3"

    async def list_events(
        self, calendar_id: str, *, time_min: str, page_token: str | None = None
    ) -> Page:
        data = await self._get(
            f"/calendars/{quote(calendar_id, safe='@.')}/events",
            timeMin=time_min,
            maxResults=CALENDAR_PAGE_SIZE,
            singleEvents="true",
            orderBy="startTime",
            pageToken=page_token,
        )
        return Page(items=list(data.get("items") or []), next_token=data.get("nextPageToken"))


class GmailClient(ProviderClient):
    provider = "gmail"
    base_url = "https://gmail.googleapis.com/gmail/v1"

    async def list_messages(self, query: str, *, page_token: str | None = None) -> Page:
        data = await self._get(
            "/users/me/messages", q=query, maxResults=GMAIL_PAGE_SIZE, pageToken=page_token
        )
        return Page(items=list(data.get("messages") or []), next_token=data.get("nextPageToken"))

    async def get_message(self, message_id: str) -> dict[str, Any]:
        return await self._get(
            f"/users/me/messages/{message_id}", format="metadata", metadataHeaders=GMAIL_HEADERS
        )


def header(message: dict[str, Any], name: str) -> str:
    for entry in (message.get("payload") or {}).get("headers") or []:
        if (entry.get("name") or "").lower() == name.lower():
            return entry.get("value") or ""
    return ""


def extract_address(value: str | None) -> str | None:
    """Pull the address out of a ``Name <addr>`` header value."""
    if not value:
        return None
    match = _ADDRESS_RE.search(value)
    if match:
        return match.group(1).strip().lower()
    return value.strip().lower() if "@" in value else None


def parse_event_time(value: dict[str, Any] | None) -> datetime | None:
    if not value:
        return None
    raw = value.get("dateTime") or value.get("date")
    if not raw:
        return None
    parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_message_date(value: str | None, internal_date: str | None = None) -> datetime:
    if value:
        try:
            return parsedate_to_datetime(value)
        except (TypeError, ValueError):
            pass
    if internal_date:
        return datetime.fromtimestamp(int(internal_date) / 1000, tz=timezone.utc)
    return datetime.now(timezone.utc)


class GoogleAdapter(SyncAdapter):
    """Shared client directory cache for attribution by domain and text."""

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._directory: ClientDirectory | None = None

    def reset_batch_state(self) -> None:
        super().reset_batch_state()
        self._directory = None

    async def directory(self, db: AsyncSession) -> ClientDirectory:
        if self._directory is None:
            self._directory = await load_client_directory(db)
        return self._directory

    def lookback_start(self) -> datetime:
        return datetime.now(timezone.utc) - timedelta(days=self.settings.lookback_days)


class CalendarMeetingsAdapter(GoogleAdapter):
    """Calendar events -> MeetingLog rows with attendees."""

    provider = "calendar"
    resource = "meetings"

    def client(self) -> GoogleCalendarClient:
        return GoogleCalendarClient(
            self.settings.google_token,
            limiter=self.limiter,
            base_url=self.settings.google_calendar_base_url,
            timeout=self.settings.http_timeout_seconds,
            transport=self.transport,
        )

    def item_label(self, item: dict[str, Any], index: int) -> str:
        return f"Event {item.get('id') or index + 1}"

    async def fetch_all(self, ctx: SyncContext) -> AsyncIterator[list[dict[str, Any]]]:
        config = await self.load_config()
        calendar_id = config.get("calendar_id") or self.settings.google_calendar_id
        time_min = self.lookback_start().isoformat().replace("+00:00", "Z")
        async with self.client() as calendar:

            async def fetch_page(page_token: str | None) -> Page:
                return await calendar.list_events(calendar_id, time_min=time_min, page_token=page_token)

            async for batch in paginate_after(fetch_page, None, self.settings.max_pages):
                events = [e for e in batch if e.get("status") != "cancelled"]
                if events:
                    yield events

    async def upsert_item(self, db: AsyncSession, item: dict[str, Any], ctx: SyncContext) -> bool:
        start = parse_event_time(item.get("start"))
        if not item.get("id") or start is None:
            return False
        end = parse_event_time(item.get("end"))
        duration = round((end - start).total_seconds() / 60) if end else None
        title = item.get("summary") or "(untitled)"

        attendees = [
            (a["email"], a.get("displayName"))
            for a in item.get("attendees") or []
            if a.get("email")
        ]
        directory = await self.directory(db)
        client_id = directory.match_emails(email for email, _ in attendees) or directory.match_text(title)

        await upsert_meeting(
            db,
            external_id=f"calendar-{item['id']}",
            client_id=client_id,
            title=title,
            date=start,
            duration=duration,
            summary=item.get("description"),
            attendees=attendees,
        )
        return True


class GmailEmailsAdapter(GoogleAdapter):
    """Recent messages -> email CommunicationLog rows for attributable clients."""

    provider = "gmail"
    resource = "emails"

    def client(self) -> GmailClient:
        return GmailClient(
            self.settings.google_token,
            limiter=self.limiter,
            base_url=self.settings.gmail_base_url,
            timeout=self.settings.http_timeout_seconds,
            transport=self.transport,
        )

    def item_label(self, item: dict[str, Any], index: int) -> str:
        return f"Email {item.get('id') or index + 1}"

    async def fetch_all(self, ctx: SyncContext) -> AsyncIterator[list[dict[str, Any]]]:
        query = f"after:{int(self.lookback_start().timestamp())}"
        remaining = self.settings.gmail_max_messages
        async with self.client() as gmail:

            async def fetch_page(page_token: str | None) -> Page:
                return await gmail.list_messages(query, page_token=page_token)

            async for refs in paginate_after(fetch_page, None, self.settings.max_pages):
                batch = []
                for ref in refs[:remaining]:
                    batch.append(await gmail.get_message(ref["id"]))
                remaining -= len(batch)
                if batch:
                    yield batch
                if remaining <= 0:
                    log.info("[Sync %s] Reached Gmail message cap", str(ctx.import_id)[:8])
                    return

    async def upsert_item(self, db: AsyncSession, item: dict[str, Any], ctx: SyncContext) -> bool:
        if not item.get("id"):
            return False
        sender = extract_address(header(item, "From"))
        recipient = extract_address(header(item, "To"))
        subject = header(item, "Subject") or "(no subject)"

        directory = await self.directory(db)
        client_id = directory.match_emails([sender, recipient]) or directory.match_text(subject)
        if client_id is None:
            return False

        await upsert_communication(
            db,
            source="gmail",
            external_id=f"gmail-{item['id']}",
            client_id=client_id,
            type="email",
            date=parse_message_date(header(item, "Date"), item.get("internalDate")),
            subject=subject,
            summary=item.get("snippet"),
        )
        return True
