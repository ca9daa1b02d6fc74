"""Test Slack, Calendar and Gmail adapters and client attribution."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from agency_sync.entities.directory import ClientDirectory, DirectoryEntry, load_client_directory
from agency_sync.integrations.google import (
    CalendarMeetingsAdapter,
    GmailEmailsAdapter,
    extract_address,
    parse_event_time,
    parse_message_date,
)
from agency_sync.integrations.http import ProviderError
from agency_sync.integrations.slack import SlackClient, SlackMessagesAdapter, SlackUsersAdapter
from agency_sync.models.client import ClientAlias
from agency_sync.models.communication import CommunicationLog, MeetingAttendee, MeetingLog
from agency_sync.models.team import TeamMember
from agency_sync.sync.rate_limit import RateLimiter


def test_directory_matching_rules():
    acme, bloom = uuid.uuid4(), uuid.uuid4()
    directory = ClientDirectory([
        DirectoryEntry(bloom, "Bloom Florist", domain="bloomflorist.com.au", aliases=["Bloom"]),
        DirectoryEntry(acme, "Acme Co", domain="acme.com"),
    ])

    assert directory.match_domain("mail.acme.com") == acme
    assert directory.match_domain("notacme.com") is None
    assert directory.match_emails(["me@agency.com", "jo@acme.com"]) == acme
    assert directory.match_emails(["owner@bloomflorist.net"]) == bloom
    assert directory.match_text("Reel for ACME CO is ready") == acme
    assert directory.match_text("Bloom wants changes") == bloom
    assert directory.match_text("nothing relevant") is None


@pytest.mark.asyncio
async def test_load_client_directory_includes_aliases(db, make_client):
    acme = await make_client("Acme Co", website="https://www.acme.com/")
    db.add(ClientAlias(client_id=acme.id, alias="ACM Group", source="xero"))
    await db.commit()

    directory = await load_client_directory(db)

    assert directory.match_text("invoice for acm group") == acme.id
    assert directory.match_domain("acme.com") == acme.id


def test_google_helpers():
    assert extract_address("Jo Smith <Jo@Acme.com>") == "jo@acme.com"
    assert extract_address("plain@acme.com") == "plain@acme.com"
    assert extract_address("Undisclosed") is None
    assert parse_event_time({"dateTime": "2024-03-04T10:00:00Z"}) == datetime(2024, 3, 4, 10, tzinfo=timezone.utc)
    assert parse_event_time({"date": "2024-03-04"}) == datetime(2024, 3, 4, tzinfo=timezone.utc)
    assert parse_message_date("Mon, 04 Mar 2024 10:00:00 +0000") == datetime(2024, 3, 4, 10, tzinfo=timezone.utc)
    assert parse_message_date(None, "1709546400000") == datetime(2024, 3, 4, 10, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_slack_ok_false_raises(mock_transport):
    transport = mock_transport(lambda r: {"ok": False, "error": "invalid_auth"})
    async with SlackClient("tok", limiter=RateLimiter(10, 1.0), transport=transport) as slack:
        with pytest.raises(ProviderError, match="invalid_auth"):
            await slack.users()


@pytest.mark.asyncio
async def test_slack_messages_attributed_by_name(session_factory, settings, limiters, sync_engine, mock_transport, make_client):
    acme = await make_client("Acme Co")
    settings.slack_channel_ids = "C1"

    def handler(request):
        cursor = request.url.params.get("cursor")
        if cursor is None:
            return {
                "ok": True,
                "messages": [{"ts": "1709546400.000100", "text": "Acme Co approved the reel"}],
                "response_metadata": {"next_cursor": "n1"},
            }
        return {
            "ok": True,
            "messages": [
                {"ts": "1709546500.000200", "text": "lunch?"},
                {"ts": "1709546600.000300", "text": "acme co wants a second cut"},
            ],
            "response_metadata": {"next_cursor": ""},
        }

    seen = []
    adapter = SlackMessagesAdapter(session_factory, limiters["slack"], settings, transport=mock_transport(handler, seen))

    progress = await sync_engine.run(adapter)

    assert (progress.records_found, progress.records_synced) == (3, 2)
    assert seen[0].url.params["channel"] == "C1"
    assert "oldest" in seen[0].url.params
    async with session_factory() as s:
        logs = (await s.execute(select(CommunicationLog).order_by(CommunicationLog.external_id))).scalars().all()
    assert [log.external_id for log in logs] == ["slack-C1-1709546400.000100", "slack-C1-1709546600.000300"]
    assert all(log.client_id == acme.id and log.type == "slack" for log in logs)


@pytest.mark.asyncio
async def test_slack_without_channels_is_empty(session_factory, settings, limiters, sync_engine):
    progress = await sync_engine.run(SlackMessagesAdapter(session_factory, limiters["slack"], settings))
    assert progress.status == "completed"
    assert progress.records_found == 0


@pytest.mark.asyncio
async def test_slack_users_skip_bots(session_factory, settings, limiters, sync_engine, mock_transport):
    members = [
        {"id": "U1", "real_name": "Ana Editor", "profile": {"email": "ana@agency.com"}},
        {"id": "B1", "real_name": "Deploy Bot", "is_bot": True},
        {"id": "U2", "real_name": "Old Timer", "deleted": True},
        {"id": "U3", "profile": {}},
    ]
    adapter = SlackUsersAdapter(
        session_factory, limiters["slack"], settings, transport=mock_transport(lambda r: {"ok": True, "members": members})
    )

    progress = await sync_engine.run(adapter)

    assert (progress.records_found, progress.records_synced, progress.records_failed) == (2, 1, 1)
    assert any("User U3: missing name" in e for e in progress.errors)
    async with session_factory() as s:
        member = (await s.execute(select(TeamMember))).scalar_one()
    assert (member.name, member.slack_user_id, member.email) == ("Ana Editor", "U1", "ana@agency.com")


@pytest.mark.asyncio
async def test_calendar_meetings_with_attendees(session_factory, settings, limiters, sync_engine, mock_transport, make_client):
    acme = await make_client("Acme Co", website="acme.com")
    events = [
        {
            "id": "e1",
            "summary": "Monthly review",
            "status": "confirmed",
            "start": {"dateTime": "2024-03-04T10:00:00Z"},
            "end": {"dateTime": "2024-03-04T10:45:00Z"},
            "attendees": [{"email": "jo@acme.com", "displayName": "Jo"}, {"email": "me@agency.com"}],
        },
        {"id": "e2", "summary": "Cancelled sync", "status": "cancelled", "start": {"dateTime": "2024-03-05T10:00:00Z"}},
        {"id": "e3", "summary": "Team standup", "start": {"dateTime": "2024-03-06T09:00:00Z"}},
    ]
    seen = []
    adapter = CalendarMeetingsAdapter(
        session_factory, limiters["calendar"], settings, transport=mock_transport(lambda r: {"items": events}, seen)
    )

    progress = await sync_engine.run(adapter)

    assert (progress.records_found, progress.records_synced) == (2, 2)
    assert seen[0].url.path == "/calendar/v3/calendars/primary/events"
    assert seen[0].url.params["singleEvents"] == "true"
    async with session_factory() as s:
        meetings = {m.external_id: m for m in (await s.execute(select(MeetingLog))).scalars()}
        attendees = (await s.execute(select(MeetingAttendee))).scalars().all()
    assert meetings["calendar-e1"].client_id == acme.id
    assert meetings["calendar-e1"].duration == 45
    assert meetings["calendar-e3"].client_id is None
    assert sorted(a.email for a in attendees) == ["jo@acme.com", "me@agency.com"]


@pytest.mark.asyncio
async def test_gmail_emails_attributed_and_capped(session_factory, settings, limiters, sync_engine, mock_transport, make_client):
    acme = await make_client("Acme Co", website="acme.com")
    settings.gmail_max_messages = 2
    messages = {
        "g1": {"From": "Jo <jo@acme.com>", "To": "me@agency.com", "Subject": "Brief"},
        "g2": {"From": "news@letters.com", "To": "me@agency.com", "Subject": "Weekly digest"},
        "g3": {"From": "jo@acme.com", "To": "me@agency.com", "Subject": "Never fetched"},
    }

    def handler(request):
        if request.url.path.endswith("/messages"):
            return {"messages": [{"id": mid} for mid in messages]}
        mid = request.url.path.rsplit("/", 1)[-1]
        headers = [{"name": k, "value": v} for k, v in messages[mid].items()]
        headers.append({"name": "Date", "value": "Mon, 04 Mar 2024 10:00:00 +0000"})
        return {"id": mid, "snippet": f"snippet {mid}", "payload": {"headers": headers}}

    seen = []
    adapter = GmailEmailsAdapter(session_factory, limiters["gmail"], settings, transport=mock_transport(handler, seen))

    progress = await sync_engine.run(adapter)

    assert (progress.records_found, progress.records_synced) == (2, 1)
    assert seen[0].url.params["q"].startswith("after:")
    assert seen[1].url.params["format"] == "metadata"
    assert seen[1].url.params.get_list("metadataHeaders") == ["Subject", "From", "To", "Date"]
    async with session_factory() as s:
        log = (await s.execute(select(CommunicationLog))).scalar_one()
    assert (log.external_id, log.client_id, log.type, log.subject, log.summary) == (
        "gmail-g1", acme.id, "email", "Brief", "snippet g1",
    )
