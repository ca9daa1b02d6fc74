"""Slack Web API client and message / user sync adapters."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

from ..entities.directory import ClientDirectory, load_client_directory
from ..schemas.sync import SyncContext
from ..services.record_svc import upsert_communication
from ..services.team_svc import get_or_create_team_member
from ..sync.adapter import SyncAdapter
from ..sync.pagination import Page, paginate_after
from .http import ProviderClient, ProviderError

log = logging.getLogger(__name__)

SLACK_PAGE_SIZE = 200


class SlackClient(ProviderClient):
    provider = "slack"
    base_url = "https://slack.com/api"

    async def call(self, method: str, **params: Any) -> dict[str, Any]:
        """Call a Web API method; Slack reports failures in-band as ``ok: false``."""
        data = await self._get(f"/{method}", **params)
        if not data.get("ok"):
            raise ProviderError(f"Slack API error: {data.get('error') or 'unknown_error'}", provider="slack")
        return data

    async def channel_history(
        self, channel: str, *, cursor: str | None = None, oldest: str | None = None, limit: int = SLACK_PAGE_SIZE
    ) -> Page:
        data = await self.call("conversations.history", channel=channel, cursor=cursor, oldest=oldest, limit=limit)
        messages = [dict(m, channel=channel) for m in data.get("messages") or []]
        return Page(items=messages, next_token=_next_cursor(data))

    async def users(self, *, cursor: str | None = None, limit: int = SLACK_PAGE_SIZE) -> Page:
        data = await self.call("users.list", cursor=cursor, limit=limit)
        return Page(items=list(data.get("members") or []), next_token=_next_cursor(data))


def _next_cursor(data: dict[str, Any]) -> str | None:
    return (data.get("response_metadata") or {}).get("next_cursor") or None


class SlackAdapter(SyncAdapter):
    provider = "slack"

    def client(self) -> SlackClient:
        return SlackClient(
            self.settings.slack_token,
            limiter=self.limiter,
            base_url=self.settings.slack_base_url,
            timeout=self.settings.http_timeout_seconds,
            transport=self.transport,
        )


class SlackMessagesAdapter(SlackAdapter):
    """Channel messages -> CommunicationLog rows for the client named in the text."""

    resource = "messages"

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._directory: ClientDirectory | None = None

    def reset_batch_state(self) -> None:
        super().reset_batch_state()
        self._directory = None

    def item_label(self, item: dict[str, Any], index: int) -> str:
        return f"Message {item.get('ts') or index + 1}"

    async def channel_ids(self) -> list[str]:
        config = await self.load_config()
        return list(config.get("channel_ids") or self.settings.slack_channels)

    async def fetch_all(self, ctx: SyncContext) -> AsyncIterator[list[dict[str, Any]]]:
        channels = await self.channel_ids()
        if not channels:
            log.info("[Sync %s] No channels configured for Slack sync", str(ctx.import_id)[:8])
            return
        oldest = datetime.now(timezone.utc) - timedelta(days=self.settings.lookback_days)
        oldest_ts = str(int(oldest.timestamp()))

        async with self.client() as slack:
            for channel in channels:
                log.info("[Sync %s] Fetching channel %s", str(ctx.import_id)[:8], channel)

                async def fetch_page(cursor: str | None, channel: str = channel) -> Page:
                    return await slack.channel_history(channel, cursor=cursor, oldest=oldest_ts)

                async for batch in paginate_after(fetch_page, None, self.settings.max_pages):
                    yield batch

    async def upsert_item(self, db: AsyncSession, item: dict[str, Any], ctx: SyncContext) -> bool:
        text = (item.get("text") or "").strip()
        if not text:
            return False
        if self._directory is None:
            self._directory = await load_client_directory(db)
        client_id = self._directory.match_text(text)
        if client_id is None:
            return False

        ts = str(item.get("ts"))
        await upsert_communication(
            db,
            source="slack",
            external_id=f"slack-{item.get('channel')}-{ts}",
            client_id=client_id,
            type="slack",
            date=datetime.fromtimestamp(float(ts), tz=timezone.utc),
            subject=text,
            summary=text,
        )
        return True


class SlackUsersAdapter(SlackAdapter):
    """Workspace members -> team members (bots and deleted users skipped)."""

    resource = "users"

    def item_label(self, item: dict[str, Any], index: int) -> str:
        return f"User {item.get('id') or index + 1}"

    async def fetch_all(self, ctx: SyncContext) -> AsyncIterator[list[dict[str, Any]]]:
        async with self.client() as slack:

            async def fetch_page(cursor: str | None) -> Page:
                return await slack.users(cursor=cursor)

            async for batch in paginate_after(fetch_page, None, self.settings.max_pages):
                members = [u for u in batch if not u.get("is_bot") and not u.get("deleted")]
                if members:
                    yield members

    async def upsert_item(self, db: AsyncSession, item: dict[str, Any], ctx: SyncContext) -> bool:
        profile = item.get("profile") or {}
        name = item.get("real_name") or profile.get("real_name") or item.get("name")
        if not name:
            raise ValueError("missing name")
        await get_or_create_team_member(
            db,
            source="slack",
            name=name,
            source_user_id=item.get("id"),
            email=profile.get("email"),
        )
        return True
