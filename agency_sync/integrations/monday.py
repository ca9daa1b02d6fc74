"""monday.com GraphQL client and board sync adapters (clients, time tracking, creatives).

Board ids and per-board column mappings live in the monday IntegrationConfig:

    {
        "board_ids": {"clients": [...], "time_tracking": [...], "creatives": [...]},
        "column_mappings": {"<board_id>": {"time_tracking": "...", "people": "...", ...}}
    }
"""

from __future__ import annotations

import logging
import re
from datetime import date
from functools import partial
from typing import Any, AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

from ..entities.matcher import AliasMatch, EntityMatcher, ExactNameMatch
from ..schemas.sync import SyncContext
from ..services.client_svc import fill_missing, resolve_or_create_client
from ..services.record_svc import ensure_deliverable_assignment, upsert_deliverable, upsert_time_entry
from ..services.team_svc import resolve_team_member
from ..sync.adapter import SyncAdapter
from ..sync.normalize import PersonRef, normalize
from ..sync.pagination import Page, paginate_cursor
from .http import ProviderClient, ProviderError

log = logging.getLogger(__name__)

OVERHEAD_GROUPS = {"swan studio", "swan", "internal", "overhead"}
DONE_STATUSES = {"done", "completed", "complete"}
CHURNED_STATUSES = {"churned", "ended", "cancelled", "canceled", "lost", "inactive"}
ROLE_COLUMNS = ("editor", "animator", "designer", "reviewer")
EDIT_CODE_RE = re.compile(r"^([A-Z]{2,4}-\d{3,4})")

ITEM_FIELDS = """
    id
    name
    created_at
    group { id title }
    column_values { id type text value }
"""

FIRST_PAGE_QUERY = (
    "query ($boardId: [ID!]!, $limit: Int!) {"
    " boards(ids: $boardId) { items_page(limit: $limit) { cursor items {" + ITEM_FIELDS + "} } } }"
)

NEXT_PAGE_QUERY = (
    "query ($cursor: String!, $limit: Int!) {"
    " next_items_page(cursor: $cursor, limit: $limit) { cursor items {" + ITEM_FIELDS + "} } }"
)


class MondayClient(ProviderClient):
    provider = "monday"
    base_url = "https://api.monday.com"

    def __init__(self, token: str | None, *, api_version: str = "2024-10", **kwargs: Any):
        self.api_version = api_version
        super().__init__(token, **kwargs)

    def default_headers(self) -> dict[str, str]:
        return {
            "Authorization": self.token,
            "Content-Type": "application/json",
            "API-Version": self.api_version,
        }

    async def query(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        payload = await self._post("/v2", {"query": query, "variables": variables or {}})
        errors = payload.get("errors") if isinstance(payload, dict) else None
        if errors:
            messages = ", ".join(str(e.get("message", e)) for e in errors if isinstance(e, dict)) or str(errors)
            raise ProviderError(f"monday GraphQL error: {messages}", provider=self.provider)
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise ProviderError("monday API returned no data", provider=self.provider)
        return data

    async def first_items_page(self, board_id: str, limit: int = 100) -> Page:
        data = await self.query(FIRST_PAGE_QUERY, {"boardId": [str(board_id)], "limit": limit})
        boards = data.get("boards") or []
        if not boards:
            raise ProviderError(f"Board {board_id} not found", provider=self.provider)
        page = boards[0].get("items_page") or {}
        return Page(items=list(page.get("items") or []), next_token=page.get("cursor"))

    async def next_items_page(self, cursor: str, limit: int = 100) -> Page:
        data = await self.query(NEXT_PAGE_QUERY, {"cursor": cursor, "limit": limit})
        page = data.get("next_items_page") or {}
        return Page(items=list(page.get("items") or []), next_token=page.get("cursor"))


def find_column(item: dict[str, Any], column_id: str | None) -> dict[str, Any] | None:
    if not column_id:
        return None
    for col in item.get("column_values") or []:
        if col.get("id") == column_id:
            return col
    return None


def find_column_by_type(item: dict[str, Any], column_type: str) -> dict[str, Any] | None:
    wanted = {column_type, column_type.replace("_", "-")}
    for col in item.get("column_values") or []:
        if col.get("type") in wanted:
            return col
    return None


def column_value(
    item: dict[str, Any],
    kind: str,
    column_id: str | None = None,
    fallback_type: str | None = None,
) -> Any:
    """Normalize a mapped column, falling back to the first column of ``fallback_type``."""
    col = find_column(item, column_id)
    if col is None and fallback_type:
        col = find_column_by_type(item, fallback_type)
    if col is None:
        return None
    return normalize(kind, col.get("value"), col.get("text"))


def is_overhead(group_title: str) -> bool:
    return group_title.strip().lower() in OVERHEAD_GROUPS


def extract_edit_code(name: str) -> str | None:
    match = EDIT_CODE_RE.match(name or "")
    return match.group(1) if match else None


def _has_time_value(col: dict[str, Any] | None) -> bool:
    if col is None:
        return False
    return bool(col.get("text")) or col.get("value") not in (None, "", "{}")


class MondayBoardAdapter(SyncAdapter):
    provider = "monday"
    board_key = ""

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._column_mappings: dict[str, dict[str, str]] | None = None

    def client(self) -> MondayClient:
        return MondayClient(
            self.settings.monday_token,
            api_version=self.settings.monday_api_version,
            limiter=self.limiter,
            base_url=self.settings.monday_base_url,
            timeout=self.settings.http_timeout_seconds,
            transport=self.transport,
        )

    def keep(self, item: dict[str, Any]) -> bool:
        return True

    async def mappings(self, board_id: str) -> dict[str, str]:
        if self._column_mappings is None:
            config = await self.load_config()
            self._column_mappings = config.get("column_mappings") or {}
        return dict(self._column_mappings.get(str(board_id)) or {})

    async def fetch_all(self, ctx: SyncContext) -> AsyncIterator[list[dict[str, Any]]]:
        config = await self.load_config()
        board_ids = [str(b) for b in (config.get("board_ids") or {}).get(self.board_key) or []]
        self._column_mappings = config.get("column_mappings") or {}
        if not board_ids:
            log.info("[Sync %s] No %s boards configured", str(ctx.import_id)[:8], self.board_key)
            return

        page_size = self.settings.page_size
        async with self.client() as monday:
            for board_id in board_ids:
                log.info("[Sync %s] Fetching items from board %s", str(ctx.import_id)[:8], board_id)
                pages = paginate_cursor(
                    partial(monday.first_items_page, board_id, page_size),
                    partial(monday.next_items_page, limit=page_size),
                    page_size,
                    self.settings.max_pages,
                )
                async for batch in pages:
                    for item in batch:
                        item["_board_id"] = board_id
                    kept = [item for item in batch if self.keep(item)]
                    if kept:
                        yield kept


class MondayClientsAdapter(MondayBoardAdapter):
    """Client board items -> canonical clients carrying the primary-source key."""

    resource = "clients"
    board_key = "clients"

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        # Primary-source items must never be folded into a near-name match.
        self.strict_matcher = EntityMatcher([AliasMatch(), ExactNameMatch()])

    async def upsert_item(self, db: AsyncSession, item: dict[str, Any], ctx: SyncContext) -> bool:
        item_id = str(item.get("id") or "")
        name = (item.get("name") or "").strip()
        if not item_id or not name:
            raise ValueError("item has no id or name")

        maps = await self.mappings(item["_board_id"])
        status_label = column_value(item, "status", maps.get("status"), "status")
        status = "churned" if (status_label or "").lower() in CHURNED_STATUSES else "active"
        values = {
            "website": column_value(item, "text", maps.get("website")),
            "industry": column_value(item, "text", maps.get("industry")),
            "retainer_value": column_value(item, "number", maps.get("retainer")),
            "start_date": column_value(item, "date", maps.get("start_date")),
        }

        candidates = await self.client_candidates(db)
        client, created = await resolve_or_create_client(
            db,
            self.strict_matcher,
            candidates,
            name=name,
            source="monday",
            key_field="monday_item_id",
            key_value=item_id,
            defaults={"status": status, **{k: v for k, v in values.items() if v is not None}},
        )
        if not created:
            # Items absorbed by a merge resolve through an alias and must not rename the survivor.
            if client.monday_item_id == item_id:
                client.name = name
                client.status = status
            client.source = "monday"
            fill_missing(client, values)
        return True


class MondayTimeTrackingAdapter(MondayBoardAdapter):
    """Time tracking items -> one TimeEntry per assigned person."""

    resource = "time_tracking"
    board_key = "time_tracking"

    def keep(self, item: dict[str, Any]) -> bool:
        maps = (self._column_mappings or {}).get(item.get("_board_id", "")) or {}
        col = find_column(item, maps.get("time_tracking")) or find_column_by_type(item, "time_tracking")
        return _has_time_value(col)

    async def upsert_item(self, db: AsyncSession, item: dict[str, Any], ctx: SyncContext) -> bool:
        item_id = str(item.get("id") or "")
        if not item_id:
            raise ValueError("item has no id")
        board_id = item.get("_board_id") or ""
        maps = await self.mappings(board_id)

        hours = column_value(item, "time", maps.get("time_tracking"), "time_tracking")
        people: list[PersonRef] = column_value(item, "people", maps.get("people"), "people") or []
        entry_date = column_value(item, "date", maps.get("date"), "date")
        if entry_date is None:
            # Creation day: stable across runs, unlike today.
            entry_date = normalize("date", item.get("created_at"))
        if entry_date is None:
            raise ValueError("item has no date")

        group = ((item.get("group") or {}).get("title") or "").strip()
        overhead = is_overhead(group)
        client_id = None
        if group and not overhead:
            client_id = self.matcher.resolve(group, await self.client_candidates(db))

        member_ids = []
        for person in people:
            if not person.is_person:
                continue
            member = await resolve_team_member(db, source="monday", source_user_id=person.id)
            member_ids.append(member.id if member else None)
        if not people:
            member_ids.append(None)

        for member_id in dict.fromkeys(member_ids):
            await upsert_time_entry(
                db,
                monday_item_id=item_id,
                team_member_id=member_id,
                entry_date=entry_date,
                client_id=client_id,
                hours=hours,
                monday_board_id=board_id,
                description=item.get("name"),
                is_overhead=overhead,
            )
        return bool(member_ids)


class MondayCreativesAdapter(MondayBoardAdapter):
    """Creatives items -> deliverables plus per-role assignments."""

    resource = "creatives"
    board_key = "creatives"

    async def upsert_item(self, db: AsyncSession, item: dict[str, Any], ctx: SyncContext) -> bool:
        item_id = str(item.get("id") or "")
        name = (item.get("name") or "").strip()
        if not item_id or not name:
            raise ValueError("item has no id or name")
        board_id = item.get("_board_id") or ""
        maps = await self.mappings(board_id)

        status = column_value(item, "status", maps.get("status"), "status")
        due_date = column_value(item, "date", maps.get("due_date"), "date")
        revisions = column_value(item, "number", maps.get("revision_count")) if maps.get("revision_count") else None

        group = ((item.get("group") or {}).get("title") or "").strip()
        client_id = None
        if group and not is_overhead(group):
            client_id = self.matcher.resolve(group, await self.client_candidates(db))

        values: dict[str, Any] = {
            "monday_board_id": board_id,
            "client_id": client_id,
            "name": name,
            "edit_code": extract_edit_code(name),
            "status": status,
            "due_date": due_date,
            "revision_count": int(round(revisions or 0)),
        }
        deliverable, _ = await upsert_deliverable(db, monday_item_id=item_id, values=values)
        if (status or "").lower() in DONE_STATUSES:
            deliverable.completed_date = deliverable.completed_date or date.today()
        else:
            deliverable.completed_date = None

        role_columns = {role: maps[role] for role in ROLE_COLUMNS if maps.get(role)}
        if not role_columns:
            role_columns = {"editor": maps.get("people")}
        for role, column_id in role_columns.items():
            fallback = "people" if column_id is None else None
            people: list[PersonRef] = column_value(item, "people", column_id, fallback) or []
            for person in people:
                if not person.is_person:
                    continue
                member = await resolve_team_member(db, source="monday", source_user_id=person.id)
                if member is None:
                    continue
                await ensure_deliverable_assignment(
                    db, deliverable_id=deliverable.id, team_member_id=member.id, role=role
                )
        return True
