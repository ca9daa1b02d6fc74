"""Duplicate client merging: a pure planner plus a transactional executor.

``plan_merge`` works on plain snapshots and decides which dependent rows
move to the primary, which are discarded because the primary already owns
the same scoped key, which aliases are written, and which empty primary
fields are backfilled. ``MergeExecutor.apply`` carries one plan out inside a
single transaction. ``DuplicateMergeResolver`` runs the two passes:

1. secondary-source clients (HubSpot deals, Xero contacts) fold into the
   authoritative primary-source clients;
2. remaining clients sharing an extracted company name fold together.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import SyncSettings, settings as default_settings
from ..models.client import EXTERNAL_KEY_FIELDS, Client, ClientAlias, Division
from ..models.communication import CommunicationLog, MeetingLog
from ..models.financial import FinancialRecord
from ..models.team import ClientAssignment
from ..models.work import Deliverable, TimeEntry
from ..schemas.entities import MergeOutcome, MergeReport
from .matcher import Candidate, CandidateSet, EntityMatcher
from .names import extract_company_name, get_service_type, normalize_for_match

log = logging.getLogger(__name__)

KEY_FIELDS = ("monday_item_id", "hubspot_deal_id", "hubspot_company_id", "xero_contact_id")
BACKFILL_FIELDS = (
    "industry", "website", "retainer_value", "deal_stage", "notes", "start_date", "end_date",
)
SECONDARY_KEY_FIELDS = ("hubspot_deal_id", "xero_contact_id")

DEPENDENT_MODELS: dict[str, Any] = {
    "financial": FinancialRecord,
    "time_entry": TimeEntry,
    "deliverable": Deliverable,
    "communication": CommunicationLog,
    "meeting": MeetingLog,
    "client_assignment": ClientAssignment,
}


class MergeError(Exception):
    """A merge failed and was rolled back."""

    def __init__(self, message: str, duplicate_id: uuid.UUID | None = None):
        self.message = message
        self.duplicate_id = duplicate_id
        super().__init__(message)


@dataclass(frozen=True)
class AliasSnapshot:
    id: uuid.UUID
    alias: str
    source: str


@dataclass
class ClientSnapshot:
    id: uuid.UUID
    name: str
    source: str | None = None
    status: str = "active"
    fields: dict[str, Any] = field(default_factory=dict)
    aliases: list[AliasSnapshot] = field(default_factory=list)

    def key(self, name: str) -> Any:
        return self.fields.get(name)


@dataclass(frozen=True)
class DependentSnapshot:
    """A row referencing a client. ``scope_key`` is its unique key minus client_id."""

    kind: str
    id: uuid.UUID
    scope_key: tuple | None = None


@dataclass(frozen=True)
class NewAlias:
    alias: str
    source: str
    external_id: str | None = None


@dataclass
class MergePlan:
    duplicate_id: uuid.UUID
    duplicate_name: str
    primary_id: uuid.UUID
    primary_name: str
    strategy: str | None = None
    repoint: list[DependentSnapshot] = field(default_factory=list)
    discard: list[DependentSnapshot] = field(default_factory=list)
    new_alias: NewAlias | None = None
    move_aliases: list[uuid.UUID] = field(default_factory=list)
    backfill: dict[str, Any] = field(default_factory=dict)
    clear_keys: list[str] = field(default_factory=list)
    state: str = "planned"  # planned, merging, deleted, failed

    def outcome(self) -> MergeOutcome:
        return MergeOutcome(
            duplicate_id=self.duplicate_id,
            duplicate_name=self.duplicate_name,
            primary_id=self.primary_id,
            primary_name=self.primary_name,
            strategy=self.strategy,
            repointed=len(self.repoint),
            discarded=len(self.discard),
            backfilled=sorted(self.backfill),
        )


def _alias_source(duplicate: ClientSnapshot) -> tuple[str, str | None]:
    """Source under which the duplicate's name is remembered, and its source key."""
    if duplicate.source in EXTERNAL_KEY_FIELDS:
        source = duplicate.source
        return source, duplicate.key(EXTERNAL_KEY_FIELDS[source])
    for source in ("hubspot", "xero", "monday"):
        value = duplicate.key(EXTERNAL_KEY_FIELDS[source])
        if value:
            return source, value
    return duplicate.source or "merge", None


def plan_merge(
    duplicate: ClientSnapshot,
    primary: ClientSnapshot,
    dependents: list[DependentSnapshot],
    *,
    primary_dependents: list[DependentSnapshot] | None = None,
    carry_aliases: bool = False,
    strategy: str | None = None,
) -> MergePlan:
    """Plan folding ``duplicate`` into ``primary``. Pure; touches no storage.

    ``dependents`` are the duplicate's rows; ``primary_dependents`` are the
    primary's, used only to detect scoped-key collisions (primary wins).
    """
    if duplicate.id == primary.id:
        raise MergeError("Cannot merge a client into itself", duplicate.id)

    plan = MergePlan(
        duplicate_id=duplicate.id,
        duplicate_name=duplicate.name,
        primary_id=primary.id,
        primary_name=primary.name,
        strategy=strategy,
    )

    taken = {(d.kind, d.scope_key) for d in primary_dependents or [] if d.scope_key is not None}
    for dependent in dependents:
        if dependent.scope_key is not None and (dependent.kind, dependent.scope_key) in taken:
            plan.discard.append(dependent)
        else:
            plan.repoint.append(dependent)

    source, external_id = _alias_source(duplicate)
    name_key = (duplicate.name.strip().lower(), source)
    primary_aliases = {(a.alias.strip().lower(), a.source) for a in primary.aliases}
    if carry_aliases:
        plan.move_aliases = [
            a.id for a in duplicate.aliases if (a.alias.strip().lower(), a.source) not in primary_aliases
        ]
    held = [a for a in duplicate.aliases if (a.alias.strip().lower(), a.source) == name_key]
    if name_key not in primary_aliases:
        if not held:
            plan.new_alias = NewAlias(alias=duplicate.name.strip(), source=source, external_id=external_id)
        elif held[0].id not in plan.move_aliases:
            plan.move_aliases.append(held[0].id)

    for name in KEY_FIELDS:
        if duplicate.key(name):
            plan.clear_keys.append(name)
            if not primary.key(name):
                plan.backfill[name] = duplicate.key(name)
    for name in BACKFILL_FIELDS:
        value = duplicate.key(name)
        if value not in (None, "") and primary.key(name) in (None, ""):
            plan.backfill[name] = value
    return plan


async def load_client_snapshot(db: AsyncSession, client_id: uuid.UUID) -> ClientSnapshot | None:
    client = await db.get(Client, client_id)
    if client is None:
        return None
    alias_rows = (
        await db.execute(
            select(ClientAlias.id, ClientAlias.alias, ClientAlias.source).where(ClientAlias.client_id == client_id)
        )
    ).all()
    return ClientSnapshot(
        id=client.id,
        name=client.name,
        source=client.source,
        status=client.status,
        fields={name: getattr(client, name) for name in (*KEY_FIELDS, *BACKFILL_FIELDS)},
        aliases=[AliasSnapshot(id=r.id, alias=r.alias, source=r.source) for r in alias_rows],
    )


async def load_dependents(db: AsyncSession, client_id: uuid.UUID) -> list[DependentSnapshot]:
    """Every row referencing ``client_id``, with its client-scoped key where one exists."""
    dependents: list[DependentSnapshot] = []
    rows = await db.execute(
        select(FinancialRecord.id, FinancialRecord.month, FinancialRecord.type, FinancialRecord.category)
        .where(FinancialRecord.client_id == client_id)
    )
    dependents += [DependentSnapshot("financial", r.id, (r.month, r.type, r.category)) for r in rows]
    rows = await db.execute(
        select(ClientAssignment.id, ClientAssignment.team_member_id, ClientAssignment.role)
        .where(ClientAssignment.client_id == client_id)
    )
    dependents += [DependentSnapshot("client_assignment", r.id, (r.team_member_id, r.role)) for r in rows]
    for kind in ("time_entry", "deliverable", "communication", "meeting"):
        model = DEPENDENT_MODELS[kind]
        ids = (await db.execute(select(model.id).where(model.client_id == client_id))).scalars().all()
        dependents += [DependentSnapshot(kind, row_id) for row_id in ids]
    return dependents


async def count_dependents(db: AsyncSession) -> int:
    total = 0
    for model in DEPENDENT_MODELS.values():
        total += len((await db.execute(select(model.id))).scalars().all())
    return total


async def build_plan(
    db: AsyncSession,
    duplicate_id: uuid.UUID,
    primary_id: uuid.UUID,
    *,
    carry_aliases: bool = False,
    strategy: str | None = None,
) -> MergePlan:
    duplicate = await load_client_snapshot(db, duplicate_id)
    primary = await load_client_snapshot(db, primary_id)
    if duplicate is None or primary is None:
        raise MergeError("Client not found", duplicate_id)
    return plan_merge(
        duplicate,
        primary,
        await load_dependents(db, duplicate_id),
        primary_dependents=await load_dependents(db, primary_id),
        carry_aliases=carry_aliases,
        strategy=strategy,
    )


class MergeExecutor:
    """Applies a MergePlan in one transaction on the given session."""

    async def apply(self, db: AsyncSession, plan: MergePlan) -> MergeOutcome:
        plan.state = "merging"
        try:
            await self._apply(db, plan)
            await db.commit()
        except Exception as exc:
            await db.rollback()
            plan.state = "failed"
            log.error("Merge of %r into %r failed: %s", plan.duplicate_name, plan.primary_name, exc)
            raise MergeError(f"Merge of {plan.duplicate_name!r} failed: {exc}", plan.duplicate_id) from exc
        plan.state = "deleted"
        service = get_service_type(plan.duplicate_name)
        log.info(
            "Merged %r -> %r%s (%d repointed, %d discarded)",
            plan.duplicate_name, plan.primary_name, f" [{service}]" if service else "",
            len(plan.repoint), len(plan.discard),
        )
        return plan.outcome()

    async def _apply(self, db: AsyncSession, plan: MergePlan) -> None:
        for kind, model in DEPENDENT_MODELS.items():
            discard_ids = [d.id for d in plan.discard if d.kind == kind]
            if discard_ids:
                await db.execute(
                    delete(model).where(model.id.in_(discard_ids)).execution_options(synchronize_session=False)
                )
            repoint_ids = [d.id for d in plan.repoint if d.kind == kind]
            if repoint_ids:
                await db.execute(
                    update(model)
                    .where(model.id.in_(repoint_ids))
                    .values(client_id=plan.primary_id)
                    .execution_options(synchronize_session=False)
                )

        if plan.move_aliases:
            await db.execute(
                update(ClientAlias)
                .where(ClientAlias.id.in_(plan.move_aliases))
                .values(client_id=plan.primary_id)
                .execution_options(synchronize_session=False)
            )
        if plan.new_alias:
            exists = (
                await db.execute(
                    select(ClientAlias.id).where(
                        ClientAlias.alias == plan.new_alias.alias, ClientAlias.source == plan.new_alias.source
                    )
                )
            ).first()
            if exists is None:
                db.add(ClientAlias(client_id=plan.primary_id, **asdict(plan.new_alias)))

        duplicate = await db.get(Client, plan.duplicate_id)
        primary = await db.get(Client, plan.primary_id)
        if duplicate is None or primary is None:
            raise MergeError("Client vanished during merge", plan.duplicate_id)

        # Unique keys must leave the duplicate before the primary takes them.
        for name in plan.clear_keys:
            setattr(duplicate, name, None)
        await db.flush()
        for name, value in plan.backfill.items():
            setattr(primary, name, value)

        await db.execute(delete(ClientAlias).where(ClientAlias.client_id == plan.duplicate_id))
        await db.execute(delete(Division).where(Division.client_id == plan.duplicate_id))
        await db.flush()
        db.expunge(duplicate)
        await db.execute(delete(Client).where(Client.id == plan.duplicate_id))
        await db.flush()


def primary_key_field(settings: SyncSettings) -> str:
    return EXTERNAL_KEY_FIELDS.get(settings.primary_source, "monday_item_id")


class DuplicateMergeResolver:
    """Two-pass duplicate client merge over the whole store."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        matcher: EntityMatcher | None = None,
        settings: SyncSettings | None = None,
        executor: MergeExecutor | None = None,
    ):
        self.session_factory = session_factory
        self.matcher = matcher or EntityMatcher()
        self.settings = settings or default_settings
        self.executor = executor or MergeExecutor()

    async def _clients(self, db: AsyncSession) -> list[Client]:
        stmt = select(Client).order_by(Client.name, Client.id)
        if not self.settings.include_prospects_in_merge:
            stmt = stmt.where(Client.status != "prospect")
        return list((await db.execute(stmt)).scalars().all())

    async def run(self, dry_run: bool = False) -> MergeReport:
        report = MergeReport(dry_run=dry_run)
        async with self.session_factory() as db:
            merged: set[uuid.UUID] = set()
            await self._pass1(db, report, merged, dry_run)
            await self._pass2(db, report, merged, dry_run)
        log.info(
            "Merge %s: pass 1 %d, pass 2 %d, unmatched %d",
            "planned" if dry_run else "complete",
            len(report.pass1_merged), len(report.pass2_merged), len(report.unmatched),
        )
        return report

    async def _merge(
        self, db: AsyncSession, duplicate_id: uuid.UUID, primary_id: uuid.UUID, strategy: str | None, dry_run: bool
    ) -> MergeOutcome:
        plan = await build_plan(db, duplicate_id, primary_id, carry_aliases=True, strategy=strategy)
        if dry_run:
            return plan.outcome()
        return await self.executor.apply(db, plan)

    async def _pass1(self, db: AsyncSession, report: MergeReport, merged: set[uuid.UUID], dry_run: bool) -> None:
        key_field = primary_key_field(self.settings)
        clients = await self._clients(db)
        authoritative = [c for c in clients if getattr(c, key_field)]
        secondary = [
            c for c in clients
            if not getattr(c, key_field) and any(getattr(c, f) for f in SECONDARY_KEY_FIELDS if f != key_field)
        ]
        if not authoritative:
            report.unmatched = [c.name for c in secondary]
            return

        names = {c.id: c.name for c in authoritative}
        for candidate in secondary:
            alias_rows = (
                await db.execute(
                    select(ClientAlias.alias, ClientAlias.client_id).where(
                        ClientAlias.source == candidate.source, ClientAlias.client_id.in_(list(names))
                    )
                )
            ).all()
            candidates = CandidateSet(
                candidates=[Candidate(id=cid, name=extract_company_name(name)) for cid, name in names.items()],
                aliases={alias: cid for alias, cid in alias_rows},
            )
            result = self.matcher.match(extract_company_name(candidate.name), candidates)
            if result is None:
                report.unmatched.append(candidate.name)
                continue
            report.pass1_merged.append(
                await self._merge(db, candidate.id, result.id, result.strategy, dry_run)
            )
            merged.add(candidate.id)

    async def _pass2(self, db: AsyncSession, report: MergeReport, merged: set[uuid.UUID], dry_run: bool) -> None:
        key_field = primary_key_field(self.settings)
        groups: dict[str, list[Client]] = {}
        for client in await self._clients(db):
            if client.id in merged:
                continue
            key = normalize_for_match(extract_company_name(client.name))
            if key:
                groups.setdefault(key, []).append(client)

        for key in sorted(groups):
            group = groups[key]
            if len(group) < 2:
                continue
            group.sort(key=lambda c: (0 if getattr(c, key_field) else 1, len(c.name), c.name, str(c.id)))
            primary, duplicates = group[0], group[1:]
            for duplicate in duplicates:
                report.pass2_merged.append(
                    await self._merge(db, duplicate.id, primary.id, "company_group", dry_run)
                )
