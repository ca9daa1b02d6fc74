"""Cross-source match suggestions and manual confirmation of suggested pairs."""

from __future__ import annotations

import logging
import uuid
from itertools import combinations

from rapidfuzz.distance import JaroWinkler
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..models.client import Client, ClientAlias
from ..models.team import ClientAssignment, TeamMember
from ..models.work import DeliverableAssignment, TimeEntry
from ..schemas.entities import ClientSuggestion, MergeOutcome, TeamMemberSuggestion
from .merge import MergeError, MergeExecutor, build_plan
from .names import normalize_company_name, normalize_person_name

log = logging.getLogger(__name__)

TEAM_MEMBER_BACKFILL = (
    "email", "monday_user_id", "slack_user_id", "annual_salary", "hourly_rate", "role", "division",
)


def similarity_score(a: str, b: str, kind: str = "company") -> float:
    """1.0 on equal normalized names, 0.95 on containment, else Jaro-Winkler."""
    normalize = normalize_company_name if kind == "company" else normalize_person_name
    na, nb = normalize(a), normalize(b)
    if not na or not nb:
        return 0.0
    if na == nb:
        return 1.0
    if na in nb or nb in na:
        return 0.95
    return JaroWinkler.normalized_similarity(na, nb)


def is_exact_match(a: str, b: str) -> bool:
    return bool(normalize_company_name(a)) and normalize_company_name(a) == normalize_company_name(b)


async def find_client_suggestions(db: AsyncSession, threshold: float | None = None) -> list[ClientSuggestion]:
    threshold = settings.suggestion_threshold if threshold is None else threshold
    clients = (
        await db.execute(select(Client.id, Client.name, Client.source).order_by(Client.name, Client.id))
    ).all()
    linked = {
        (client_id, alias.strip().lower())
        for client_id, alias in (await db.execute(select(ClientAlias.client_id, ClientAlias.alias))).all()
    }

    suggestions = []
    for a, b in combinations(clients, 2):
        if a.source == b.source:
            continue
        if (a.id, b.name.strip().lower()) in linked or (b.id, a.name.strip().lower()) in linked:
            continue
        score = similarity_score(a.name, b.name, "company")
        if score < threshold:
            continue
        suggestions.append(
            ClientSuggestion(
                client_a_id=a.id,
                client_a_name=a.name,
                client_a_source=a.source,
                client_b_id=b.id,
                client_b_name=b.name,
                client_b_source=b.source,
                confidence=round(score * 100),
                status="confirmed" if is_exact_match(a.name, b.name) else "pending",
            )
        )
    suggestions.sort(key=lambda s: -s.confidence)
    return suggestions


async def find_team_member_suggestions(
    db: AsyncSession, threshold: float | None = None
) -> list[TeamMemberSuggestion]:
    threshold = settings.suggestion_threshold if threshold is None else threshold
    members = (
        await db.execute(
            select(TeamMember.id, TeamMember.name, TeamMember.email, TeamMember.source)
            .order_by(TeamMember.name, TeamMember.id)
        )
    ).all()

    suggestions = []
    for a, b in combinations(members, 2):
        if a.source == b.source:
            continue
        if a.email and b.email and a.email.lower() == b.email.lower():
            confidence, match_type, status = 100, "email", "confirmed"
        else:
            score = similarity_score(a.name, b.name, "person")
            if score < threshold:
                continue
            confidence, match_type, status = round(score * 100), "name", "pending"
        suggestions.append(
            TeamMemberSuggestion(
                member_a_id=a.id,
                member_a_name=a.name,
                member_b_id=b.id,
                member_b_name=b.name,
                confidence=confidence,
                match_type=match_type,
                status=status,
            )
        )
    suggestions.sort(key=lambda s: -s.confidence)
    return suggestions


async def confirm_client_match(db: AsyncSession, keep_id: uuid.UUID, merge_id: uuid.UUID) -> MergeOutcome:
    """Fold ``merge_id`` into ``keep_id``, carrying its aliases over."""
    plan = await build_plan(db, merge_id, keep_id, carry_aliases=True, strategy="manual")
    return await MergeExecutor().apply(db, plan)


async def _repoint_member_rows(
    db: AsyncSession, model, keep_id: uuid.UUID, merge_id: uuid.UUID, scope: tuple[str, ...]
) -> tuple[int, int]:
    """Move rows to ``keep_id`` unless keep already owns the same scoped key."""
    columns = [getattr(model, name) for name in scope]
    kept = {tuple(row) for row in (await db.execute(select(*columns).where(model.team_member_id == keep_id))).all()}
    rows = (await db.execute(select(model.id, *columns).where(model.team_member_id == merge_id))).all()
    moved = discarded = 0
    for row in rows:
        if tuple(row[1:]) in kept:
            await db.delete(await db.get(model, row[0]))
            discarded += 1
        else:
            await db.execute(
                update(model).where(model.id == row[0]).values(team_member_id=keep_id)
                .execution_options(synchronize_session=False)
            )
            kept.add(tuple(row[1:]))
            moved += 1
    return moved, discarded


async def confirm_team_member_match(db: AsyncSession, keep_id: uuid.UUID, merge_id: uuid.UUID) -> list[str]:
    """Fold team member ``merge_id`` into ``keep_id``. Returns backfilled fields."""
    if keep_id == merge_id:
        raise MergeError("Cannot merge a team member into itself", merge_id)
    keep = await db.get(TeamMember, keep_id)
    merge = await db.get(TeamMember, merge_id)
    if keep is None or merge is None:
        raise MergeError("Team member not found", merge_id)

    try:
        await _repoint_member_rows(db, TimeEntry, keep_id, merge_id, ("monday_item_id", "date"))
        await _repoint_member_rows(db, DeliverableAssignment, keep_id, merge_id, ("deliverable_id", "role"))
        await _repoint_member_rows(db, ClientAssignment, keep_id, merge_id, ("client_id", "role"))

        values = {name: getattr(merge, name) for name in TEAM_MEMBER_BACKFILL}
        for name in TEAM_MEMBER_BACKFILL:
            setattr(merge, name, None)
        await db.flush()
        backfilled = []
        for name, value in values.items():
            if value not in (None, "") and getattr(keep, name) in (None, ""):
                setattr(keep, name, value)
                backfilled.append(name)
        await db.delete(merge)
        await db.commit()
    except Exception as exc:
        await db.rollback()
        raise MergeError(f"Team member merge failed: {exc}", merge_id) from exc
    log.info("Merged team member %s into %s (backfilled %s)", merge_id, keep_id, ", ".join(backfilled) or "none")
    return backfilled
