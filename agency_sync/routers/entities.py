"""JSON API for match suggestions, manual confirmation and duplicate merging."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import settings
from ..database import get_db
from ..deps import get_session_factory
from ..entities.merge import DuplicateMergeResolver, MergeError
from ..entities.suggestions import (
    confirm_client_match,
    confirm_team_member_match,
    find_client_suggestions,
    find_team_member_suggestions,
)
from ..schemas.entities import ConfirmMatchRequest, MergeOutcome, MergeReport

router = APIRouter(prefix="/api/entities", tags=["entities"])


@router.get("/suggestions")
async def suggestions(db: AsyncSession = Depends(get_db)):
    return {
        "clients": await find_client_suggestions(db),
        "team_members": await find_team_member_suggestions(db),
    }


@router.post("/clients/confirm", response_model=MergeOutcome)
async def confirm_client(data: ConfirmMatchRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await confirm_client_match(db, data.keep_id, data.merge_id)
    except MergeError as exc:
        raise HTTPException(status_code=400, detail=exc.message)


@router.post("/team-members/confirm")
async def confirm_team_member(data: ConfirmMatchRequest, db: AsyncSession = Depends(get_db)):
    try:
        backfilled = await confirm_team_member_match(db, data.keep_id, data.merge_id)
    except MergeError as exc:
        raise HTTPException(status_code=400, detail=exc.message)
    return {"keep_id": str(data.keep_id), "merged_id": str(data.merge_id), "backfilled": backfilled}


@router.post("/merge-duplicates", response_model=MergeReport)
async def merge_duplicates(
    dry_run: bool = False,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    resolver = DuplicateMergeResolver(session_factory, settings=settings)
    try:
        return await resolver.run(dry_run=dry_run)
    except MergeError as exc:
        raise HTTPException(status_code=500, detail=exc.message)
