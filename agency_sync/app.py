"""FastAPI application for the sync engine."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Auto-create tables for SQLite (local dev)
    if "sqlite" in settings.database_url:
        from .database import init_db
        await init_db()
    yield


app = FastAPI(title=settings.app_title, lifespan=lifespan)

from .routers import entities, health, integrations, sync  # noqa: E402

app.include_router(sync.router)
app.include_router(entities.router)
app.include_router(integrations.router)
app.include_router(health.router)
