"""
team_authz.api.deps

FastAPI dependency wiring for the API layer.

Responsibilities:
- Provide dependency functions for settings and DB sessions.
- Encapsulate app.state access patterns (engine/sessionmaker).
"""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from team_authz.settings import Settings, get_settings


def settings_dep(request: Request) -> Settings:
    # Apps built with explicit settings (tests, embedding) carry them on app.state.
    settings = getattr(request.app.state, "settings", None)
    return settings if settings is not None else get_settings()


def sessionmaker_from_app(request: Request) -> async_sessionmaker[AsyncSession]:
    # Created on app startup in `team_authz.api.app.create_app`.
    return request.app.state.sessionmaker  # type: ignore[attr-defined]


async def db_session(
    session_factory: async_sessionmaker[AsyncSession] = Depends(sessionmaker_from_app),
) -> AsyncIterator[AsyncSession]:
    # One session per request, shared by the auth dependencies and the endpoint.
    async with session_factory() as session:
        yield session
