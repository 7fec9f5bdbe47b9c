"""
team_authz.db.repositories.teams

Repository for `Team` entities.

Responsibilities:
- Create, look up, list and rename teams.
"""

from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from team_authz.db.models import Team


class TeamRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, *, name: str) -> Team:
        team = Team(name=name, permissions=[])
        self._session.add(team)
        await self._session.flush()
        return team

    async def get(self, team_id: uuid.UUID) -> Team | None:
        return await self._session.get(Team, team_id)

    async def get_by_name(self, name: str) -> Team | None:
        stmt = select(Team).where(Team.name == name)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def list_all(self) -> list[Team]:
        stmt = select(Team).order_by(Team.name)
        return list((await self._session.execute(stmt)).scalars().all())

    async def rename(self, team_id: uuid.UUID, *, name: str) -> Team | None:
        team = await self._session.get(Team, team_id, with_for_update=True)
        if team is None:
            return None
        team.name = name
        await self._session.flush()
        return team
