"""
tests.conftest

Shared fixtures for service- and repository-level tests.

Responsibilities:
- Provide an in-memory SQLite session with the full schema created.
- Provide a small seeding helper for teams, permissions, mappings and principals.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from team_authz.db.init_db import init_db
from team_authz.db.models import ApiKey, Permission, PrincipalKind, Team, UserPrincipal
from team_authz.db.repositories.mappings import MappingRepo
from team_authz.db.repositories.permissions import PermissionRepo
from team_authz.db.repositories.principals import PrincipalRepo
from team_authz.db.repositories.teams import TeamRepo
from team_authz.db.session import create_sessionmaker


@pytest_asyncio.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    # StaticPool keeps the single in-memory database alive across connections.
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    await init_db(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def session(engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    async with create_sessionmaker(engine)() as session:
        yield session


class Seeder:
    """
    Builds committed fixtures through the repositories.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.principals = PrincipalRepo(session)
        self.permissions = PermissionRepo(session)
        self.teams = TeamRepo(session)
        self.mappings = MappingRepo(session)

    async def permission(self, name: str) -> Permission:
        existing = await self.permissions.get(name)
        if existing is not None:
            return existing
        permission = await self.permissions.create(name=name, description=f"{name} permission")
        await self.session.commit()
        return permission

    async def team(
        self,
        name: str,
        *,
        permissions: Iterable[str] = (),
        ldap: Iterable[str] = (),
        oidc: Iterable[str] = (),
    ) -> Team:
        team = await self.teams.create(name=name)
        for permission_name in permissions:
            await self.permissions.grant_to_team(team, await self.permission(permission_name))
        for dn in ldap:
            await self.mappings.map_ldap_group(team, dn)
        for group_name in oidc:
            group = await self.mappings.get_oidc_group(group_name)
            if group is None:
                group = await self.mappings.create_oidc_group(name=group_name)
            await self.mappings.map_oidc_group(team, group)
        await self.session.commit()
        return team

    async def oidc_group(self, name: str) -> None:
        await self.mappings.create_oidc_group(name=name)
        await self.session.commit()

    async def user(
        self,
        kind: PrincipalKind,
        username: str,
        *,
        teams: Iterable[Team] = (),
        permissions: Iterable[str] = (),
    ) -> UserPrincipal:
        user = await self.principals.create_user(kind, username)
        for team in teams:
            await self.principals.add_to_team(user, team)
        for permission_name in permissions:
            await self.permissions.grant_to_user(user, await self.permission(permission_name))
        await self.session.commit()
        return user

    async def api_key(self, key: str, *, teams: Iterable[Team] = ()) -> ApiKey:
        api_key = await self.principals.create_api_key(key=key, teams=list(teams))
        await self.session.commit()
        return api_key


@pytest_asyncio.fixture
async def seed(session: AsyncSession) -> Seeder:
    return Seeder(session)
