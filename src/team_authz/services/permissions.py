"""
team_authz.services.permissions

Permission evaluation for users, teams and API keys.

Responsibilities:
- Answer "does this subject hold permission X", optionally through team membership.
- Compute a principal's effective permission list (direct first, then per team).
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from team_authz.db.models import ApiKey, Permission, Principal, Team, UserPrincipal
from team_authz.db.repositories.permissions import PermissionRepo
from team_authz.db.repositories.principals import PrincipalRepo
from team_authz.db.repositories.teams import TeamRepo
from team_authz.errors import NotFound, store_errors


class PermissionEvaluator:
    """
    Every check re-reads the subject so results follow the committed state of the store.
    Unknown permission names evaluate to False; unknown subjects raise NotFound.
    """

    def __init__(self, *, session: AsyncSession) -> None:
        self._session = session
        self._principals = PrincipalRepo(session)
        self._permissions = PermissionRepo(session)
        self._teams = TeamRepo(session)

    async def user_has_permission(
        self, user: UserPrincipal, name: str, *, include_teams: bool = False
    ) -> bool:
        async with store_errors(self._session):
            current = await self._principals.reload(user)
            if await self._permissions.user_has(current, name):
                return True
            if not include_teams:
                return False
            for team in current.teams:
                if await self._permissions.team_has(team.id, name):
                    return True
            return False

    async def team_has_permission(self, team: Team, name: str) -> bool:
        async with store_errors(self._session):
            if team.id is None or await self._teams.get(team.id) is None:
                raise NotFound("team", team.name)
            return await self._permissions.team_has(team.id, name)

    async def api_key_has_permission(self, api_key: ApiKey, name: str) -> bool:
        # API keys inherit from their teams unconditionally; they hold nothing directly.
        async with store_errors(self._session):
            current = await self._principals.reload(api_key)
            for team in current.teams:
                if await self._permissions.team_has(team.id, name):
                    return True
            return False

    async def effective_permissions(self, principal: Principal) -> list[Permission]:
        async with store_errors(self._session):
            current = await self._principals.reload(principal)
            # Keyed by name: permissions are equal when their names are.
            collected: dict[str, Permission] = {}
            for permission in await self._permissions.direct_for(current):
                collected.setdefault(permission.name, permission)
            for team in current.teams:
                for permission in await self._permissions.for_team(team.id):
                    collected.setdefault(permission.name, permission)
            return list(collected.values())
