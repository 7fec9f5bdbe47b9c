"""
team_authz.db.repositories.permissions

Repository for `Permission` entities and their grants.

Responsibilities:
- Create and look up permissions by name.
- Answer "is permission X granted to this user/team" with a single COUNT query.
- Grant/revoke permissions on teams and users.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Table, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from team_authz.db.models import (
    Permission,
    Principal,
    PrincipalKind,
    Team,
    UserPrincipal,
    ldap_users_permissions,
    managed_users_permissions,
    oidc_users_permissions,
    teams_permissions,
)

# Direct grants live in one association table per user partition. API keys have none.
_DIRECT_GRANTS: dict[PrincipalKind, Table] = {
    PrincipalKind.managed: managed_users_permissions,
    PrincipalKind.ldap: ldap_users_permissions,
    PrincipalKind.oidc: oidc_users_permissions,
}


class PermissionRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, *, name: str, description: str | None = None) -> Permission:
        permission = Permission(name=name, description=description)
        self._session.add(permission)
        await self._session.flush()
        return permission

    async def get(self, name: str) -> Permission | None:
        stmt = select(Permission).where(Permission.name == name)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def list_all(self) -> list[Permission]:
        stmt = select(Permission).order_by(Permission.name)
        return list((await self._session.execute(stmt)).scalars().all())

    async def user_has(self, user: UserPrincipal, name: str) -> bool:
        grants = _DIRECT_GRANTS.get(user.kind)
        if grants is None:
            return False
        stmt = (
            select(func.count())
            .select_from(grants.join(Permission, grants.c.permission_id == Permission.id))
            .where(grants.c.user_id == user.id, Permission.name == name)
        )
        return (await self._session.execute(stmt)).scalar_one() > 0

    async def team_has(self, team_id: uuid.UUID, name: str) -> bool:
        stmt = (
            select(func.count())
            .select_from(
                teams_permissions.join(Permission, teams_permissions.c.permission_id == Permission.id)
            )
            .where(teams_permissions.c.team_id == team_id, Permission.name == name)
        )
        return (await self._session.execute(stmt)).scalar_one() > 0

    async def direct_for(self, principal: Principal) -> list[Permission]:
        grants = _DIRECT_GRANTS.get(principal.kind)
        if grants is None:
            return []
        stmt = (
            select(Permission)
            .join(grants, grants.c.permission_id == Permission.id)
            .where(grants.c.user_id == principal.id)
            .order_by(Permission.name)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def for_team(self, team_id: uuid.UUID) -> list[Permission]:
        stmt = (
            select(Permission)
            .join(teams_permissions, teams_permissions.c.permission_id == Permission.id)
            .where(teams_permissions.c.team_id == team_id)
            .order_by(Permission.name)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def grant_to_team(self, team: Team, permission: Permission) -> bool:
        if any(p.id == permission.id for p in team.permissions):
            return False
        team.permissions.append(permission)
        await self._session.flush()
        return True

    async def revoke_from_team(self, team: Team, permission: Permission) -> bool:
        remaining = [p for p in team.permissions if p.id != permission.id]
        if len(remaining) == len(team.permissions):
            return False
        team.permissions = remaining
        await self._session.flush()
        return True

    async def grant_to_user(self, user: UserPrincipal, permission: Permission) -> bool:
        if any(p.id == permission.id for p in user.permissions):
            return False
        user.permissions.append(permission)
        await self._session.flush()
        return True


# --- Module Notes -----------------------------------------------------------
# Reads use explicit queries rather than the ORM collections so checks always reflect
# committed grants, even when the caller holds an older object.
