"""
team_authz.db.repositories.principals

Repository for principal entities (managed/LDAP/OIDC users and API keys).

Responsibilities:
- Create and look up principals, routed by `PrincipalKind`.
- Re-read principals from the store (fresh team sets).
- Apply single membership edges under a row lock.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from team_authz.db.models import (
    USER_MODELS,
    ApiKey,
    Principal,
    PrincipalKind,
    Team,
    UserPrincipal,
)
from team_authz.errors import NotFound

_PRINCIPAL_MODELS: dict[PrincipalKind, type[Principal]] = {
    **USER_MODELS,
    PrincipalKind.api_key: ApiKey,
}

# get_user_principal() searches the user partitions in this order.
_USER_SEARCH_ORDER = (PrincipalKind.managed, PrincipalKind.ldap, PrincipalKind.oidc)


def _user_model(kind: PrincipalKind) -> type[UserPrincipal]:
    model = USER_MODELS.get(kind)
    if model is None:
        raise ValueError(f"not a user principal kind: {kind}")
    return model


class PrincipalRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_user(self, kind: PrincipalKind, username: str, **attrs: Any) -> UserPrincipal:
        model = _user_model(kind)
        # Initialize collections so the new row never needs a lazy load.
        user = model(username=username, teams=[], permissions=[], **attrs)
        self._session.add(user)
        await self._session.flush()
        return user

    async def find_user(self, kind: PrincipalKind, username: str) -> UserPrincipal | None:
        model = _user_model(kind)
        stmt = (
            select(model)
            .where(model.username == username)
            .execution_options(populate_existing=True)
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def get_user_principal(self, username: str) -> UserPrincipal | None:
        for kind in _USER_SEARCH_ORDER:
            user = await self.find_user(kind, username)
            if user is not None:
                return user
        return None

    async def list_users(self, kind: PrincipalKind) -> list[UserPrincipal]:
        model = _user_model(kind)
        stmt = select(model).order_by(model.username)
        return list((await self._session.execute(stmt)).scalars().all())

    async def create_api_key(self, *, key: str, teams: list[Team]) -> ApiKey:
        api_key = ApiKey(key=key, teams=list(teams))
        self._session.add(api_key)
        await self._session.flush()
        return api_key

    async def get_api_key(self, key: str) -> ApiKey | None:
        stmt = select(ApiKey).where(ApiKey.key == key).execution_options(populate_existing=True)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def regenerate_api_key(self, api_key: ApiKey, *, key: str) -> ApiKey:
        locked = await self.lock(api_key)
        locked.key = key
        await self._session.flush()
        return locked

    async def resolve(self, kind: PrincipalKind, identifier: str) -> Principal | None:
        # Users are addressed by username, API keys by their key string.
        if kind is PrincipalKind.api_key:
            return await self.get_api_key(identifier)
        return await self.find_user(kind, identifier)

    async def reload(self, principal: Principal) -> Principal:
        return await self._get(principal, with_for_update=False)

    async def lock(self, principal: Principal) -> Principal:
        # Serializes read-modify-write of the team set for this principal.
        return await self._get(principal, with_for_update=True)

    async def add_to_team(self, principal: Principal, team: Team) -> bool:
        locked = await self.lock(principal)
        target = await self._session.get(Team, team.id) if team.id is not None else None
        if target is None:
            raise NotFound("team", team.id)
        # Membership is keyed on team id, never on object identity.
        if any(t.id == target.id for t in locked.teams):
            return False
        locked.teams.append(target)
        await self._session.flush()
        return True

    async def remove_from_team(self, principal: Principal, team: Team) -> bool:
        locked = await self.lock(principal)
        remaining = [t for t in locked.teams if t.id != team.id]
        if len(remaining) == len(locked.teams):
            return False
        locked.teams = remaining
        await self._session.flush()
        return True

    async def _get(self, principal: Principal, *, with_for_update: bool) -> Principal:
        model = _PRINCIPAL_MODELS[principal.kind]
        pk: uuid.UUID | None = principal.id
        found = None
        if pk is not None:
            found = await self._session.get(
                model, pk, with_for_update=with_for_update, populate_existing=True
            )
        if found is None:
            raise NotFound("principal", f"{principal.kind}:{principal.identifier}")
        return found


# --- Module Notes -----------------------------------------------------------
# Row locks are no-ops on SQLite; on PostgreSQL they serialize concurrent admin
# add/remove and sync calls for the same principal (last writer no longer wins).
