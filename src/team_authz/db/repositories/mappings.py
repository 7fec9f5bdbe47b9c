"""
team_authz.db.repositories.mappings

Repository for external group records and Team<->group mapping rows.

Responsibilities:
- Manage OIDC group records (the identifiers an OIDC provider asserts).
- Create/remove LDAP DN and OIDC group mappings, at most one row per (team, group).
- Query mappings in both directions (group -> teams, team -> groups).
"""

from __future__ import annotations

import uuid

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from team_authz.db.models import MappedLdapGroup, MappedOidcGroup, OidcGroup, Team


class MappingRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_oidc_group(self, *, name: str) -> OidcGroup:
        group = OidcGroup(name=name)
        self._session.add(group)
        await self._session.flush()
        return group

    async def get_oidc_group(self, name: str) -> OidcGroup | None:
        stmt = select(OidcGroup).where(OidcGroup.name == name)
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def list_oidc_groups(self) -> list[OidcGroup]:
        stmt = select(OidcGroup).order_by(OidcGroup.name)
        return list((await self._session.execute(stmt)).scalars().all())

    # LDAP

    async def get_ldap_mapping(self, team_id: uuid.UUID, dn: str) -> MappedLdapGroup | None:
        stmt = select(MappedLdapGroup).where(
            MappedLdapGroup.team_id == team_id, MappedLdapGroup.dn == dn
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def map_ldap_group(self, team: Team, dn: str) -> MappedLdapGroup:
        existing = await self.get_ldap_mapping(team.id, dn)
        if existing is not None:
            return existing
        mapping = MappedLdapGroup(team_id=team.id, dn=dn)
        self._session.add(mapping)
        await self._session.flush()
        return mapping

    async def unmap_ldap_group(self, team: Team, dn: str) -> bool:
        stmt = delete(MappedLdapGroup).where(
            MappedLdapGroup.team_id == team.id, MappedLdapGroup.dn == dn
        )
        return (await self._session.execute(stmt)).rowcount > 0

    async def teams_for_dn(self, dn: str) -> list[Team]:
        stmt = (
            select(Team)
            .join(MappedLdapGroup, MappedLdapGroup.team_id == Team.id)
            .where(MappedLdapGroup.dn == dn)
            .order_by(Team.name)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def dns_for_team(self, team_id: uuid.UUID) -> list[str]:
        stmt = (
            select(MappedLdapGroup.dn)
            .where(MappedLdapGroup.team_id == team_id)
            .order_by(MappedLdapGroup.dn)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    # OIDC

    async def get_oidc_mapping(
        self, team_id: uuid.UUID, group_id: uuid.UUID
    ) -> MappedOidcGroup | None:
        stmt = select(MappedOidcGroup).where(
            MappedOidcGroup.team_id == team_id, MappedOidcGroup.group_id == group_id
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def map_oidc_group(self, team: Team, group: OidcGroup) -> MappedOidcGroup:
        existing = await self.get_oidc_mapping(team.id, group.id)
        if existing is not None:
            return existing
        mapping = MappedOidcGroup(team_id=team.id, group_id=group.id)
        self._session.add(mapping)
        await self._session.flush()
        return mapping

    async def unmap_oidc_group(self, team: Team, group: OidcGroup) -> bool:
        stmt = delete(MappedOidcGroup).where(
            MappedOidcGroup.team_id == team.id, MappedOidcGroup.group_id == group.id
        )
        return (await self._session.execute(stmt)).rowcount > 0

    async def teams_for_oidc_group(self, group_id: uuid.UUID) -> list[Team]:
        stmt = (
            select(Team)
            .join(MappedOidcGroup, MappedOidcGroup.team_id == Team.id)
            .where(MappedOidcGroup.group_id == group_id)
            .order_by(Team.name)
        )
        return list((await self._session.execute(stmt)).scalars().all())

    async def oidc_group_names_for_team(self, team_id: uuid.UUID) -> list[str]:
        stmt = (
            select(OidcGroup.name)
            .join(MappedOidcGroup, MappedOidcGroup.group_id == OidcGroup.id)
            .where(MappedOidcGroup.team_id == team_id)
            .order_by(OidcGroup.name)
        )
        return list((await self._session.execute(stmt)).scalars().all())
