"""
team_authz.services.group_mapping

Read-only resolution between external groups and Teams.

Responsibilities:
- Resolve an asserted LDAP DN or OIDC group name to the Teams mapped to it.
- List the group identifiers mapped to a Team for a given source.
"""

from __future__ import annotations

import enum

from sqlalchemy.ext.asyncio import AsyncSession

from team_authz.db.models import Team
from team_authz.db.repositories.mappings import MappingRepo
from team_authz.observability.logging import get_logger

log = get_logger(__name__)


class GroupSource(enum.StrEnum):
    ldap = "LDAP"
    oidc = "OIDC"


class GroupMappingResolver:
    def __init__(self, *, session: AsyncSession) -> None:
        self._mappings = MappingRepo(session)

    async def teams_for_group(self, source: GroupSource, identifier: str) -> list[Team]:
        if source is GroupSource.ldap:
            # DNs have no group record of their own; an unmapped DN maps to nothing.
            teams = await self._mappings.teams_for_dn(identifier)
            if not teams:
                log.info("unresolved_group", source=source.value, group=identifier)
            return teams

        group = await self._mappings.get_oidc_group(identifier)
        if group is None:
            log.info("unresolved_group", source=source.value, group=identifier)
            return []
        return await self._mappings.teams_for_oidc_group(group.id)

    async def groups_for_team(self, source: GroupSource, team: Team) -> set[str]:
        if source is GroupSource.ldap:
            return set(await self._mappings.dns_for_team(team.id))
        return set(await self._mappings.oidc_group_names_for_team(team.id))

    async def is_mapped(self, source: GroupSource, team: Team, identifier: str) -> bool:
        return identifier in await self.groups_for_team(source, team)
