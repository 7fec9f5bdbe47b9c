"""
team_authz.services.synchronizer

Team membership synchronization for directory (LDAP) and OIDC users.

Responsibilities:
- Reconcile a user's team set against the complete list of groups asserted by the
  identity provider at sign-in.
- Apply the delta as independent membership primitives, so an interrupted run can be
  retried with the same input and converge.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from team_authz.db.models import PrincipalKind, Team, UserPrincipal
from team_authz.db.repositories.principals import PrincipalRepo
from team_authz.errors import store_errors
from team_authz.observability.logging import get_logger
from team_authz.services.group_mapping import GroupMappingResolver, GroupSource
from team_authz.services.membership import MembershipService

log = get_logger(__name__)

# Only externally-sourced users are synchronized; the kind selects the mapping table.
_SOURCES: dict[PrincipalKind, GroupSource] = {
    PrincipalKind.ldap: GroupSource.ldap,
    PrincipalKind.oidc: GroupSource.oidc,
}


class TeamMembershipSynchronizer:
    def __init__(self, *, session: AsyncSession) -> None:
        self._session = session
        self._principals = PrincipalRepo(session)
        self._resolver = GroupMappingResolver(session=session)
        self._membership = MembershipService(session=session)

    async def synchronize(
        self, user: UserPrincipal, asserted_groups: Iterable[str]
    ) -> UserPrincipal:
        if isinstance(asserted_groups, (str, bytes)):
            raise TypeError("asserted_groups must be a collection of identifiers, not a string")
        source = _SOURCES.get(user.kind)
        if source is None:
            raise ValueError(f"team membership is not synchronized for {user.kind} principals")

        # Authoritative and complete; keep first-seen order for deterministic adds.
        ordered = list(dict.fromkeys(asserted_groups))
        asserted = frozenset(ordered)
        bound = log.bind(principal=user.identifier, source=source.value)
        bound.debug("sync_started", asserted=ordered)

        async with store_errors(self._session):
            current = await self._principals.reload(user)
            stale = await self._stale_teams(current, source, asserted, bound)

            for team in stale.values():
                bound.debug("sync_remove", team=team.name)
                await self._membership.remove(current, team)

            for group in ordered:
                for team in await self._resolver.teams_for_group(source, group):
                    bound.debug("sync_add", team=team.name, group=group)
                    await self._membership.add(current, team)

            refreshed = await self._principals.reload(current)

        bound.info("sync_completed", teams=[t.name for t in refreshed.teams])
        return refreshed

    async def _stale_teams(
        self,
        user: UserPrincipal,
        source: GroupSource,
        asserted: frozenset[str],
        bound,
    ) -> dict[uuid.UUID, Team]:
        stale: dict[uuid.UUID, Team] = {}
        for team in user.teams:
            mapped = await self._resolver.groups_for_team(source, team)
            if not mapped:
                bound.debug("sync_team_unmapped", team=team.name)
                stale[team.id] = team
                continue
            # Any single mapped group missing from the assertion queues the team for
            # removal, even when another of its groups is asserted. Step 3 re-adds it.
            for group in sorted(mapped):
                if group not in asserted:
                    bound.debug("sync_group_not_asserted", team=team.name, group=group)
                    stale.setdefault(team.id, team)
        return stale


# --- Module Notes -----------------------------------------------------------
# Callers (the sign-in workflow, `POST /v1/admin/users/{kind}/{username}/sync`) pass the
# user returned by the identity provider handshake; the returned object is re-read.
