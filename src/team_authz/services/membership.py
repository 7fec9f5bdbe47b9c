"""
team_authz.services.membership

Principal <-> Team membership primitives.

Responsibilities:
- Add/remove a single membership edge, idempotently.
- Commit each edge on its own so a caller applying many edges can be retried safely.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from team_authz.db.models import Principal, Team
from team_authz.db.repositories.principals import PrincipalRepo
from team_authz.errors import store_errors
from team_authz.observability.logging import get_logger

log = get_logger(__name__)


class MembershipService:
    def __init__(self, *, session: AsyncSession) -> None:
        self._session = session
        self._principals = PrincipalRepo(session)

    async def add(self, principal: Principal, team: Team) -> bool:
        """
        Returns True if the edge was created, False if the principal was already a member.
        """

        subject, team_name = principal.identifier, team.name
        async with store_errors(self._session):
            added = await self._principals.add_to_team(principal, team)
            await self._session.commit()
        log.debug(
            "membership_added" if added else "membership_unchanged",
            principal=subject,
            kind=principal.kind.value,
            team=team_name,
        )
        return added

    async def remove(self, principal: Principal, team: Team) -> bool:
        """
        Returns True if the edge was removed, False if the principal was not a member.
        """

        subject, team_name = principal.identifier, team.name
        async with store_errors(self._session):
            removed = await self._principals.remove_from_team(principal, team)
            await self._session.commit()
        log.debug(
            "membership_removed" if removed else "membership_unchanged",
            principal=subject,
            kind=principal.kind.value,
            team=team_name,
        )
        return removed
