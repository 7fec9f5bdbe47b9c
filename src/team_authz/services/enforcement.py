"""
team_authz.services.enforcement

Authorization decision point consumed by the request boundary.

Responsibilities:
- Decide ALLOW/DENY for a principal against a list of acceptable permissions (any one
  suffices).
- Fail closed: a missing principal, a principal that no longer exists, or a store failure
  all produce DENY.
- Record every denial as a security event without exposing the cause to the caller.
"""

from __future__ import annotations

import enum
from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from team_authz.db.models import ApiKey, Principal, PrincipalKind, UserPrincipal
from team_authz.db.repositories.principals import PrincipalRepo
from team_authz.errors import AccessError, NotFound, store_errors
from team_authz.observability.logging import get_logger
from team_authz.services.permissions import PermissionEvaluator

log = get_logger(__name__)


class Decision(enum.StrEnum):
    allow = "ALLOW"
    deny = "DENY"


class AuthorizationEnforcementPoint:
    def __init__(self, *, session: AsyncSession) -> None:
        self._session = session
        self._principals = PrincipalRepo(session)
        self._evaluator = PermissionEvaluator(session=session)

    async def authorize(self, principal: Principal | None, required: Sequence[str]) -> Decision:
        if principal is None:
            log.info("security_failure", reason="no_principal", required=list(required))
            return Decision.deny

        kind = principal.kind
        # Captured up front: a failed transaction expires ORM attributes.
        subject = principal.masked_key if kind is PrincipalKind.api_key else principal.identifier

        try:
            async with store_errors(self._session):
                if kind is PrincipalKind.api_key:
                    granted = await self._api_key_granted(principal, required)
                else:
                    granted = await self._user_granted(principal, required)
        except AccessError as e:
            log.info(
                "security_failure",
                reason=type(e).__name__,
                principal=subject,
                kind=kind.value,
                required=list(required),
            )
            return Decision.deny

        if granted:
            return Decision.allow
        log.info(
            "security_failure",
            reason="permission_not_granted",
            principal=subject,
            kind=kind.value,
            required=list(required),
        )
        return Decision.deny

    async def _api_key_granted(self, api_key: ApiKey, required: Sequence[str]) -> bool:
        for name in required:
            if await self._evaluator.api_key_has_permission(api_key, name):
                return True
        return False

    async def _user_granted(self, user: UserPrincipal, required: Sequence[str]) -> bool:
        # Re-resolve by username: the object handed in may be stale or from another session.
        current = await self._principals.find_user(user.kind, user.identifier)
        if current is None:
            raise NotFound("principal", f"{user.kind}:{user.identifier}")
        for name in required:
            if await self._evaluator.user_has_permission(current, name, include_teams=True):
                return True
        return False


# --- Module Notes -----------------------------------------------------------
# This function is read-only. The HTTP layer (`auth.deps.require_permissions`) maps
# DENY to a bare 403 regardless of the logged reason.
