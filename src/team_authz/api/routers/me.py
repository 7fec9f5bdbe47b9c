"""
team_authz.api.routers.me

Caller self-inspection endpoints.

Responsibilities:
- Describe the authenticated principal (kind, identifier, teams).
- List the caller's effective permissions (direct first, then per team).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from team_authz.api.deps import db_session
from team_authz.auth.deps import require_principal
from team_authz.db.models import Principal, PrincipalKind
from team_authz.services.permissions import PermissionEvaluator

router = APIRouter(prefix="/v1/me", tags=["me"])


class PermissionOut(BaseModel):
    name: str
    description: str | None = None


class MeResponse(BaseModel):
    kind: PrincipalKind
    identifier: str
    teams: list[str]


def _display_identifier(principal: Principal) -> str:
    # Never echo a full API key back, even to its holder.
    if principal.kind is PrincipalKind.api_key:
        return principal.masked_key
    return principal.identifier


@router.get("", response_model=MeResponse)
async def whoami(principal: Principal = Depends(require_principal)) -> MeResponse:
    return MeResponse(
        kind=principal.kind,
        identifier=_display_identifier(principal),
        teams=[t.name for t in principal.teams],
    )


@router.get("/permissions", response_model=list[PermissionOut])
async def my_permissions(
    principal: Principal = Depends(require_principal),
    session: AsyncSession = Depends(db_session),
) -> list[PermissionOut]:
    permissions = await PermissionEvaluator(session=session).effective_permissions(principal)
    return [PermissionOut(name=p.name, description=p.description) for p in permissions]
