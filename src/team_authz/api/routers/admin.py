"""
team_authz.api.routers.admin

Administrative endpoints (caller needs ACCESS_MANAGEMENT).

Responsibilities:
- Manage permissions, teams, team grants and team API keys.
- Manage LDAP DN / OIDC group mappings and OIDC group records.
- Manage users, their direct grants and explicit team memberships.
- Expose team synchronization as the entry point for the sign-in workflow.
"""

from __future__ import annotations

import secrets
import uuid

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import (
    HTTP_201_CREATED,
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
)

from team_authz.api.deps import db_session
from team_authz.auth.deps import require_permissions
from team_authz.auth.models import ACCESS_MANAGEMENT
from team_authz.db.models import ApiKey, Permission, PrincipalKind, Team, UserPrincipal
from team_authz.db.repositories.mappings import MappingRepo
from team_authz.db.repositories.permissions import PermissionRepo
from team_authz.db.repositories.principals import PrincipalRepo
from team_authz.db.repositories.teams import TeamRepo
from team_authz.observability.logging import get_logger
from team_authz.services.group_mapping import GroupMappingResolver, GroupSource
from team_authz.services.membership import MembershipService
from team_authz.services.synchronizer import TeamMembershipSynchronizer

log = get_logger(__name__)

router = APIRouter(
    prefix="/v1/admin",
    tags=["admin"],
    dependencies=[Depends(require_permissions(ACCESS_MANAGEMENT))],
)

# Profile attributes accepted at creation, per user kind.
_USER_ATTRS: dict[PrincipalKind, tuple[str, ...]] = {
    PrincipalKind.managed: ("fullname", "email"),
    PrincipalKind.ldap: ("dn",),
    PrincipalKind.oidc: ("subject_identifier", "email"),
}


def _new_api_key() -> str:
    return secrets.token_urlsafe(32)


# Schemas


class PermissionCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None


class PermissionOut(BaseModel):
    name: str
    description: str | None = None


class TeamCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    create_api_key: bool = False


class TeamRenameRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class TeamOut(BaseModel):
    id: uuid.UUID
    name: str
    permissions: list[str]


class TeamCreateResponse(TeamOut):
    api_key: str | None = None


class ApiKeyCreated(BaseModel):
    id: uuid.UUID
    key: str
    teams: list[str]


class ApiKeyRegenerateRequest(BaseModel):
    key: str = Field(min_length=1)


class LdapMappingRequest(BaseModel):
    dn: str = Field(min_length=1, max_length=1024)


class OidcMappingRequest(BaseModel):
    group: str = Field(min_length=1, max_length=1024)


class TeamMappingsOut(BaseModel):
    ldap: list[str]
    oidc: list[str]


class OidcGroupCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=1024)


class OidcGroupOut(BaseModel):
    id: uuid.UUID
    name: str


class UserCreateRequest(BaseModel):
    username: str = Field(min_length=1, max_length=255)
    fullname: str | None = None
    email: str | None = None
    dn: str | None = None
    subject_identifier: str | None = None


class UserOut(BaseModel):
    kind: PrincipalKind
    username: str
    teams: list[str]
    permissions: list[str]


class SyncRequest(BaseModel):
    groups: list[str] = Field(default_factory=list)


class ChangeResponse(BaseModel):
    changed: bool


def _team_out(team: Team) -> TeamOut:
    return TeamOut(id=team.id, name=team.name, permissions=[p.name for p in team.permissions])


def _user_out(user: UserPrincipal) -> UserOut:
    return UserOut(
        kind=user.kind,
        username=user.username,
        teams=[t.name for t in user.teams],
        permissions=[p.name for p in user.permissions],
    )


async def _team_or_404(session: AsyncSession, team_id: uuid.UUID) -> Team:
    team = await TeamRepo(session).get(team_id)
    if team is None:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Team not found")
    return team


async def _permission_or_404(session: AsyncSession, name: str) -> Permission:
    permission = await PermissionRepo(session).get(name)
    if permission is None:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Permission not found")
    return permission


async def _user_or_404(session: AsyncSession, kind: PrincipalKind, username: str) -> UserPrincipal:
    if kind is PrincipalKind.api_key:
        raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail="Not a user kind")
    user = await PrincipalRepo(session).find_user(kind, username)
    if user is None:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="User not found")
    return user


# Permissions


@router.post("/permissions", response_model=PermissionOut, status_code=HTTP_201_CREATED)
async def create_permission(
    body: PermissionCreateRequest,
    session: AsyncSession = Depends(db_session),
) -> PermissionOut:
    permissions = PermissionRepo(session)
    if await permissions.get(body.name) is not None:
        raise HTTPException(status_code=HTTP_409_CONFLICT, detail="Permission already exists")
    permission = await permissions.create(name=body.name, description=body.description)
    await session.commit()
    log.info("permission_created", permission=permission.name)
    return PermissionOut(name=permission.name, description=permission.description)


@router.get("/permissions", response_model=list[PermissionOut])
async def list_permissions(session: AsyncSession = Depends(db_session)) -> list[PermissionOut]:
    return [
        PermissionOut(name=p.name, description=p.description)
        for p in await PermissionRepo(session).list_all()
    ]


# Teams


@router.post("/teams", response_model=TeamCreateResponse, status_code=HTTP_201_CREATED)
async def create_team(
    body: TeamCreateRequest,
    session: AsyncSession = Depends(db_session),
) -> TeamCreateResponse:
    teams = TeamRepo(session)
    if await teams.get_by_name(body.name) is not None:
        raise HTTPException(status_code=HTTP_409_CONFLICT, detail="Team already exists")
    team = await teams.create(name=body.name)
    api_key: ApiKey | None = None
    if body.create_api_key:
        api_key = await PrincipalRepo(session).create_api_key(key=_new_api_key(), teams=[team])
    await session.commit()
    log.info("team_created", team=team.name, with_api_key=api_key is not None)
    return TeamCreateResponse(
        id=team.id,
        name=team.name,
        permissions=[],
        api_key=api_key.key if api_key is not None else None,
    )


@router.get("/teams", response_model=list[TeamOut])
async def list_teams(session: AsyncSession = Depends(db_session)) -> list[TeamOut]:
    return [_team_out(t) for t in await TeamRepo(session).list_all()]


@router.patch("/teams/{team_id}", response_model=TeamOut)
async def rename_team(
    team_id: uuid.UUID,
    body: TeamRenameRequest,
    session: AsyncSession = Depends(db_session),
) -> TeamOut:
    teams = TeamRepo(session)
    clash = await teams.get_by_name(body.name)
    if clash is not None and clash.id != team_id:
        raise HTTPException(status_code=HTTP_409_CONFLICT, detail="Team already exists")
    team = await teams.rename(team_id, name=body.name)
    if team is None:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Team not found")
    await session.commit()
    return _team_out(team)


@router.put("/teams/{team_id}/permissions/{name}", response_model=ChangeResponse)
async def grant_team_permission(
    team_id: uuid.UUID,
    name: str,
    session: AsyncSession = Depends(db_session),
) -> ChangeResponse:
    team = await _team_or_404(session, team_id)
    permission = await _permission_or_404(session, name)
    changed = await PermissionRepo(session).grant_to_team(team, permission)
    await session.commit()
    log.info("team_permission_granted", team=team.name, permission=name, changed=changed)
    return ChangeResponse(changed=changed)


@router.delete("/teams/{team_id}/permissions/{name}", response_model=ChangeResponse)
async def revoke_team_permission(
    team_id: uuid.UUID,
    name: str,
    session: AsyncSession = Depends(db_session),
) -> ChangeResponse:
    team = await _team_or_404(session, team_id)
    permission = await _permission_or_404(session, name)
    changed = await PermissionRepo(session).revoke_from_team(team, permission)
    await session.commit()
    log.info("team_permission_revoked", team=team.name, permission=name, changed=changed)
    return ChangeResponse(changed=changed)


@router.post(
    "/teams/{team_id}/api-keys", response_model=ApiKeyCreated, status_code=HTTP_201_CREATED
)
async def create_team_api_key(
    team_id: uuid.UUID,
    session: AsyncSession = Depends(db_session),
) -> ApiKeyCreated:
    team = await _team_or_404(session, team_id)
    api_key = await PrincipalRepo(session).create_api_key(key=_new_api_key(), teams=[team])
    await session.commit()
    log.info("api_key_created", team=team.name, api_key=api_key.masked_key)
    return ApiKeyCreated(id=api_key.id, key=api_key.key, teams=[team.name])


@router.post("/api-keys/regenerate", response_model=ApiKeyCreated)
async def regenerate_api_key(
    body: ApiKeyRegenerateRequest,
    session: AsyncSession = Depends(db_session),
) -> ApiKeyCreated:
    principals = PrincipalRepo(session)
    api_key = await principals.get_api_key(body.key)
    if api_key is None:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="API key not found")
    api_key = await principals.regenerate_api_key(api_key, key=_new_api_key())
    await session.commit()
    log.info("api_key_regenerated", api_key=api_key.masked_key)
    return ApiKeyCreated(id=api_key.id, key=api_key.key, teams=[t.name for t in api_key.teams])


# Mappings


@router.get("/teams/{team_id}/mappings", response_model=TeamMappingsOut)
async def get_team_mappings(
    team_id: uuid.UUID,
    session: AsyncSession = Depends(db_session),
) -> TeamMappingsOut:
    team = await _team_or_404(session, team_id)
    resolver = GroupMappingResolver(session=session)
    return TeamMappingsOut(
        ldap=sorted(await resolver.groups_for_team(GroupSource.ldap, team)),
        oidc=sorted(await resolver.groups_for_team(GroupSource.oidc, team)),
    )


@router.post("/teams/{team_id}/mappings/ldap", response_model=TeamMappingsOut)
async def map_ldap_group(
    team_id: uuid.UUID,
    body: LdapMappingRequest,
    session: AsyncSession = Depends(db_session),
) -> TeamMappingsOut:
    team = await _team_or_404(session, team_id)
    await MappingRepo(session).map_ldap_group(team, body.dn)
    await session.commit()
    log.info("ldap_group_mapped", team=team.name, dn=body.dn)
    return await get_team_mappings(team_id, session)


@router.delete("/teams/{team_id}/mappings/ldap", response_model=ChangeResponse)
async def unmap_ldap_group(
    team_id: uuid.UUID,
    dn: str,
    session: AsyncSession = Depends(db_session),
) -> ChangeResponse:
    team = await _team_or_404(session, team_id)
    changed = await MappingRepo(session).unmap_ldap_group(team, dn)
    await session.commit()
    log.info("ldap_group_unmapped", team=team.name, dn=dn, changed=changed)
    return ChangeResponse(changed=changed)


@router.post("/teams/{team_id}/mappings/oidc", response_model=TeamMappingsOut)
async def map_oidc_group(
    team_id: uuid.UUID,
    body: OidcMappingRequest,
    session: AsyncSession = Depends(db_session),
) -> TeamMappingsOut:
    team = await _team_or_404(session, team_id)
    mappings = MappingRepo(session)
    group = await mappings.get_oidc_group(body.group)
    if group is None:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="OIDC group not found")
    await mappings.map_oidc_group(team, group)
    await session.commit()
    log.info("oidc_group_mapped", team=team.name, group=group.name)
    return await get_team_mappings(team_id, session)


@router.delete("/teams/{team_id}/mappings/oidc", response_model=ChangeResponse)
async def unmap_oidc_group(
    team_id: uuid.UUID,
    group: str,
    session: AsyncSession = Depends(db_session),
) -> ChangeResponse:
    team = await _team_or_404(session, team_id)
    mappings = MappingRepo(session)
    record = await mappings.get_oidc_group(group)
    if record is None:
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="OIDC group not found")
    changed = await mappings.unmap_oidc_group(team, record)
    await session.commit()
    log.info("oidc_group_unmapped", team=team.name, group=group, changed=changed)
    return ChangeResponse(changed=changed)


# OIDC groups


@router.post("/oidc-groups", response_model=OidcGroupOut, status_code=HTTP_201_CREATED)
async def create_oidc_group(
    body: OidcGroupCreateRequest,
    session: AsyncSession = Depends(db_session),
) -> OidcGroupOut:
    mappings = MappingRepo(session)
    if await mappings.get_oidc_group(body.name) is not None:
        raise HTTPException(status_code=HTTP_409_CONFLICT, detail="OIDC group already exists")
    group = await mappings.create_oidc_group(name=body.name)
    await session.commit()
    return OidcGroupOut(id=group.id, name=group.name)


@router.get("/oidc-groups", response_model=list[OidcGroupOut])
async def list_oidc_groups(session: AsyncSession = Depends(db_session)) -> list[OidcGroupOut]:
    return [OidcGroupOut(id=g.id, name=g.name) for g in await MappingRepo(session).list_oidc_groups()]


# Users


@router.post("/users/{kind}", response_model=UserOut, status_code=HTTP_201_CREATED)
async def create_user(
    kind: PrincipalKind,
    body: UserCreateRequest,
    session: AsyncSession = Depends(db_session),
) -> UserOut:
    allowed = _USER_ATTRS.get(kind)
    if allowed is None:
        raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail="Not a user kind")
    principals = PrincipalRepo(session)
    if await principals.find_user(kind, body.username) is not None:
        raise HTTPException(status_code=HTTP_409_CONFLICT, detail="User already exists")
    attrs = {k: v for k, v in body.model_dump(include=set(allowed)).items() if v is not None}
    user = await principals.create_user(kind, body.username, **attrs)
    await session.commit()
    log.info("user_created", kind=kind.value, username=user.username)
    return _user_out(user)


@router.get("/users/{kind}", response_model=list[UserOut])
async def list_users(
    kind: PrincipalKind,
    session: AsyncSession = Depends(db_session),
) -> list[UserOut]:
    if kind is PrincipalKind.api_key:
        raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail="Not a user kind")
    return [_user_out(u) for u in await PrincipalRepo(session).list_users(kind)]


@router.put("/users/{kind}/{username}/permissions/{name}", response_model=ChangeResponse)
async def grant_user_permission(
    kind: PrincipalKind,
    username: str,
    name: str,
    session: AsyncSession = Depends(db_session),
) -> ChangeResponse:
    user = await _user_or_404(session, kind, username)
    permission = await _permission_or_404(session, name)
    changed = await PermissionRepo(session).grant_to_user(user, permission)
    await session.commit()
    log.info("user_permission_granted", username=username, permission=name, changed=changed)
    return ChangeResponse(changed=changed)


@router.put("/users/{kind}/{username}/teams/{team_id}", response_model=ChangeResponse)
async def add_user_to_team(
    kind: PrincipalKind,
    username: str,
    team_id: uuid.UUID,
    session: AsyncSession = Depends(db_session),
) -> ChangeResponse:
    user = await _user_or_404(session, kind, username)
    team = await _team_or_404(session, team_id)
    return ChangeResponse(changed=await MembershipService(session=session).add(user, team))


@router.delete("/users/{kind}/{username}/teams/{team_id}", response_model=ChangeResponse)
async def remove_user_from_team(
    kind: PrincipalKind,
    username: str,
    team_id: uuid.UUID,
    session: AsyncSession = Depends(db_session),
) -> ChangeResponse:
    user = await _user_or_404(session, kind, username)
    team = await _team_or_404(session, team_id)
    return ChangeResponse(changed=await MembershipService(session=session).remove(user, team))


@router.post("/users/{kind}/{username}/sync", response_model=UserOut)
async def synchronize_user(
    kind: PrincipalKind,
    username: str,
    body: SyncRequest,
    session: AsyncSession = Depends(db_session),
) -> UserOut:
    user = await _user_or_404(session, kind, username)
    try:
        synced = await TeamMembershipSynchronizer(session=session).synchronize(user, body.groups)
    except ValueError as e:
        raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return _user_out(synced)


# --- Module Notes -----------------------------------------------------------
# Membership and sync endpoints commit inside the services (one commit per edge);
# every other write commits here, after the repository call.
