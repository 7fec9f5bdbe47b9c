"""
tests.test_permissions

Permission evaluation for users, teams and API keys.
"""

from __future__ import annotations

import uuid

import pytest

from team_authz.db.models import ManagedUser, PrincipalKind, Team
from team_authz.errors import NotFound
from team_authz.services.permissions import PermissionEvaluator


@pytest.mark.asyncio
async def test_team_permission_needs_include_teams(session, seed) -> None:
    admin = await seed.team("Admin", permissions=["MANAGE_USERS"])
    user = await seed.user(PrincipalKind.managed, "u", teams=[admin])
    evaluator = PermissionEvaluator(session=session)

    assert await evaluator.user_has_permission(user, "MANAGE_USERS", include_teams=True)
    assert not await evaluator.user_has_permission(user, "MANAGE_USERS", include_teams=False)
    assert not await evaluator.user_has_permission(user, "MANAGE_USERS")


@pytest.mark.asyncio
async def test_api_key_inherits_from_every_team(session, seed) -> None:
    reader = await seed.team("Reader", permissions=["VIEW"])
    writer = await seed.team("Writer", permissions=["EDIT"])
    api_key = await seed.api_key("key-0001", teams=[reader, writer])
    evaluator = PermissionEvaluator(session=session)

    assert await evaluator.api_key_has_permission(api_key, "EDIT")
    assert await evaluator.api_key_has_permission(api_key, "VIEW")
    assert not await evaluator.api_key_has_permission(api_key, "DELETE")


@pytest.mark.asyncio
async def test_direct_permission_holds_without_teams(session, seed) -> None:
    user = await seed.user(PrincipalKind.oidc, "u", permissions=["VIEW"])
    evaluator = PermissionEvaluator(session=session)

    assert await evaluator.user_has_permission(user, "VIEW")
    assert not await evaluator.user_has_permission(user, "NOT_A_PERMISSION", include_teams=True)


@pytest.mark.asyncio
async def test_effective_permissions_are_direct_then_per_team_without_duplicates(
    session, seed
) -> None:
    alpha = await seed.team("alpha", permissions=["zeta", "beta_perm"])
    beta = await seed.team("beta", permissions=["alpha_perm", "zeta"])
    user = await seed.user(PrincipalKind.ldap, "u", teams=[beta, alpha], permissions=["zeta"])

    permissions = await PermissionEvaluator(session=session).effective_permissions(user)

    assert [p.name for p in permissions] == ["zeta", "beta_perm", "alpha_perm"]


@pytest.mark.asyncio
async def test_effective_permissions_for_api_key_are_team_union(session, seed) -> None:
    reader = await seed.team("Reader", permissions=["VIEW"])
    writer = await seed.team("Writer", permissions=["EDIT", "VIEW"])
    api_key = await seed.api_key("key-0001", teams=[writer, reader])

    permissions = await PermissionEvaluator(session=session).effective_permissions(api_key)

    assert [p.name for p in permissions] == ["VIEW", "EDIT"]


@pytest.mark.asyncio
async def test_team_has_permission(session, seed) -> None:
    team = await seed.team("Reader", permissions=["VIEW"])
    evaluator = PermissionEvaluator(session=session)

    assert await evaluator.team_has_permission(team, "VIEW")
    assert not await evaluator.team_has_permission(team, "EDIT")
    with pytest.raises(NotFound):
        await evaluator.team_has_permission(Team(id=uuid.uuid4(), name="ghost"), "VIEW")


@pytest.mark.asyncio
async def test_unknown_user_raises_not_found(session) -> None:
    ghost = ManagedUser(id=uuid.uuid4(), username="ghost")

    with pytest.raises(NotFound):
        await PermissionEvaluator(session=session).user_has_permission(ghost, "VIEW")


@pytest.mark.asyncio
async def test_checks_follow_grants_made_after_the_principal_was_loaded(session, seed) -> None:
    team = await seed.team("Reader")
    user = await seed.user(PrincipalKind.managed, "u", teams=[team])
    evaluator = PermissionEvaluator(session=session)
    assert not await evaluator.user_has_permission(user, "VIEW", include_teams=True)

    await seed.permissions.grant_to_team(team, await seed.permission("VIEW"))
    await session.commit()

    assert await evaluator.user_has_permission(user, "VIEW", include_teams=True)
