"""
tests.test_repositories

Repository-level administrative operations.
"""

from __future__ import annotations

import pytest

from team_authz.db.models import PrincipalKind
from team_authz.db.repositories.principals import PrincipalRepo
from team_authz.db.repositories.teams import TeamRepo


@pytest.mark.asyncio
async def test_user_lookup_searches_managed_then_ldap_then_oidc(session, seed) -> None:
    await seed.user(PrincipalKind.oidc, "shared")
    await seed.user(PrincipalKind.ldap, "shared")
    await seed.user(PrincipalKind.oidc, "only-oidc")
    principals = PrincipalRepo(session)

    assert (await principals.get_user_principal("shared")).kind is PrincipalKind.ldap
    assert (await principals.get_user_principal("only-oidc")).kind is PrincipalKind.oidc
    assert await principals.get_user_principal("nobody") is None


@pytest.mark.asyncio
async def test_users_are_listed_by_username_per_kind(session, seed) -> None:
    await seed.user(PrincipalKind.managed, "zoe")
    await seed.user(PrincipalKind.managed, "adam")
    await seed.user(PrincipalKind.ldap, "bob")
    principals = PrincipalRepo(session)

    assert [u.username for u in await principals.list_users(PrincipalKind.managed)] == [
        "adam",
        "zoe",
    ]
    with pytest.raises(ValueError):
        await principals.list_users(PrincipalKind.api_key)


@pytest.mark.asyncio
async def test_regenerated_api_key_keeps_its_teams(session, seed) -> None:
    team = await seed.team("Reader")
    api_key = await seed.api_key("oldkey0001", teams=[team])
    principals = PrincipalRepo(session)

    await principals.regenerate_api_key(api_key, key="newkey0002")
    await session.commit()

    assert await principals.get_api_key("oldkey0001") is None
    renewed = await principals.get_api_key("newkey0002")
    assert renewed.id == api_key.id
    assert [t.name for t in renewed.teams] == ["Reader"]
    assert renewed.masked_key == "******0002"


@pytest.mark.asyncio
async def test_teams_are_renamed_and_listed_by_name(session, seed) -> None:
    await seed.team("beta")
    alpha = await seed.team("alpha")
    teams = TeamRepo(session)

    await teams.rename(alpha.id, name="gamma")
    await session.commit()

    assert [t.name for t in await teams.list_all()] == ["beta", "gamma"]
    assert (await teams.get_by_name("gamma")).id == alpha.id
    assert await teams.get_by_name("alpha") is None
