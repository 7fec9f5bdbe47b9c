"""
tests.test_group_mapping

Group <-> Team resolution for both identity sources.
"""

from __future__ import annotations

import pytest
from structlog.testing import CapturingLogger

from team_authz.db.repositories.mappings import MappingRepo
from team_authz.services import group_mapping
from team_authz.services.group_mapping import GroupMappingResolver, GroupSource


@pytest.mark.asyncio
async def test_dn_resolves_to_every_mapped_team_by_name(session, seed) -> None:
    await seed.team("ops", ldap=["cn=eng,dc=x"])
    await seed.team("eng", ldap=["cn=eng,dc=x", "cn=all,dc=x"])
    await seed.team("sales", ldap=["cn=sales,dc=x"])

    resolver = GroupMappingResolver(session=session)
    teams = await resolver.teams_for_group(GroupSource.ldap, "cn=eng,dc=x")

    assert [t.name for t in teams] == ["eng", "ops"]
    assert await resolver.teams_for_group(GroupSource.ldap, "cn=nobody,dc=x") == []


@pytest.mark.asyncio
async def test_unknown_or_unmapped_oidc_group_resolves_to_nothing(session, seed) -> None:
    await seed.team("a", oidc=["g1"])
    await seed.oidc_group("g-unmapped")

    resolver = GroupMappingResolver(session=session)
    assert [t.name for t in await resolver.teams_for_group(GroupSource.oidc, "g1")] == ["a"]
    assert await resolver.teams_for_group(GroupSource.oidc, "g-unmapped") == []
    assert await resolver.teams_for_group(GroupSource.oidc, "never-created") == []


@pytest.mark.asyncio
async def test_groups_for_team_is_per_source(session, seed) -> None:
    team = await seed.team("eng", ldap=["cn=eng,dc=x"], oidc=["eng-oidc"])
    bare = await seed.team("bare")

    resolver = GroupMappingResolver(session=session)
    assert await resolver.groups_for_team(GroupSource.ldap, team) == {"cn=eng,dc=x"}
    assert await resolver.groups_for_team(GroupSource.oidc, team) == {"eng-oidc"}
    assert await resolver.groups_for_team(GroupSource.ldap, bare) == set()
    assert await resolver.is_mapped(GroupSource.ldap, team, "cn=eng,dc=x")
    assert not await resolver.is_mapped(GroupSource.ldap, team, "eng-oidc")


@pytest.mark.asyncio
async def test_mapping_is_unique_per_team_and_group(session, seed) -> None:
    team = await seed.team("eng")
    mappings = MappingRepo(session)

    first = await mappings.map_ldap_group(team, "cn=eng,dc=x")
    second = await mappings.map_ldap_group(team, "cn=eng,dc=x")
    assert first.id == second.id

    group = await mappings.create_oidc_group(name="g1")
    assert (await mappings.map_oidc_group(team, group)).id == (
        await mappings.map_oidc_group(team, group)
    ).id
    await session.commit()

    assert await mappings.unmap_ldap_group(team, "cn=eng,dc=x") is True
    assert await mappings.unmap_ldap_group(team, "cn=eng,dc=x") is False
    assert await mappings.unmap_oidc_group(team, group) is True
    await session.commit()
    assert await mappings.dns_for_team(team.id) == []
    assert await mappings.oidc_group_names_for_team(team.id) == []


@pytest.mark.asyncio
async def test_unresolved_groups_are_logged_for_both_sources(session, seed, monkeypatch) -> None:
    await seed.team("eng", ldap=["cn=eng,dc=x"])
    captured = CapturingLogger()
    monkeypatch.setattr(group_mapping, "log", captured)
    resolver = GroupMappingResolver(session=session)

    await resolver.teams_for_group(GroupSource.ldap, "cn=eng,dc=x")
    await resolver.teams_for_group(GroupSource.ldap, "cn=nobody,dc=x")
    await resolver.teams_for_group(GroupSource.oidc, "never-created")

    assert [(c.method_name, c.args, c.kwargs) for c in captured.calls] == [
        ("info", ("unresolved_group",), {"source": "LDAP", "group": "cn=nobody,dc=x"}),
        ("info", ("unresolved_group",), {"source": "OIDC", "group": "never-created"}),
    ]
