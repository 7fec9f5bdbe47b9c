"""
team_authz.services.bootstrap

Startup seeding of the objects the service needs to administer itself.

Responsibilities:
- Ensure the ACCESS_MANAGEMENT permission exists.
- Optionally ensure a managed bootstrap user holding it directly.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from team_authz.auth.models import ACCESS_MANAGEMENT
from team_authz.db.models import PrincipalKind
from team_authz.db.repositories.permissions import PermissionRepo
from team_authz.db.repositories.principals import PrincipalRepo
from team_authz.observability.logging import get_logger
from team_authz.settings import Settings

log = get_logger(__name__)


async def ensure_bootstrap(session: AsyncSession, settings: Settings) -> None:
    permissions = PermissionRepo(session)
    permission = await permissions.get(ACCESS_MANAGEMENT)
    if permission is None:
        permission = await permissions.create(
            name=ACCESS_MANAGEMENT,
            description="Manage teams, permissions, group mappings and memberships",
        )
        log.info("bootstrap_permission_created", permission=ACCESS_MANAGEMENT)

    username = settings.bootstrap_admin_username
    if username:
        principals = PrincipalRepo(session)
        user = await principals.find_user(PrincipalKind.managed, username)
        if user is None:
            user = await principals.create_user(PrincipalKind.managed, username)
            log.info("bootstrap_admin_created", username=username)
        await permissions.grant_to_user(user, permission)

    await session.commit()
