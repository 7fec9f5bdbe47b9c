"""
team_authz.db.models

Persistence schema for principals, teams, permissions and external group mappings.

Responsibilities:
- Define the principal variants (ManagedUser, LdapUser, OidcUser, ApiKey), each tagged
  with a `PrincipalKind` so services dispatch on the tag instead of on the class.
- Define Teams/Permissions and the association tables that carry membership and grants.
- Define the Team<->LDAP DN and Team<->OidcGroup mapping rows.
"""

from __future__ import annotations

import enum
import re
import uuid
from datetime import UTC, datetime
from typing import ClassVar

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Index,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid as SAUuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from team_authz.db.base import Base


def _utcnow() -> datetime:
    # Persist naive UTC timestamps; SQLite has no tz-aware column type.
    return datetime.now(tz=UTC).replace(tzinfo=None)


class PrincipalKind(enum.StrEnum):
    # Values travel in JWT `kind` claims and URLs; treat as stable API contract.
    managed = "MANAGED"
    ldap = "LDAP"
    oidc = "OIDC"
    api_key = "API_KEY"


def _association(name: str, left: str, left_key: str, right: str, right_key: str) -> Table:
    # Composite primary key = at most one edge per (left, right) pair.
    return Table(
        name,
        Base.metadata,
        Column(
            left_key,
            SAUuid(as_uuid=True),
            ForeignKey(f"{left}.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        Column(
            right_key,
            SAUuid(as_uuid=True),
            ForeignKey(f"{right}.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )


managed_users_teams = _association("managed_users_teams", "managed_users", "user_id", "teams", "team_id")
ldap_users_teams = _association("ldap_users_teams", "ldap_users", "user_id", "teams", "team_id")
oidc_users_teams = _association("oidc_users_teams", "oidc_users", "user_id", "teams", "team_id")
api_keys_teams = _association("api_keys_teams", "api_keys", "api_key_id", "teams", "team_id")

managed_users_permissions = _association(
    "managed_users_permissions", "managed_users", "user_id", "permissions", "permission_id"
)
ldap_users_permissions = _association(
    "ldap_users_permissions", "ldap_users", "user_id", "permissions", "permission_id"
)
oidc_users_permissions = _association(
    "oidc_users_permissions", "oidc_users", "user_id", "permissions", "permission_id"
)
teams_permissions = _association(
    "teams_permissions", "teams", "team_id", "permissions", "permission_id"
)


class Permission(Base):
    __tablename__ = "permissions"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)


class Team(Base):
    __tablename__ = "teams"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)

    permissions: Mapped[list[Permission]] = relationship(
        secondary=teams_permissions, lazy="selectin", order_by="Permission.name"
    )


class _UserColumns:
    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    username: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)

    @property
    def identifier(self) -> str:
        return self.username


class ManagedUser(_UserColumns, Base):
    """
    User whose credentials are managed locally.
    """

    __tablename__ = "managed_users"
    kind: ClassVar[PrincipalKind] = PrincipalKind.managed

    fullname: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    suspended: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Team order is by name so effective permission listings are reproducible.
    teams: Mapped[list[Team]] = relationship(
        secondary=managed_users_teams, lazy="selectin", order_by="Team.name"
    )
    permissions: Mapped[list[Permission]] = relationship(
        secondary=managed_users_permissions, lazy="selectin", order_by="Permission.name"
    )


class LdapUser(_UserColumns, Base):
    """
    Directory-backed user; team membership is synchronized from LDAP group DNs.
    """

    __tablename__ = "ldap_users"
    kind: ClassVar[PrincipalKind] = PrincipalKind.ldap

    dn: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    teams: Mapped[list[Team]] = relationship(
        secondary=ldap_users_teams, lazy="selectin", order_by="Team.name"
    )
    permissions: Mapped[list[Permission]] = relationship(
        secondary=ldap_users_permissions, lazy="selectin", order_by="Permission.name"
    )


class OidcUser(_UserColumns, Base):
    """
    OpenID Connect user; team membership is synchronized from asserted group names.
    """

    __tablename__ = "oidc_users"
    kind: ClassVar[PrincipalKind] = PrincipalKind.oidc

    subject_identifier: Mapped[str | None] = mapped_column(String(255), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    teams: Mapped[list[Team]] = relationship(
        secondary=oidc_users_teams, lazy="selectin", order_by="Team.name"
    )
    permissions: Mapped[list[Permission]] = relationship(
        secondary=oidc_users_permissions, lazy="selectin", order_by="Permission.name"
    )


class ApiKey(Base):
    """
    Machine credential. Holds no direct permissions; everything comes from its teams.
    """

    __tablename__ = "api_keys"
    kind: ClassVar[PrincipalKind] = PrincipalKind.api_key

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    key: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False, default=_utcnow)

    teams: Mapped[list[Team]] = relationship(
        secondary=api_keys_teams, lazy="selectin", order_by="Team.name"
    )

    @property
    def identifier(self) -> str:
        return str(self.id)

    @property
    def masked_key(self) -> str:
        # Keep only the last four word characters visible in logs.
        return re.sub(r"\w(?=\w{4})", "*", self.key)


class OidcGroup(Base):
    __tablename__ = "oidc_groups"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(1024), nullable=False, unique=True)


class MappedLdapGroup(Base):
    __tablename__ = "mapped_ldap_groups"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    team_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False
    )
    dn: Mapped[str] = mapped_column(String(1024), nullable=False)

    __table_args__ = (
        UniqueConstraint("team_id", "dn", name="uq_mapped_ldap_groups_team_dn"),
        Index("ix_mapped_ldap_groups_dn", "dn"),
    )


class MappedOidcGroup(Base):
    __tablename__ = "mapped_oidc_groups"

    id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    team_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False
    )
    group_id: Mapped[uuid.UUID] = mapped_column(
        SAUuid(as_uuid=True), ForeignKey("oidc_groups.id", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("team_id", "group_id", name="uq_mapped_oidc_groups_team_group"),
        Index("ix_mapped_oidc_groups_group", "group_id"),
    )


UserPrincipal = ManagedUser | LdapUser | OidcUser
Principal = UserPrincipal | ApiKey

USER_MODELS: dict[PrincipalKind, type[UserPrincipal]] = {
    PrincipalKind.managed: ManagedUser,
    PrincipalKind.ldap: LdapUser,
    PrincipalKind.oidc: OidcUser,
}


# --- Module Notes -----------------------------------------------------------
# Mapped groups are not exposed as Team relationships; they are read through
# `services.group_mapping.GroupMappingResolver` so every sync sees committed rows.
