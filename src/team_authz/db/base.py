"""
team_authz.db.base

SQLAlchemy declarative base.

Responsibilities:
- Provide a shared DeclarativeBase for the identity store models.
"""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


# --- Module Notes -----------------------------------------------------------
# All ORM models (and association tables) register on `Base.metadata` so Alembic and
# `init_db` see the full schema.
