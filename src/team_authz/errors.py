"""
team_authz.errors

Typed failures raised by repositories and services.

Responsibilities:
- Distinguish "does not exist" from "store could not answer".
- Translate SQLAlchemy driver and pool failures into `StoreUnavailable`.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import DBAPIError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession


class AccessError(Exception):
    pass


class NotFound(AccessError):
    """
    A referenced principal, team or permission is not in the store.
    """

    def __init__(self, entity: str, identifier: object) -> None:
        super().__init__(f"{entity} not found: {identifier}")
        self.entity = entity
        self.identifier = str(identifier)


class StoreUnavailable(AccessError):
    """
    The store could not answer (driver, transport or pool failure). Callers may retry
    the whole operation.
    """


@asynccontextmanager
async def store_errors(session: AsyncSession) -> AsyncIterator[None]:
    # DBAPIError is the base of every driver failure, transient or not.
    try:
        yield
    except (DBAPIError, PoolTimeoutError) as e:
        # Leave the session usable for the caller's next attempt.
        await session.rollback()
        raise StoreUnavailable(str(e)) from e


# --- Module Notes -----------------------------------------------------------
# Unresolved external groups are not errors; the resolver logs them and moves on.
