"""
team_authz.auth.deps

FastAPI dependency functions for authentication and authorization.

Responsibilities:
- Convert a bearer token or API key header into a `PrincipalRef`.
- Resolve the reference against the identity store.
- Enforce permissions via reusable dependency factories backed by the enforcement point.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.status import HTTP_401_UNAUTHORIZED, HTTP_403_FORBIDDEN

from team_authz.api.deps import db_session, settings_dep
from team_authz.auth.jwt import JwtConfig, JwtValidationError, decode_and_validate
from team_authz.auth.models import PrincipalRef
from team_authz.db.models import Principal, PrincipalKind
from team_authz.db.repositories.principals import PrincipalRepo
from team_authz.errors import StoreUnavailable, store_errors
from team_authz.services.enforcement import AuthorizationEnforcementPoint, Decision
from team_authz.settings import Settings

API_KEY_HEADER = "X-Api-Key"

_bearer = HTTPBearer(auto_error=False)
_api_key = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


def get_principal_ref(
    creds: HTTPAuthorizationCredentials | None = Depends(_bearer),
    api_key: str | None = Depends(_api_key),
    settings: Settings = Depends(settings_dep),
) -> PrincipalRef:
    # Authn: an API key header takes precedence over a bearer token.
    if api_key:
        return PrincipalRef(kind=PrincipalKind.api_key, identifier=api_key)
    if creds is None or not creds.credentials:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Missing credentials")

    try:
        payload = decode_and_validate(cfg=JwtConfig.from_settings(settings), token=creds.credentials)
    except JwtValidationError as e:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail=f"Invalid token: {e}") from e

    subject = str(payload.get("sub", ""))
    if not subject:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Invalid token subject")
    try:
        kind = PrincipalKind(str(payload.get("kind", "")))
    except ValueError as e:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Invalid token kind") from e
    if kind is PrincipalKind.api_key:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Invalid token kind")

    return PrincipalRef(kind=kind, identifier=subject)


async def get_principal(
    ref: PrincipalRef = Depends(get_principal_ref),
    session: AsyncSession = Depends(db_session),
) -> Principal | None:
    # Unknown principals resolve to None; the enforcement point turns that into DENY.
    try:
        async with store_errors(session):
            return await PrincipalRepo(session).resolve(ref.kind, ref.identifier)
    except StoreUnavailable:
        return None


def require_permissions(*required: str):
    """
    Dependency factory: the caller needs any one of `required`.
    """

    async def _dep(
        principal: Principal | None = Depends(get_principal),
        session: AsyncSession = Depends(db_session),
    ) -> Principal:
        decision = await AuthorizationEnforcementPoint(session=session).authorize(
            principal, list(required)
        )
        if decision is Decision.deny or principal is None:
            raise HTTPException(status_code=HTTP_403_FORBIDDEN, detail="Forbidden")
        return principal

    return _dep


async def require_principal(principal: Principal | None = Depends(get_principal)) -> Principal:
    # Authenticated endpoints with no permission requirement still refuse unknown callers.
    if principal is None:
        raise HTTPException(status_code=HTTP_403_FORBIDDEN, detail="Forbidden")
    return principal


# --- Module Notes -----------------------------------------------------------
# 401 means "credentials missing or malformed"; every authorization failure is a bare 403
# so callers cannot tell an unknown user from a missing permission.
