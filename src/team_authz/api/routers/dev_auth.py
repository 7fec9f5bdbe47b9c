"""
team_authz.api.routers.dev_auth

Development token minting (disabled in prod).

Responsibilities:
- Issue a bearer token for an existing or future user of a given kind, standing in for
  the external sign-in service.
"""

from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from starlette.status import HTTP_400_BAD_REQUEST, HTTP_404_NOT_FOUND

from team_authz.auth.jwt import JwtConfig, issue_token
from team_authz.db.models import PrincipalKind
from team_authz.api.deps import settings_dep
from team_authz.settings import Settings

router = APIRouter(prefix="/v1/dev", tags=["dev"])


class DevTokenRequest(BaseModel):
    subject: str = Field(min_length=1, max_length=255)
    kind: PrincipalKind = PrincipalKind.managed
    ttl_minutes: int = Field(default=60, ge=1, le=24 * 60)


class DevTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


@router.post("/token", response_model=DevTokenResponse)
async def mint_dev_token(
    body: DevTokenRequest,
    settings: Settings = Depends(settings_dep),
) -> DevTokenResponse:
    if settings.env == "prod":
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Not found")
    if body.kind is PrincipalKind.api_key:
        raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail="API keys do not use tokens")

    token = issue_token(
        cfg=JwtConfig.from_settings(settings),
        subject=body.subject,
        kind=body.kind,
        ttl=timedelta(minutes=body.ttl_minutes),
    )
    return DevTokenResponse(access_token=token)
