"""
team_authz.auth.models

Auth boundary models.

Responsibilities:
- Define the caller reference (`PrincipalRef`) extracted from request credentials.
- Name the permissions this service itself requires.
"""

from __future__ import annotations

from dataclasses import dataclass

from team_authz.db.models import PrincipalKind

# Required by every /v1/admin endpoint.
ACCESS_MANAGEMENT = "ACCESS_MANAGEMENT"


@dataclass(frozen=True, slots=True)
class PrincipalRef:
    """
    Who the credentials claim to be; resolved against the identity store per request.
    `identifier` is the username for users and the key string for API keys.
    """

    kind: PrincipalKind
    identifier: str


# --- Module Notes -----------------------------------------------------------
# Permissions are never carried in tokens; they are evaluated from the store on every
# request so revocations take effect immediately.
