"""
team_authz.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide strongly-typed, env-driven settings for all layers.
- Hide secrets from repr/logging (e.g., JWT secret).
- Offer a cached settings instance for dependency injection.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Env-driven configuration:
    - Defaults safe for local dev
    - Single settings object injected across layers
    """

    model_config = SettingsConfigDict(env_prefix="TEAM_AUTHZ_", case_sensitive=False)

    # Environment controls toggle behavior like auto-init DB tables and dev token minting.
    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "team-authz"
    log_level: str = "INFO"

    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Auth
    jwt_alg: str = "HS256"
    jwt_issuer: str = "team-authz"
    jwt_audience: str = "team-authz-api"
    jwt_secret: str = Field(default="dev-secret-change-me", repr=False)

    # Persistence
    database_url: str = "sqlite+aiosqlite:///./team_authz.db"

    # Bootstrap: managed user granted ACCESS_MANAGEMENT on startup (unset = none).
    bootstrap_admin_username: str | None = None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Cache avoids re-parsing env vars for each request dependency.
    return Settings()


# --- Module Notes -----------------------------------------------------------
# Credentials (passwords, LDAP bind secrets, OIDC client secrets) are owned by the
# authentication layer in front of this service and never configured here.
