"""
team_authz.api.app

FastAPI app factory for the team authorization service.

Responsibilities:
- Build the FastAPI application and register routers/middleware.
- Initialize and dispose shared infrastructure (DB engine/session factory).
- Map store-level failures onto HTTP statuses in one place.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.status import HTTP_404_NOT_FOUND, HTTP_503_SERVICE_UNAVAILABLE

from team_authz.api.routers.admin import router as admin_router
from team_authz.api.routers.dev_auth import router as dev_auth_router
from team_authz.api.routers.health import router as health_router
from team_authz.api.routers.me import router as me_router
from team_authz.db.init_db import init_db
from team_authz.db.session import create_engine, create_sessionmaker, session_scope
from team_authz.errors import NotFound, StoreUnavailable
from team_authz.observability.logging import configure_logging, get_logger
from team_authz.observability.middleware import RequestContextMiddleware
from team_authz.services.bootstrap import ensure_bootstrap
from team_authz.settings import Settings

log = get_logger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings
    log.info("startup", env=settings.env)
    engine = create_engine(settings)
    app.state.engine = engine
    app.state.sessionmaker = create_sessionmaker(engine)
    try:
        if settings.env in ("dev", "test"):
            # Dev/test convenience: create tables automatically. Prod uses Alembic migrations.
            await init_db(engine)
        async with session_scope(app.state.sessionmaker) as session:
            await ensure_bootstrap(session, settings)
        yield
    finally:
        await engine.dispose()
        log.info("shutdown")


def create_app(*, settings: Settings) -> FastAPI:
    configure_logging(service_name=settings.service_name, level=settings.log_level)

    app = FastAPI(
        title="Team Authorization Service",
        version="0.1.0",
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=_lifespan,
    )

    app.state.settings = settings
    app.add_middleware(RequestContextMiddleware)
    app.include_router(health_router, tags=["health"])
    app.include_router(dev_auth_router)
    app.include_router(me_router)
    app.include_router(admin_router)

    @app.exception_handler(NotFound)
    async def _not_found(_: Request, exc: NotFound) -> JSONResponse:
        return JSONResponse(status_code=HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @app.exception_handler(StoreUnavailable)
    async def _store_unavailable(_: Request, exc: StoreUnavailable) -> JSONResponse:
        log.warning("store_unavailable", error=str(exc))
        return JSONResponse(
            status_code=HTTP_503_SERVICE_UNAVAILABLE, content={"detail": "Store unavailable"}
        )

    return app


# --- Module Notes -----------------------------------------------------------
# Routers obtain sessions via `api.deps.db_session`; authorization runs as router
# dependencies (`auth.deps.require_permissions`).
