"""FastAPI application factory for the KhetSetu auth backend."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, FastAPI

from khetsetu.api.contracts import ApiEnvelope
from khetsetu.api.http_setup import register_exception_handlers, register_http_middleware
from khetsetu.auth.repository import AuthRepository
from khetsetu.auth.router import create_auth_router
from khetsetu.auth.service import AuthService
from khetsetu.core.config import AppConfig

LOGGER = logging.getLogger(__name__)

API_PREFIX = "/api"


def create_app(config: AppConfig, *, repo: AuthRepository | None = None) -> FastAPI:
    """Build the app with auth routes mounted under ``/api``."""
    app = FastAPI(title="KhetSetu API", version="1.0.0")
    register_http_middleware(app, config=config.server, logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)

    service = AuthService(repo or AuthRepository(config.server.runtime_dir), config.auth)
    api = APIRouter(prefix=API_PREFIX)

    @api.get("/health")
    def health() -> dict[str, Any]:
        return ApiEnvelope[Any](success=True, message="ok").to_wire()

    api.include_router(
        create_auth_router(
            service, expose_reset_token=config.api.environment == "development"
        )
    )
    app.include_router(api)
    return app
