"""Remessa TCE API — FastAPI application entry point.

Invariants:
    - Routers registered explicitly from ROUTERS (no auto-discovery)
    - RemessaError and request validation failures rendered by api/error_handlers.py
    - CORS origins come from settings
    - Database engine created in lifespan and disposed on shutdown

Design Decisions:
    - lifespan context manager instead of @app.on_event
    - The TCE transport is built lazily, once, by api/dependencies.get_transport
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from remessa.api.error_handlers import register_error_handlers
from remessa.api.routes import (
    audit_logs, endpoint_configs, health, permissions, remittances,
    source_records, units, users, validation_rules, validations,
)
from remessa.config import get_settings
from remessa.infrastructure import database
from remessa.infrastructure.observability import log_requests, setup_logging

logger = logging.getLogger(__name__)

ROUTERS = (
    health.router,
    remittances.router,
    source_records.router,
    validations.router,
    validation_rules.router,
    endpoint_configs.router,
    permissions.router,
    units.router,
    users.router,
    audit_logs.router,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    database.init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    mode = "mock" if settings.tce_api_mock else f"http {settings.tce_api_base_url}"
    logger.info(f"Remessa API started, TCE transport: {mode}")
    yield
    if database.db_manager is not None:
        await database.db_manager.dispose()
    logger.info("Remessa API stopped")


def create_app() -> FastAPI:
    settings = get_settings()
    application = FastAPI(title="Remessa TCE API", version="1.0.0", lifespan=lifespan)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.middleware("http")(log_requests)
    for router in ROUTERS:
        application.include_router(router)
    register_error_handlers(application)
    return application


app = create_app()
