"""Health & Readiness Probes — liveness plus database and TCE transport readiness.

Invariants:
    - GET /health/ answers 200 while the process is up, no I/O performed
    - GET /health/ready answers 503 when the database cannot run a trivial query
    - Neither probe requires X-User-Id
"""

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from remessa.config import get_settings
from remessa.infrastructure import database

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/health", tags=["health"])

SERVICE_NAME = "remessa-tce-api"
SERVICE_VERSION = "1.0.0"


@router.get("/", status_code=status.HTTP_200_OK)
async def liveness():
    return {"status": "healthy", "service": SERVICE_NAME, "version": SERVICE_VERSION}


@router.get("/ready")
async def readiness():
    """Database reachability plus the transport mode remittances will be sent with."""
    transport_mode = "mock" if get_settings().tce_api_mock else "http"
    manager = database.db_manager
    if manager is None or not await manager.health_check():
        logger.warning("Readiness probe failed: database unavailable")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "checks": {"database": "unavailable", "tce_transport": transport_mode},
            },
        )
    return {
        "status": "ready",
        "checks": {"database": "healthy", "tce_transport": transport_mode},
    }
