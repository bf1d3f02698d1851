"""
NoteTaker Backend - Health Check Route
======================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Checks the database and the grammar checker and reports which
       attachment storage backend is configured.
Who:   Called by container health checks, load balancers and monitoring.

Status levels:
    - healthy:   database reachable and grammar checker available
    - degraded:  grammar checker unavailable or its circuit is open
                 (notes still work, only grammar checks fail)
    - unhealthy: database unreachable
"""

import logging
import time

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from notetaker import __version__
from notetaker.database import engine
from notetaker.schemas.note import HealthResponse
from notetaker.services.attachment_service import attachment_manager
from notetaker.services.languagetool_service import grammar_checker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Returns the health of the service and its dependencies.",
)
async def health_check() -> HealthResponse:
    db_status = "connected"
    checker_status = "available"
    overall = "healthy"

    # ── Check Database ────────────────────────────────────────────────────
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    # ── Check Grammar Checker ─────────────────────────────────────────────
    if grammar_checker.circuit_breaker.is_open():
        checker_status = "circuit_open"
    elif not await grammar_checker.health_check():
        checker_status = "unavailable"

    if checker_status != "available" and overall != "unhealthy":
        overall = "degraded"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        storage_backend=attachment_manager.backend.name,
        grammar_checker=checker_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
