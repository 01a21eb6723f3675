"""
RefMan Backend — Health Check Route
=====================================

What:  Health check endpoint for monitoring and container probes.
How:   Runs `SELECT 1` against the database and checks that the flat-file
       storage root exists.

Status levels:
    healthy:   database reachable and storage root present (HTTP 200)
    degraded:  database reachable, storage root missing (HTTP 200)
    unhealthy: database unreachable (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from refman import __version__
from refman.database import get_session_factory
from refman.schemas.entry import HealthResponse
from refman.services.json_store import JsonItemStore, get_item_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"description": "Database unreachable", "model": HealthResponse}},
    summary="Service health check",
)
async def health_check(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    store: JsonItemStore = Depends(get_item_store),
):
    db_status = "connected"
    storage_status = "available"
    overall = "healthy"

    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    if not store.root.is_dir():
        storage_status = "missing"
        if overall == "healthy":
            overall = "degraded"

    body = HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        json_storage=storage_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
    return JSONResponse(status_code=503 if overall == "unhealthy" else 200, content=body.model_dump())
