"""Health check endpoint"""

import logging
import sys
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from storefront import __version__
from storefront.core.utils.database_helpers import check_database_health
from storefront.db.models.session_record import SessionRecord

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """
    Health check with database connectivity and session sweeper status.

    Returns 200 while the database is reachable (status "degraded" when the
    last sweep failed) and 503 otherwise.
    """
    store = request.app.state.session_store
    config = request.app.state.settings

    health_status = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "version": __version__,
        "environment": {
            "name": config.environment_name,
            "dev_mode": config.DEV_MODE,
            "python_version": f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
        },
        "services": {},
    }

    db_health = await run_in_threadpool(
        check_database_health, store.engine, SessionRecord.__tablename__
    )
    health_status["services"]["database"] = db_health
    if db_health["status"] != "healthy":
        health_status["status"] = "unhealthy"

    cleanup = getattr(request.app.state, "session_cleanup", None)
    if cleanup is not None:
        sweeper = cleanup.status()
        health_status["services"]["session_cleanup"] = sweeper
        if sweeper["last_error"] and health_status["status"] == "healthy":
            health_status["status"] = "degraded"

    status_code = 503 if health_status["status"] == "unhealthy" else 200
    return JSONResponse(health_status, status_code=status_code)
