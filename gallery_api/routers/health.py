"""
Health check router.
"""
import asyncio
import logging
import time
from email.utils import formatdate
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Response, status

from gallery_api.dependencies.database import get_database
from gallery_api.services.database import Database
from gallery_api.structures import Route
from gallery_api.utils.prometheus_metrics import ready

logger = logging.getLogger("gallery_api.health")
router = APIRouter(tags=["Health"])

NO_CACHE = "private, max-age=0, no-cache, no-store, must-revalidate"

# Seconds allowed for the database probe
DB_CHECK_TIMEOUT = 1.0


@router.get("", summary="Health check")
async def health_check(response: Response, db: Database = Depends(get_database)) -> Dict[str, Any]:
    """
    Liveness for load balancers.

    - 503 while the worker is starting or shutting down
    - 503 when the database does not answer SELECT 1 within a second
    """
    response.headers["Cache-Control"] = NO_CACHE
    response.headers["Expires"] = formatdate(time.time() - 1, usegmt=True)

    if ready._value.get() == 0:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Application is not ready",
        )

    try:
        await asyncio.wait_for(db.ping(), timeout=DB_CHECK_TIMEOUT)
    except asyncio.TimeoutError:
        logger.warning("DB health check timeout", extra={"event": "health"})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database connection timeout",
        )
    except Exception as e:
        logger.warning("DB health check failed", extra={"event": "health", "error": str(e)[:200]})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database connection failed",
        )

    return {"status": "OK", "latest_check": int(time.time() * 1000)}


route = Route(path="/health", router=router, position=1)
