# Copyright (c) 2025 Cade Russell (Ghost Peony)
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Health Check and Diagnostics API

Endpoints:
- GET /api/system/health - Database, job queue, schedule and host diagnostics
- GET /api/system/credentials - API credential pool quota status

Usage:
    curl http://localhost:8765/api/system/health
    curl http://localhost:8765/api/system/credentials
"""

import logging
import sys
import time
from typing import Any, Dict, Optional

import psutil
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from api.dependencies import get_context, get_schedule
from db.database import check_db_health

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/system", tags=["system"])


# =============================================================================
# Response Models
# =============================================================================

class DetailedHealthStatus(BaseModel):
    """Detailed health status with diagnostics."""
    status: str  # "healthy", "degraded", "unhealthy"
    message: str
    timestamp: float
    components: Dict[str, Dict[str, Any]]
    system: Dict[str, Any]


# =============================================================================
# Endpoints
# =============================================================================

@router.get("/health", response_model=DetailedHealthStatus)
async def health_check(request: Request, schedule=Depends(get_schedule)):
    """
    Health check with component diagnostics.

    Checks:
    - Database connectivity and pool
    - Job queue workers
    - Recurring schedule
    - Credential pool
    - System resources (CPU, memory, disk)
    """
    components: Dict[str, Dict[str, Any]] = {}
    overall_status = "healthy"

    components["database"] = await check_db_health()
    if components["database"]["status"] == "unhealthy":
        overall_status = "unhealthy"
    elif components["database"]["status"] != "healthy":
        overall_status = "degraded"

    components["job_queue"] = _check_queue(getattr(request.app.state, "queue", None))
    if components["job_queue"]["status"] != "healthy" and overall_status == "healthy":
        overall_status = "degraded"

    components["schedule"] = schedule.get_stats() if schedule else {"status": "disabled"}

    context = getattr(request.app.state, "context", None)
    components["credentials"] = (
        {"status": "healthy", "tokens": len(context.credentials.credentials)}
        if context else {"status": "unconfigured"}
    )

    message = "All systems operational" if overall_status == "healthy" else "Some components are degraded"

    return DetailedHealthStatus(
        status=overall_status,
        message=message,
        timestamp=time.time(),
        components=components,
        system=_get_system_resources()
    )


@router.get("/credentials")
async def credential_status(refresh: bool = False, context=Depends(get_context)):
    """
    Quota status for every configured credential (tokens are never returned).

    Args:
        refresh: Query the rate-limit endpoint before reporting
    """
    if refresh:
        await context.pool.refresh_all()
    return context.credentials.status().to_dict()


# =============================================================================
# Helper Functions
# =============================================================================

def _check_queue(queue: Optional[Any]) -> Dict[str, Any]:
    if queue is None:
        return {"status": "unavailable"}

    workers_running = queue.running and len(queue.workers) > 0
    return {
        "status": "healthy" if workers_running else "degraded",
        "workers": len(queue.workers),
        "workers_running": queue.running,
    }


def _get_system_resources() -> Dict[str, Any]:
    """
    Get system resource usage.

    Returns:
        dict: System resource metrics
    """
    try:
        return {
            "cpu_percent": round(psutil.cpu_percent(interval=0.1), 2),
            "memory_percent": round(psutil.virtual_memory().percent, 2),
            "disk_percent": round(psutil.disk_usage("/").percent, 2),
            "python_version": sys.version.split()[0],
            "process_uptime_seconds": round(time.time() - psutil.Process().create_time(), 2)
        }
    except (psutil.Error, OSError) as e:
        logger.error(f"System resource check failed: {e}", exc_info=True)
        return {
            "error": str(e)
        }


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    "router"
]
