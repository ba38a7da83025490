"""
Health check endpoints.

Provides endpoints for monitoring and load balancer health checks.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from api.dependencies import is_filesystem_ready
from core.logging import get_logger


logger = get_logger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check() -> dict:
    """
    Basic health check.

    Returns 200 if the service is running.
    """
    return {
        "status": "healthy",
        "service": "blockfs",
    }


@router.get("/ready")
async def readiness_check() -> JSONResponse:
    """
    Readiness check.

    Returns 200 once the container is mounted, 503 before that.
    """
    ready = is_filesystem_ready()
    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": "ready" if ready else "starting",
            "checks": {
                "filesystem": "ok" if ready else "not mounted",
            },
        },
    )
