"""Health & Readiness Probes — liveness and readiness endpoints for container orchestration.

Invariants:
    - GET /health/ always returns 200 if process is up (liveness)
    - GET /health/ready returns 503 if the payment gateway script cannot be loaded

Design Decisions:
    - Readiness reuses the bridge's single-flight load, so probing warms the gateway
"""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from storefront.api.dependencies import get_storefront
from storefront.services.storefront_session import StorefrontSession

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("/", status_code=status.HTTP_200_OK)
async def health_check():
    """Basic liveness check. Returns 200 if the process is up."""
    return {
        "status": "healthy",
        "service": "storefront-checkout",
        "version": "1.0.0",
    }


@router.get("/ready")
async def readiness_check(storefront: StorefrontSession = Depends(get_storefront)):
    """Readiness check — includes payment gateway availability."""
    if not await storefront.gateway.ensure_loaded():
        logger.warning("Readiness check failed: gateway script unavailable")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "reason": "gateway_unavailable",
            },
        )
    return {"status": "ready", "checks": {"gateway": "loaded"}}
