from fastapi import APIRouter, Depends, HTTPException
import logging

from tenant_gateway.core.config import settings
from tenant_gateway.dependencies import get_state_store
from tenant_gateway.domain.interfaces import StateStore

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/")
async def root():
    return {"message": f"{settings.SERVICE_NAME} API is running"}


@router.get("/health/live")
async def liveness():
    """Liveness probe: Service is running."""
    return {"status": "ok", "checks": {"api": "ok"}}


@router.get("/health/ready")
async def readiness(store: StateStore = Depends(get_state_store)):
    """Readiness probe: state store reachable."""
    health = {"status": "ok", "checks": {}}

    try:
        await store.ping()
        health["checks"]["state_store"] = "ok"
    except Exception as e:
        logger.error(f"Health check failed (state_store): {e}")
        health["checks"]["state_store"] = "failed"
        health["status"] = "failed"

    if health["status"] == "failed":
        raise HTTPException(status_code=503, detail=health)

    return health
