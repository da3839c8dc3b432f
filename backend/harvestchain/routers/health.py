"""Health check endpoints for load balancers and monitoring."""

from datetime import datetime

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from harvestchain.config import settings
from harvestchain.database import engine
from harvestchain.services.ledger import LedgerMirror, get_ledger_mirror
from harvestchain.services.proof_storage import ProofStorage, get_proof_storage

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Lightweight health check for load balancer (no DB check).

    Returns 200 OK if the service is running.
    """
    return {
        "status": "ok",
        "service": "HarvestChain",
        "timestamp": datetime.utcnow().isoformat(),
        "environment": settings.environment,
    }


@router.get("/health/ready")
async def readiness_check(
    ledger: LedgerMirror = Depends(get_ledger_mirror),
    storage: ProofStorage = Depends(get_proof_storage),
):
    """Readiness check.

    Only the database decides readiness.  The ledger mirror and proof
    storage are optional collaborators, so their state is reported but
    never fails the check.
    """
    checks = {
        "service": "ok",
        "database": "unknown",
        "ledger_mirror": "enabled" if ledger.mirroring_enabled else "disabled",
        "proof_storage": "configured" if storage.configured else "unconfigured",
    }
    overall_healthy = True

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {str(e)[:100]}"
        overall_healthy = False

    return JSONResponse(
        status_code=status.HTTP_200_OK if overall_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if overall_healthy else "unhealthy",
            "service": "HarvestChain",
            "checks": checks,
            "timestamp": datetime.utcnow().isoformat(),
        },
    )
