import logging

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from api.dependencies import get_state
from api.state import PlannerState

router = APIRouter(tags=["ops"])
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(state: PlannerState = Depends(get_state)) -> dict:
    """Health check endpoint for container orchestration."""
    health = {
        "status": "healthy",
        "environment": state.settings.environment,
        "storage": "postgres" if state.db is not None else "in-memory",
        "sweeps": len(state.workers),
    }

    if state.db is not None:
        try:
            db_health = await state.db.health_check()
            health["database"] = db_health
            if db_health["status"] != "healthy":
                health["status"] = "degraded"
        except Exception as e:
            health["status"] = "degraded"
            health["database"] = {"status": "error", "error": str(e)}

    return health


@router.get("/metrics")
async def metrics() -> Response:
    """
    Prometheus scrape endpoint.
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
