import logging
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from todo_api.core.config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Liveness check.

    Returns 503 during graceful shutdown so the load balancer stops routing traffic.
    """
    if getattr(request.app.state, "shutting_down", False):
        return JSONResponse(
            status_code=503,
            content={"status": "shutting_down", "service": "todo-api"},
        )
    return {"status": "healthy", "service": "todo-api"}


@router.get("/ready")
async def readiness_check():
    """Readiness check - database reachable and webhook signing secret present.

    Without the secret every Stripe delivery is answered with a 500.
    """
    checks = {"database": False, "webhook_secret": bool(get_settings().stripe_webhook_secret)}

    try:
        from todo_api.db.base import get_session_factory

        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")

    all_healthy = all(checks.values())
    status_code = 200 if all_healthy else 503

    return JSONResponse(
        status_code=status_code,
        content={"status": "ready" if all_healthy else "degraded", "checks": checks},
    )
