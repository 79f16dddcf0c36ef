import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.db.base import get_session_factory

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Liveness probe. Returns 503 once shutdown has started."""
    if getattr(request.app.state, "shutting_down", False):
        return JSONResponse(
            status_code=503,
            content={"status": "shutting_down", "service": "formgate-backend"},
        )
    return {"status": "healthy", "service": "formgate-backend"}


@router.get("/ready")
async def readiness_check(request: Request):
    """Readiness check - verifies the database (and Redis, when configured)."""
    checks = {"database": False}

    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as e:
        logger.error("database_health_check_failed", error_type=type(e).__name__)

    redis = getattr(request.app.state, "redis", None)
    if redis is not None:
        checks["redis"] = False
        try:
            await redis.ping()
            checks["redis"] = True
        except Exception as e:
            logger.error("redis_health_check_failed", error_type=type(e).__name__)

    all_healthy = all(checks.values())
    return JSONResponse(
        status_code=200 if all_healthy else 503,
        content={"status": "ready" if all_healthy else "degraded", "checks": checks},
    )
