"""
Health check endpoints.
"""

from typing import List

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
import redis.asyncio as redis
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings, validate_security_settings
from database import get_db
from routers.auth_scope import get_auth_strategy
from services.auth_strategy import AuthStrategy

router = APIRouter()


async def _database_status(db: AsyncSession) -> str:
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        return f"down: {e.__class__.__name__}"
    return "up"


def _insecure_secrets(strategy: AuthStrategy) -> List[str]:
    try:
        validate_security_settings(strategy.value)
    except ValueError as e:
        return [str(e).split(" ", 1)[0]]
    return []


@router.get("/health")
async def health_check(
    strategy: AuthStrategy = Depends(get_auth_strategy),
    db: AsyncSession = Depends(get_db),
):
    """
    Health check endpoint.
    Reports the store, the rate-limit backend and the active auth strategy.
    """
    health_status = {
        "status": "healthy",
        "api": "up",
        "database": await _database_status(db),
        "redis": "unknown",
        "auth_strategy": strategy.value,
    }
    if health_status["database"] != "up":
        health_status["status"] = "degraded"

    # Redis only backs rate limiting; an outage degrades but does not fail.
    try:
        r = redis.from_url(settings.REDIS_URL)
        try:
            await r.ping()
        finally:
            await r.aclose()
        health_status["redis"] = "up"
    except Exception as e:
        health_status["redis"] = f"down: {e.__class__.__name__}"
        health_status["status"] = "degraded"

    return health_status


@router.get("/health/ready")
async def readiness_check(request: Request, db: AsyncSession = Depends(get_db)):
    """Kubernetes-style readiness probe."""
    missing = _insecure_secrets(get_auth_strategy(request))
    if await _database_status(db) != "up":
        missing.append("database")

    if missing:
        return JSONResponse(
            status_code=503,
            content={"ready": False, "missing": missing},
        )
    return {"ready": True}


@router.get("/health/live")
async def liveness_check():
    """Kubernetes-style liveness probe."""
    return {"alive": True}
