"""Health and readiness endpoints.

  /health (liveness):
    "Is this process alive?"  Always 200; the body reports each backing
    service so a partial outage is visible without triggering a restart.

  /ready (readiness):
    "Can this instance serve traffic right now?"  503 when a configured
    database is unreachable, since every engine decision reads from it.
    Redis only carries fire-and-forget notifications and never blocks
    readiness.
"""

from __future__ import annotations

from fastapi import APIRouter, Response, status

from app.db import engine as db_engine
from app.db import redis as db_redis

router = APIRouter(tags=["health"])


async def _database_status() -> str:
    if db_engine.engine is None:
        return "not_configured"
    return "ok" if await db_engine.ping_database() else "degraded"


async def _redis_status() -> str:
    if db_redis.redis_pool is None:
        return "not_configured"
    return "ok" if await db_redis.ping_redis() else "degraded"


@router.get("/health")
async def health() -> dict:
    checks = {
        "database": await _database_status(),
        "redis": await _redis_status(),
    }
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    if await _database_status() == "degraded":
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
