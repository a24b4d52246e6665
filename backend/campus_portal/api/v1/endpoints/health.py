"""
Health Check Endpoints

- /health/live  - Basic liveness (app is running)
- /health/ready - Readiness check (database reachable and tables created)
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from datetime import datetime
from typing import Dict, Any
import time

from campus_portal.core.config import settings
from campus_portal.core.logging_config import logger


router = APIRouter(prefix="/health", tags=["Health Checks"])


async def check_database() -> Dict[str, Any]:
    """Check database connectivity and that the schema exists"""
    start = time.time()
    try:
        from campus_portal.core.database import get_session_local
        from sqlalchemy import text

        session_factory = get_session_local()
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))

            try:
                await session.execute(text("SELECT COUNT(*) FROM users"))
                tables_ok = True
            except Exception:
                tables_ok = False

            latency = (time.time() - start) * 1000
            return {
                "status": "healthy" if tables_ok else "degraded",
                "latency_ms": round(latency, 2),
                "connection": "ok",
                "tables_ready": tables_ok,
            }
    except Exception as e:
        latency = (time.time() - start) * 1000
        logger.error(f"[HealthCheck] Database check failed: {e}")
        return {
            "status": "unhealthy",
            "latency_ms": round(latency, 2),
            "connection": "failed",
            "tables_ready": False,
            "error": str(e),
        }


@router.get("/live")
async def liveness():
    """Liveness probe - the process is up"""
    return {"status": "alive", "timestamp": datetime.utcnow().isoformat()}


@router.get("/ready")
async def readiness():
    """Readiness probe - returns 503 until the database answers"""
    database = await check_database()
    ready = database["status"] == "healthy"
    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": "ready" if ready else "not_ready",
            "environment": settings.ENVIRONMENT,
            "checks": {"database": database},
            "timestamp": datetime.utcnow().isoformat(),
        },
    )
