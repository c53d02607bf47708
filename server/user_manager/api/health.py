"""Health check endpoints for monitoring service and dependency status."""
from typing import Any

from fastapi import APIRouter
from sqlalchemy import text

from user_manager.core.db import engine
from user_manager.core.redis_manager import get_redis_client

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Basic health check endpoint for load balancers."""
    return {"status": "ok"}


@router.get("/health/detailed")
async def detailed_health_check() -> dict[str, Any]:
    """Check the database and the Redis instance used for progress fan-out."""
    health_status: dict[str, Any] = {
        "status": "healthy",
        "components": {},
    }

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        health_status["components"]["database"] = {"status": "healthy"}
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["components"]["database"] = {
            "status": "unhealthy",
            "message": f"Database connection failed: {str(e)}",
        }

    redis_client = get_redis_client()
    try:
        await redis_client.ping()
        health_status["components"]["redis"] = {"status": "healthy"}
    except Exception as e:
        # Imports still run without Redis; only live progress is lost.
        health_status["status"] = "degraded" if health_status["status"] == "healthy" else health_status["status"]
        health_status["components"]["redis"] = {
            "status": "unhealthy",
            "message": f"Redis connection failed: {str(e)}",
        }
    finally:
        await redis_client.aclose()

    return health_status
