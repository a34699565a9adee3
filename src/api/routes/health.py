from __future__ import annotations

from datetime import UTC, datetime

import redis.asyncio as aioredis
import structlog
from fastapi import APIRouter
from sqlalchemy import text
from src.core.config import get_settings
from src.infrastructure.db.session import get_session_factory

router = APIRouter(tags=["Observability"])
logger = structlog.get_logger()


async def check_postgres() -> dict:
    """Check database connection."""
    try:
        session_factory = get_session_factory()
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
            return {"status": "ok"}
    except Exception as e:
        return {"status": "error", "message": str(e)[:100]}


async def check_redis() -> dict:
    """Check Redis connection (reaper queue and, optionally, session locks)."""
    client = aioredis.from_url(get_settings().redis_url)
    try:
        await client.ping()
        return {"status": "ok"}
    except Exception as e:
        return {"status": "error", "message": str(e)[:100]}
    finally:
        await client.aclose()


@router.get("/health", summary="Service health probe")
async def health_check() -> dict:
    """Return service, datastore and session-engine status."""
    settings = get_settings()

    postgres_status = await check_postgres()
    redis_status = await check_redis()

    # Redis is only critical when it holds the session locks
    redis_ok = redis_status.get("status") == "ok" or settings.lock_backend != "redis"
    overall_status = "ok" if postgres_status.get("status") == "ok" and redis_ok else "degraded"

    payload = {
        "service": settings.app_name,
        "version": settings.version,
        "status": overall_status,
        "timestamp": datetime.now(UTC).isoformat(),
        "datastores": {
            "postgres": postgres_status,
            "redis": redis_status,
        },
        "session_engine": {
            "lock_backend": settings.lock_backend,
            "timeout_policy": settings.timeout_policy,
        },
    }
    logger.info("health_probe", **payload)
    return payload
