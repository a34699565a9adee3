"""
Worker jobs for background session maintenance.

The reaper closes sessions nobody can interact with any more and frees the
locks they still hold.
"""

from __future__ import annotations

import asyncio
from typing import Any

import redis.asyncio as aioredis
import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from src.core.clock import Clock, SystemClock
from src.core.config import Settings, get_settings
from src.domain.interfaces import ConcurrencyGuard
from src.domain.services.concurrency import InMemoryConcurrencyGuard
from src.domain.services.test_sessions import TestSessionService
from src.infrastructure.db.session import dispose_engine, get_session_factory
from src.infrastructure.repositories.locks import DatabaseConcurrencyGuard, RedisConcurrencyGuard

logger = structlog.get_logger()


def reap_stale_sessions_job() -> dict[str, Any]:
    """Entry point for the stale-session reaper."""
    return asyncio.run(_reap_and_dispose())


async def _reap_and_dispose() -> dict[str, Any]:
    # Each job runs on a fresh event loop; pooled connections cannot be reused
    try:
        return await reap_stale_sessions()
    finally:
        await dispose_engine()


def build_guard(session: AsyncSession, settings: Settings, clock: Clock) -> ConcurrencyGuard:
    if settings.lock_backend == "redis":
        client = aioredis.from_url(settings.redis_url)
        return RedisConcurrencyGuard(client, clock, ttl_seconds=settings.lock_ttl_seconds)
    if settings.lock_backend == "memory":
        # Locks live inside the API process; only sessions can be swept from here
        logger.warning("reaper_memory_lock_backend")
        return InMemoryConcurrencyGuard(clock)
    return DatabaseConcurrencyGuard(session, clock)


async def reap_stale_sessions(
    *,
    settings: Settings | None = None,
    clock: Clock | None = None,
) -> dict[str, Any]:
    settings = settings or get_settings()
    clock = clock or SystemClock()
    session_factory = get_session_factory()

    async with session_factory() as session:
        guard = build_guard(session, settings, clock)
        service = TestSessionService(session, guard=guard, clock=clock, settings=settings)
        try:
            report = await service.expire_stale_sessions()
        except Exception as exc:
            logger.error("reaper_failed", error=str(exc))
            raise
        finally:
            if isinstance(guard, RedisConcurrencyGuard):
                await guard.client.aclose()

    logger.info("reaper_completed", **report.as_dict())
    return report.as_dict()
