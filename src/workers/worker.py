from __future__ import annotations

import asyncio
from collections.abc import Sequence

import structlog
from redis import Redis
from rq import Queue, Worker
from src.core.config import get_settings
from src.core.logging import setup_logging
from src.workers import jobs

logger = structlog.get_logger()

QUEUE_NAMES: Sequence[str] = ("default", "maintenance")
REGISTERED_JOBS = {
    "reap_stale_sessions": jobs.reap_stale_sessions_job,
}


def enqueue_reaper(connection: Redis) -> str:
    """Queue one reaper run and return its job id."""
    queue = Queue("maintenance", connection=connection)
    job = queue.enqueue(jobs.reap_stale_sessions_job)
    logger.info("reaper_enqueued", job_id=job.id)
    return job.id


async def main() -> None:
    """Bootstrap the worker, wiring queues and job handlers."""
    setup_logging()
    settings = get_settings()
    redis_connection = Redis.from_url(settings.redis_url)
    logger.info(
        "worker_bootstrap",
        queues=list(QUEUE_NAMES),
        jobs=list(REGISTERED_JOBS.keys()),
        lock_backend=settings.lock_backend,
    )

    await asyncio.to_thread(_run_worker, redis_connection, QUEUE_NAMES)


def _run_worker(connection: Redis, queue_names: Sequence[str]) -> None:
    """Run the RQ worker in a background thread."""
    queues = [Queue(name, connection=connection) for name in queue_names]
    worker = Worker(queues, connection=connection, name="session-engine-worker")
    worker.work(with_scheduler=True)


if __name__ == "__main__":
    asyncio.run(main())
