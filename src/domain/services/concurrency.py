"""In-process concurrency guard and helpers shared by all guard backends."""

from __future__ import annotations

import asyncio

import structlog
from src.core.clock import Clock, SystemClock
from src.domain.models import LockEntry

logger = structlog.get_logger()


def lock_key(student_id: str, test_type: str) -> tuple[str, str]:
    return (student_id, test_type)


class InMemoryConcurrencyGuard:
    """Mutex-guarded lock map for single-process deployments."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._locks: dict[tuple[str, str], LockEntry] = {}
        self._mutex = asyncio.Lock()

    async def try_acquire(self, student_id: str, test_type: str, *, session_id: str) -> bool:
        key = lock_key(student_id, test_type)
        async with self._mutex:
            entry = self._locks.get(key)
            if entry is not None:
                return entry.session_id == session_id
            self._locks[key] = LockEntry(
                student_id=student_id,
                test_type=test_type,
                session_id=session_id,
                acquired_at=self._clock.now(),
            )
        logger.debug(
            "lock_acquired", student_id=student_id, test_type=test_type, session_id=session_id
        )
        return True

    async def release(
        self, student_id: str, test_type: str, *, session_id: str | None = None
    ) -> None:
        key = lock_key(student_id, test_type)
        async with self._mutex:
            entry = self._locks.get(key)
            if entry is None:
                return
            if session_id is not None and entry.session_id != session_id:
                return
            del self._locks[key]
        logger.debug("lock_released", student_id=student_id, test_type=test_type)

    async def refresh(self, student_id: str, test_type: str, *, session_id: str) -> None:
        return None

    async def holder(self, student_id: str, test_type: str) -> str | None:
        entry = self._locks.get(lock_key(student_id, test_type))
        return entry.session_id if entry else None

    async def entries(self) -> list[LockEntry]:
        async with self._mutex:
            return list(self._locks.values())
