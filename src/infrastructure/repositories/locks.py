"""
Shared-state concurrency guards.

``DatabaseConcurrencyGuard`` relies on the ``session_locks`` primary key and
participates in the caller's transaction, so a lock row commits or rolls back
together with the session it protects. ``RedisConcurrencyGuard`` uses
``SET NX`` with an expiry, renewed while the session is answered, and a
compare-and-delete script for release.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from src.core.clock import Clock, SystemClock, ensure_aware
from src.domain.models import LockEntry
from src.infrastructure.db.models import SessionLock

logger = structlog.get_logger()


class DatabaseConcurrencyGuard:
    def __init__(self, session: AsyncSession, clock: Clock | None = None) -> None:
        self.session = session
        self.clock = clock or SystemClock()

    async def try_acquire(self, student_id: str, test_type: str, *, session_id: str) -> bool:
        holder = await self.holder(student_id, test_type)
        if holder is not None:
            return holder == session_id

        self.session.add(
            SessionLock(
                student_id=student_id,
                test_type_slug=test_type,
                session_id=session_id,
                acquired_at=self.clock.now(),
            )
        )
        try:
            await self.session.flush()
        except IntegrityError:
            # Lost the race: the concurrent insert committed first. Nothing has
            # been written in this transaction before acquisition.
            await self.session.rollback()
            holder = await self.holder(student_id, test_type)
            logger.info(
                "lock_race_lost",
                student_id=student_id,
                test_type=test_type,
                holder_session_id=holder,
            )
            return holder == session_id

        logger.debug(
            "lock_acquired", student_id=student_id, test_type=test_type, session_id=session_id
        )
        return True

    async def release(
        self, student_id: str, test_type: str, *, session_id: str | None = None
    ) -> None:
        stmt = delete(SessionLock).where(
            SessionLock.student_id == student_id, SessionLock.test_type_slug == test_type
        )
        if session_id is not None:
            stmt = stmt.where(SessionLock.session_id == session_id)
        result = await self.session.execute(stmt)
        if result.rowcount:
            logger.debug("lock_released", student_id=student_id, test_type=test_type)

    async def refresh(self, student_id: str, test_type: str, *, session_id: str) -> None:
        # Lock rows live until released; there is no expiry to extend
        return None

    async def holder(self, student_id: str, test_type: str) -> str | None:
        stmt = select(SessionLock.session_id).where(
            SessionLock.student_id == student_id, SessionLock.test_type_slug == test_type
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def entries(self) -> list[LockEntry]:
        rows = (await self.session.execute(select(SessionLock))).scalars().all()
        return [
            LockEntry(
                student_id=row.student_id,
                test_type=row.test_type_slug,
                session_id=row.session_id,
                acquired_at=ensure_aware(row.acquired_at),
            )
            for row in rows
        ]


# Deletes the key only while it still holds the caller's session id
_COMPARE_AND_DELETE = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""

# Resets the expiry only while the key still holds the caller's session id
_COMPARE_AND_EXPIRE = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('expire', KEYS[1], ARGV[2])
end
return 0
"""


class RedisConcurrencyGuard:
    KEY_PREFIX = "session-lock"

    def __init__(
        self,
        client: Any,
        clock: Clock | None = None,
        *,
        ttl_seconds: int = 14400,
    ) -> None:
        self.client = client
        self.clock = clock or SystemClock()
        self.ttl_seconds = ttl_seconds

    def _key(self, student_id: str, test_type: str) -> str:
        return f"{self.KEY_PREFIX}:{student_id}:{test_type}"

    def _value(self, session_id: str) -> str:
        return f"{session_id}|{self.clock.now().isoformat()}"

    async def try_acquire(self, student_id: str, test_type: str, *, session_id: str) -> bool:
        key = self._key(student_id, test_type)
        acquired = await self.client.set(key, self._value(session_id), nx=True, ex=self.ttl_seconds)
        if acquired:
            logger.debug(
                "lock_acquired", student_id=student_id, test_type=test_type, session_id=session_id
            )
            return True
        if await self.holder(student_id, test_type) != session_id:
            return False
        # Resuming the same session renews its expiry
        await self.refresh(student_id, test_type, session_id=session_id)
        return True

    async def release(
        self, student_id: str, test_type: str, *, session_id: str | None = None
    ) -> None:
        key = self._key(student_id, test_type)
        if session_id is None:
            await self.client.delete(key)
            return
        raw = await self.client.get(key)
        if raw is None:
            return
        current = _decode(raw)
        if current.split("|", 1)[0] != session_id:
            return
        # The script re-checks the value so a lock re-taken meanwhile survives
        await self.client.eval(_COMPARE_AND_DELETE, 1, key, current)
        logger.debug("lock_released", student_id=student_id, test_type=test_type)

    async def refresh(self, student_id: str, test_type: str, *, session_id: str) -> None:
        key = self._key(student_id, test_type)
        raw = await self.client.get(key)
        if raw is None:
            return
        current = _decode(raw)
        if current.split("|", 1)[0] != session_id:
            return
        await self.client.eval(_COMPARE_AND_EXPIRE, 1, key, current, self.ttl_seconds)

    async def holder(self, student_id: str, test_type: str) -> str | None:
        raw = await self.client.get(self._key(student_id, test_type))
        if raw is None:
            return None
        return _decode(raw).split("|", 1)[0]

    async def entries(self) -> list[LockEntry]:
        entries: list[LockEntry] = []
        async for key in self.client.scan_iter(match=f"{self.KEY_PREFIX}:*"):
            raw = await self.client.get(key)
            if raw is None:
                continue
            _, student_id, test_type = _decode(key).split(":", 2)
            session_id, _, acquired = _decode(raw).partition("|")
            entries.append(
                LockEntry(
                    student_id=student_id,
                    test_type=test_type,
                    session_id=session_id,
                    acquired_at=ensure_aware(datetime.fromisoformat(acquired))
                    if acquired
                    else self.clock.now(),
                )
            )
        return entries


def _decode(value: bytes | str) -> str:
    return value.decode() if isinstance(value, bytes) else value
