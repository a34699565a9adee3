from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from src.api.deps import get_clock, get_db_session
from src.api.main import app
from src.core.clock import ManualClock
from src.domain.interfaces import ConcurrencyGuard
from src.domain.models import TestDefinition, TimeoutPolicy
from src.domain.services.concurrency import InMemoryConcurrencyGuard
from src.domain.services.lifecycle import SessionLifecycleController
from src.domain.services.tokens import TokenVerifier
from src.infrastructure.db.base import Base
from src.infrastructure.repositories.catalog import SqlTestCatalog

from tests.fakes import FakeCatalog, FakeRegistry, FakeSessionStore
from tests.utils import make_definition


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@dataclass
class EngineHarness:
    """In-memory collaborators wired the same way the application service wires them."""

    clock: ManualClock
    catalog: FakeCatalog
    registry: FakeRegistry
    store: FakeSessionStore
    guard: ConcurrencyGuard
    timeout_policy: TimeoutPolicy = TimeoutPolicy.COMPLETE

    def _dependencies(self) -> dict:
        return {
            "verifier": TokenVerifier(self.registry, self.catalog, self.clock),
            "guard": self.guard,
            "store": self.store,
            "registry": self.registry,
            "clock": self.clock,
            "timeout_policy": self.timeout_policy,
        }

    def controller(self) -> SessionLifecycleController:
        return SessionLifecycleController(**self._dependencies())

    async def reload(self, session_id: str) -> SessionLifecycleController:
        """Controller over the stored copy of a session, as a later request sees it."""
        session = await self.store.get_session(session_id)
        return SessionLifecycleController.for_session(session, **self._dependencies())


@pytest.fixture()
def harness(clock: ManualClock) -> EngineHarness:
    return EngineHarness(
        clock=clock,
        catalog=FakeCatalog(make_definition("CSI"), make_definition("MEMORY", question_count=2)),
        registry=FakeRegistry(),
        store=FakeSessionStore(),
        guard=InMemoryConcurrencyGuard(clock),
    )


@pytest.fixture()
async def sqlite_engine(tmp_path) -> AsyncIterator[AsyncEngine]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/engine.db", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(sqlite_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(sqlite_engine, expire_on_commit=False)


@pytest.fixture()
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """Provide a database session for tests that need direct DB access."""
    async with session_factory() as session:
        yield session


@pytest.fixture()
def seed_catalog(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., object]:
    async def _seed(*definitions: TestDefinition) -> None:
        async with session_factory() as session:
            catalog = SqlTestCatalog(session)
            for definition in definitions or (make_definition("CSI"),):
                await catalog.upsert_definition(definition)
            await session.commit()

    return _seed


@pytest.fixture()
async def api_client(
    session_factory: async_sessionmaker[AsyncSession], clock: ManualClock
) -> AsyncIterator[AsyncClient]:
    """Async HTTP client bound to the sqlite database and the manual clock."""

    async def override_db_session() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_clock] = lambda: clock
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
