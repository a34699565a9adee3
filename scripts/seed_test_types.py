#!/usr/bin/env python3
"""
Seed the test catalog with the built-in test types (CSI).

Run with:
    python scripts/seed_test_types.py
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.core.logging import setup_logging
from src.domain.reference_data import seed_definitions
from src.infrastructure.db.session import dispose_engine, get_session_factory
from src.infrastructure.repositories.catalog import SqlTestCatalog


async def main() -> None:
    setup_logging()
    session_factory = get_session_factory()
    async with session_factory() as session:
        catalog = SqlTestCatalog(session)
        for definition in seed_definitions():
            created = await catalog.upsert_definition(definition)
            action = "created" if created else "updated"
            print(f"{definition.test_type}: {action} ({definition.question_count} questions)")
        await session.commit()
    await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())
