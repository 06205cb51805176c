"""rq job and worker entry point for goal-start weight seeding.

Run with ``python -m app.worker``. Each job opens its own engine so it never
shares connections with the API process or with another job's event loop.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db import build_engine
from app.goals.seeder import SeedTask, WeightEntrySeeder
from app.goals.store import PostgresWeightEntryStore, WeightEntryStore
from app.logging_config import configure_logging
from app.queue import create_worker

logger = logging.getLogger(__name__)


@asynccontextmanager
async def entry_store() -> AsyncIterator[WeightEntryStore]:
    engine = build_engine()
    try:
        yield PostgresWeightEntryStore(async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))
    finally:
        await engine.dispose()


async def run_seed(task: SeedTask) -> str | None:
    async with entry_store() as entries:
        entry = await WeightEntrySeeder(entries).seed(task)
    return entry.id if entry is not None else None


def seed_weight_entry(user_id: str, goal_id: str, goal_created_at: str, weight: float) -> str | None:
    """Job body. Raises on store failure so rq schedules the next retry."""
    task = SeedTask(
        user_id=user_id,
        goal_id=goal_id,
        goal_created_at=datetime.fromisoformat(goal_created_at),
        weight=weight,
    )
    entry_id = asyncio.run(run_seed(task))
    if entry_id is None:
        logger.info("Goal %s of user %s already seeded", goal_id, user_id)
    return entry_id


def run_worker() -> None:
    configure_logging()
    worker = create_worker()
    logger.info("Starting seed worker")
    # Interval retries are re-queued by the scheduler
    worker.work(with_scheduler=True)


if __name__ == "__main__":
    run_worker()
