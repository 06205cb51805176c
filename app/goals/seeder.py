"""Goal-start weight seeding.

Every active goal gets one weight entry dated at the UTC start of the day the
goal was created, carrying the user's weight at that time. Seeding runs after
the profile write has committed: the service hands a SeedTask to the
SeedQueue, which enqueues an rq job on Redis. The job is retried by rq until
its retry budget is spent; failures never reach the HTTP caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from redis.exceptions import RedisError
from rq import Queue, Retry
from rq.job import Job

from app.config import settings
from app.goals.errors import DuplicateWeightEntry
from app.goals.identifiers import new_id
from app.goals.models import GoalStatus, User, WeightEntry
from app.goals.store import WeightEntryStore

logger = logging.getLogger(__name__)

SEED_JOB = "app.worker.seed_weight_entry"


@dataclass(frozen=True, slots=True)
class SeedTask:
    user_id: str
    goal_id: str
    goal_created_at: datetime
    weight: float

    @classmethod
    def for_user(cls, user: User) -> "SeedTask | None":
        """Build a task when the user's slot holds a seedable goal."""
        if (
            user.goal_status is not GoalStatus.active
            or not user.goal_id
            or user.goal_created_at is None
            or user.current_weight is None
        ):
            return None
        return cls(
            user_id=user.id,
            goal_id=user.goal_id,
            goal_created_at=user.goal_created_at,
            weight=user.current_weight,
        )


def day_window(moment: datetime) -> tuple[datetime, datetime]:
    """UTC calendar day containing ``moment`` as [start, start + 1 day)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    start = moment.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


class WeightEntrySeeder:
    def __init__(self, entries: WeightEntryStore, note: str | None = None) -> None:
        self._entries = entries
        self._note = note or settings.seed_note

    async def seed(self, task: SeedTask) -> WeightEntry | None:
        """Create the goal-start entry unless one already exists for that day.

        Returns the created entry, or None when the day was already seeded.
        Store failures propagate so the job runner can retry.
        """
        start, end = day_window(task.goal_created_at)
        existing = await self._entries.find_one(
            user_id=task.user_id,
            goal_id=task.goal_id,
            date_from=start,
            date_until=end,
        )
        if existing is not None:
            return None

        entry = WeightEntry(
            id=new_id(),
            user_id=task.user_id,
            goal_id=task.goal_id,
            weight=task.weight,
            date=start,
            notes=self._note,
            seeded=True,
        )
        try:
            created = await self._entries.create(entry)
        except DuplicateWeightEntry:
            # Lost the race to a concurrent seed of the same day
            return None
        logger.info(
            "Seeded weight entry %s for user %s goal %s (%.1f kg on %s)",
            created.id,
            task.user_id,
            task.goal_id,
            task.weight,
            start.date(),
        )
        return created


class SeedQueue:
    """Hands seed tasks to the rq worker, with rq's retry policy attached."""

    def __init__(
        self,
        queue: Queue,
        max_retries: int | None = None,
        retry_interval: int | None = None,
    ) -> None:
        self._queue = queue
        self._max_retries = settings.seed_max_retries if max_retries is None else max_retries
        self._retry_interval = settings.seed_retry_interval if retry_interval is None else retry_interval

    def enqueue(self, task: SeedTask) -> Job | None:
        try:
            job = self._queue.enqueue(
                SEED_JOB,
                task.user_id,
                task.goal_id,
                task.goal_created_at.isoformat(),
                task.weight,
                retry=Retry(max=self._max_retries, interval=self._retry_interval),
                job_timeout=settings.seed_job_timeout,
            )
        except RedisError as exc:
            logger.error(
                "Failed to enqueue seeding for user %s goal %s: %s",
                task.user_id,
                task.goal_id,
                exc,
            )
            return None
        logger.info("Enqueued seed job %s for user %s goal %s", job.id, task.user_id, task.goal_id)
        return job
