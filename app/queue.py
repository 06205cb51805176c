"""Redis connection, rq queue and worker for background goal seeding."""

from __future__ import annotations

from redis import Redis
from rq import Queue, Worker as RQWorker

from app.config import settings


def create_redis_connection(url: str | None = None) -> Redis:
    return Redis.from_url(url or settings.redis_url)


def create_queue(redis_conn: Redis | None = None) -> Queue:
    return Queue(
        settings.seed_queue_name,
        connection=redis_conn or create_redis_connection(),
        default_timeout=settings.seed_job_timeout,
    )


def create_worker(redis_conn: Redis | None = None) -> RQWorker:
    redis_conn = redis_conn or create_redis_connection()
    queue = Queue(settings.seed_queue_name, connection=redis_conn)
    return RQWorker([queue], connection=redis_conn)
