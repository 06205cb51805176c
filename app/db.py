"""Async engine and session factory shared by the Postgres stores."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.config import settings

_PLAIN_PREFIXES = ("postgres://", "postgresql://")


def async_database_url(url: str) -> str:
    """Point plain Postgres URLs (as most hosts hand them out) at asyncpg."""
    for prefix in _PLAIN_PREFIXES:
        if url.startswith(prefix):
            return "postgresql+asyncpg://" + url[len(prefix):]
    return url


def build_engine(url: str | None = None) -> AsyncEngine:
    return create_async_engine(
        async_database_url(url or settings.database_url),
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        echo=settings.db_echo,
    )


engine = build_engine()
# Stores open one short-lived session per call, so the seeder can keep
# using them after the request that queued it has finished.
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
