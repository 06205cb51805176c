"""Profile and weight-entry stores: async Postgres access via raw SQL.

Users are persisted as one row per aggregate with ``past_goals`` embedded as a
JSONB array. Writes are versioned: ``save`` only updates the row whose
``revision`` still equals the one that was read, otherwise it raises
ConcurrentModification and the caller re-reads.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Protocol

from sqlalchemy import bindparam, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from app.goals.errors import (
    ConcurrentModification,
    ConflictingIdentity,
    DuplicateWeightEntry,
    StoreFailure,
)
from app.goals.models import User, WeightEntry

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncSession]

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        mobile TEXT NOT NULL UNIQUE,
        password_hash TEXT NOT NULL,
        name TEXT NOT NULL,
        gender TEXT,
        age INTEGER,
        height DOUBLE PRECISION,
        current_weight DOUBLE PRECISION,
        target_weight DOUBLE PRECISION,
        target_date DATE,
        goal_id TEXT,
        goal_status TEXT NOT NULL DEFAULT 'none',
        goal_created_at TIMESTAMPTZ,
        goal_initial_weight DOUBLE PRECISION,
        past_goals JSONB NOT NULL DEFAULT '[]'::jsonb,
        revision INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS weight_entries (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        goal_id TEXT,
        weight DOUBLE PRECISION NOT NULL,
        date TIMESTAMPTZ NOT NULL,
        notes TEXT,
        seeded BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TIMESTAMPTZ NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_weight_entries_user_date ON weight_entries (user_id, date)",
    # Only seeded rows are constrained; manual entries may repeat a day
    "CREATE UNIQUE INDEX IF NOT EXISTS ux_weight_entries_seed "
    "ON weight_entries (user_id, goal_id, date) WHERE seeded",
)

_USER_COLUMNS = (
    "id, email, mobile, password_hash, name, gender, age, height, current_weight, "
    "target_weight, target_date, goal_id, goal_status, goal_created_at, goal_initial_weight, "
    "past_goals, revision, created_at, updated_at"
)

_USER_FILTERS = frozenset({"id", "email", "mobile", "goal_id"})

_ENTRY_COLUMNS = "id, user_id, goal_id, weight, date, notes, seeded, created_at"


async def create_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        for statement in SCHEMA_STATEMENTS:
            await conn.execute(text(statement))


class ProfileStore(Protocol):
    async def find_by_id(self, user_id: str) -> User | None: ...

    async def find_one(self, **filters: Any) -> User | None: ...

    async def save(self, user: User) -> User: ...

    async def delete_by_id(self, user_id: str) -> bool: ...


class WeightEntryStore(Protocol):
    async def find_one(
        self,
        *,
        user_id: str,
        goal_id: str,
        date_from: datetime,
        date_until: datetime,
    ) -> WeightEntry | None: ...

    async def create(self, entry: WeightEntry) -> WeightEntry: ...

    async def list_for_user(self, user_id: str, goal_id: str | None = None) -> list[WeightEntry]: ...


def _row_to_user(row: dict[str, Any]) -> User:
    past_goals = row.get("past_goals") or []
    if isinstance(past_goals, str):
        past_goals = json.loads(past_goals)
    return User.model_validate({**row, "past_goals": past_goals})


def _user_params(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "mobile": user.mobile,
        "password_hash": user.password_hash,
        "name": user.name,
        "gender": user.gender.value if user.gender else None,
        "age": user.age,
        "height": user.height,
        "current_weight": user.current_weight,
        "target_weight": user.target_weight,
        "target_date": user.target_date,
        "goal_id": user.goal_id,
        "goal_status": user.goal_status.value,
        "goal_created_at": user.goal_created_at,
        "goal_initial_weight": user.goal_initial_weight,
        "past_goals": [goal.model_dump(mode="json") for goal in user.past_goals],
        "created_at": user.created_at,
    }


class PostgresProfileStore:
    """ProfileStore backed by the ``users`` table."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def find_by_id(self, user_id: str) -> User | None:
        return await self.find_one(id=user_id)

    async def find_one(self, **filters: Any) -> User | None:
        unknown = set(filters) - _USER_FILTERS
        if not filters or unknown:
            raise ValueError(f"Unsupported user filter: {sorted(unknown) or 'empty'}")

        clauses = " AND ".join(f"{column} = :{column}" for column in sorted(filters))
        query = f"SELECT {_USER_COLUMNS} FROM users WHERE {clauses} LIMIT 1"
        try:
            async with self._session_factory() as session:
                result = await session.execute(text(query), filters)
                row = result.fetchone()
                if row is None:
                    return None
                return _row_to_user(dict(zip(result.keys(), row)))
        except SQLAlchemyError as exc:
            logger.exception("Failed to load user by %s", sorted(filters))
            raise StoreFailure("Failed to load user") from exc

    async def save(self, user: User) -> User:
        """Insert a new aggregate (revision 0) or update a stored one.

        Updates are accepted only if the stored revision equals ``user.revision``.
        Returns the aggregate with its new revision and ``updated_at``.
        """
        now = datetime.now(timezone.utc)
        params = _user_params(user)
        params["updated_at"] = now
        params["revision"] = user.revision
        params["next_revision"] = user.revision + 1

        if user.revision == 0:
            stmt = text(
                f"INSERT INTO users ({_USER_COLUMNS}) VALUES ("
                ":id, :email, :mobile, :password_hash, :name, :gender, :age, :height, "
                ":current_weight, :target_weight, :target_date, :goal_id, :goal_status, "
                ":goal_created_at, :goal_initial_weight, :past_goals, 1, :created_at, :updated_at)"
            )
        else:
            stmt = text(
                "UPDATE users SET "
                "email = :email, mobile = :mobile, password_hash = :password_hash, name = :name, "
                "gender = :gender, age = :age, height = :height, current_weight = :current_weight, "
                "target_weight = :target_weight, target_date = :target_date, goal_id = :goal_id, "
                "goal_status = :goal_status, goal_created_at = :goal_created_at, "
                "goal_initial_weight = :goal_initial_weight, past_goals = :past_goals, "
                "revision = :next_revision, updated_at = :updated_at "
                "WHERE id = :id AND revision = :revision"
            )
        stmt = stmt.bindparams(bindparam("past_goals", type_=JSONB))

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt, params)
                if result.rowcount == 0:
                    await session.rollback()
                    raise ConcurrentModification(
                        f"User {user.id} was modified concurrently (expected revision {user.revision})"
                    )
                await session.commit()
        except IntegrityError as exc:
            raise ConflictingIdentity("Email or mobile already registered") from exc
        except SQLAlchemyError as exc:
            logger.exception("Failed to save user %s", user.id)
            raise StoreFailure("Failed to save user") from exc

        return user.model_copy(update={"revision": user.revision + 1, "updated_at": now})

    async def delete_by_id(self, user_id: str) -> bool:
        try:
            async with self._session_factory() as session:
                result = await session.execute(text("DELETE FROM users WHERE id = :id"), {"id": user_id})
                await session.commit()
        except SQLAlchemyError as exc:
            logger.exception("Failed to delete user %s", user_id)
            raise StoreFailure("Failed to delete user") from exc
        return result.rowcount > 0


class PostgresWeightEntryStore:
    """WeightEntryStore backed by the ``weight_entries`` table."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def find_one(
        self,
        *,
        user_id: str,
        goal_id: str,
        date_from: datetime,
        date_until: datetime,
    ) -> WeightEntry | None:
        query = (
            f"SELECT {_ENTRY_COLUMNS} FROM weight_entries "
            "WHERE user_id = :user_id AND goal_id = :goal_id "
            "AND date >= :date_from AND date < :date_until "
            "ORDER BY date LIMIT 1"
        )
        params = {"user_id": user_id, "goal_id": goal_id, "date_from": date_from, "date_until": date_until}
        try:
            async with self._session_factory() as session:
                result = await session.execute(text(query), params)
                row = result.fetchone()
                if row is None:
                    return None
                return WeightEntry.model_validate(dict(zip(result.keys(), row)))
        except SQLAlchemyError as exc:
            logger.exception("Failed to query weight entries of user %s", user_id)
            raise StoreFailure("Failed to query weight entries") from exc

    async def create(self, entry: WeightEntry) -> WeightEntry:
        stmt = text(
            f"INSERT INTO weight_entries ({_ENTRY_COLUMNS}) VALUES "
            "(:id, :user_id, :goal_id, :weight, :date, :notes, :seeded, :created_at)"
        )
        try:
            async with self._session_factory() as session:
                await session.execute(stmt, entry.model_dump())
                await session.commit()
        except IntegrityError as exc:
            raise DuplicateWeightEntry(
                f"Weight entry for user {entry.user_id} goal {entry.goal_id} on {entry.date:%Y-%m-%d} exists"
            ) from exc
        except SQLAlchemyError as exc:
            logger.exception("Failed to create weight entry for user %s", entry.user_id)
            raise StoreFailure("Failed to create weight entry") from exc
        return entry

    async def list_for_user(self, user_id: str, goal_id: str | None = None) -> list[WeightEntry]:
        query = f"SELECT {_ENTRY_COLUMNS} FROM weight_entries WHERE user_id = :user_id"
        params: dict[str, Any] = {"user_id": user_id}
        if goal_id is not None:
            query += " AND goal_id = :goal_id"
            params["goal_id"] = goal_id
        query += " ORDER BY date, created_at"
        try:
            async with self._session_factory() as session:
                result = await session.execute(text(query), params)
                columns = result.keys()
                return [WeightEntry.model_validate(dict(zip(columns, r))) for r in result.fetchall()]
        except SQLAlchemyError as exc:
            logger.exception("Failed to list weight entries of user %s", user_id)
            raise StoreFailure("Failed to list weight entries") from exc
