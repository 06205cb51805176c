"""Shared fixtures for the test suite."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from app.goals.errors import ConcurrentModification, ConflictingIdentity, DuplicateWeightEntry
from app.goals.identifiers import new_id
from app.goals.models import GoalStatus, User, WeightEntry
from app.goals.router import get_service
from app.goals.seeder import SeedTask
from app.goals.service import ProfileService
from app.main import app

NOW = datetime(2026, 3, 10, 15, 30, tzinfo=timezone.utc)
TODAY = NOW.date()


# ---------------------------------------------------------------------------
# Test doubles (no real Postgres or Redis needed)
# ---------------------------------------------------------------------------

class InMemoryProfileStore:
    """ProfileStore keeping dumped aggregates, so every read is a fresh copy."""

    def __init__(self) -> None:
        self.rows: dict[str, dict[str, Any]] = {}
        self.saves = 0

    def put(self, user: User) -> User:
        stored = user.model_copy(update={"revision": max(user.revision, 1)})
        self.rows[user.id] = stored.model_dump()
        return stored

    async def find_by_id(self, user_id: str) -> User | None:
        row = self.rows.get(user_id)
        return User.model_validate(row) if row else None

    async def find_one(self, **filters: Any) -> User | None:
        for row in self.rows.values():
            if all(row.get(key) == value for key, value in filters.items()):
                return User.model_validate(row)
        return None

    async def save(self, user: User) -> User:
        stored = self.rows.get(user.id)
        if user.revision == 0:
            clash = any(
                row["email"] == user.email or row["mobile"] == user.mobile for row in self.rows.values()
            )
            if stored is not None or clash:
                raise ConflictingIdentity("Email or mobile already registered")
        elif stored is None or stored["revision"] != user.revision:
            raise ConcurrentModification(f"User {user.id} was modified concurrently")
        saved = user.model_copy(update={"revision": user.revision + 1, "updated_at": NOW}, deep=True)
        self.rows[user.id] = saved.model_dump()
        self.saves += 1
        return saved

    async def delete_by_id(self, user_id: str) -> bool:
        return self.rows.pop(user_id, None) is not None


class InMemoryWeightEntryStore:
    def __init__(self) -> None:
        self.entries: list[WeightEntry] = []

    async def find_one(
        self,
        *,
        user_id: str,
        goal_id: str,
        date_from: datetime,
        date_until: datetime,
    ) -> WeightEntry | None:
        for entry in self.entries:
            if (
                entry.user_id == user_id
                and entry.goal_id == goal_id
                and date_from <= entry.date < date_until
            ):
                return entry
        return None

    async def create(self, entry: WeightEntry) -> WeightEntry:
        if entry.seeded and any(
            e.seeded and (e.user_id, e.goal_id, e.date) == (entry.user_id, entry.goal_id, entry.date)
            for e in self.entries
        ):
            raise DuplicateWeightEntry("already seeded")
        self.entries.append(entry)
        return entry

    async def list_for_user(self, user_id: str, goal_id: str | None = None) -> list[WeightEntry]:
        found = [e for e in self.entries if e.user_id == user_id and (goal_id is None or e.goal_id == goal_id)]
        return sorted(found, key=lambda e: e.date)


class RecordingSeedQueue:
    """SeedQueue double that keeps the tasks instead of talking to Redis."""

    def __init__(self) -> None:
        self.tasks: list[SeedTask] = []

    def enqueue(self, task: SeedTask) -> None:
        self.tasks.append(task)


class FakeResult:
    def __init__(self, rows: list[dict[str, Any]] | None = None, rowcount: int = 1) -> None:
        self._rows = rows or []
        self.rowcount = rowcount

    def keys(self) -> list[str]:
        return list(self._rows[0]) if self._rows else []

    def fetchone(self):
        return tuple(self._rows[0].values()) if self._rows else None

    def fetchall(self):
        return [tuple(row.values()) for row in self._rows]


class FakeSession:
    """Async session double: records statements, returns ``result`` or raises ``error``."""

    def __init__(self, result: FakeResult | None = None, error: Exception | None = None) -> None:
        self.result = result or FakeResult()
        self.error = error
        self.executed: list[tuple[str, dict[str, Any]]] = []
        self.committed = False
        self.rolled_back = False

    async def __aenter__(self) -> "FakeSession":
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None

    async def execute(self, statement, params=None):
        self.executed.append((str(statement), params or {}))
        if self.error is not None:
            raise self.error
        return self.result

    async def commit(self) -> None:
        self.committed = True

    async def rollback(self) -> None:
        self.rolled_back = True


class FakeClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def make_user(**overrides: Any) -> User:
    """User with an active goal: 80 kg now, 75 kg by 30 days out."""
    defaults: dict[str, Any] = dict(
        id=new_id(),
        email="jane@example.com",
        mobile="5551234567",
        password_hash="x",
        name="Jane",
        gender="Female",
        age=34,
        height=168.0,
        current_weight=80.0,
        target_weight=75.0,
        target_date=TODAY + timedelta(days=30),
        goal_id=new_id(),
        goal_status=GoalStatus.active,
        goal_created_at=NOW - timedelta(days=5),
        goal_initial_weight=82.0,
        created_at=NOW - timedelta(days=60),
        updated_at=NOW - timedelta(days=5),
    )
    defaults.update(overrides)
    return User(**defaults)


def make_user_without_goal(**overrides: Any) -> User:
    cleared = dict(
        target_weight=None,
        target_date=None,
        goal_id=None,
        goal_status=GoalStatus.none,
        goal_created_at=None,
        goal_initial_weight=None,
    )
    cleared.update(overrides)
    return make_user(**cleared)


def registration_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": "Jane Doe",
        "email": "jane@example.com",
        "mobile": "5551234567",
        "password": "secret123",
        "confirmPassword": "secret123",
        "gender": "Female",
        "age": 34,
        "height": 168,
        "currentWeight": 80,
        "targetWeight": 75,
        "targetDate": (TODAY + timedelta(days=30)).isoformat(),
    }
    payload.update(overrides)
    return payload


def goal_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "height": 168,
        "currentWeight": 78,
        "targetWeight": 72,
        "targetDate": (TODAY + timedelta(days=60)).isoformat(),
    }
    payload.update(overrides)
    return payload


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def profiles() -> InMemoryProfileStore:
    return InMemoryProfileStore()


@pytest.fixture()
def entries() -> InMemoryWeightEntryStore:
    return InMemoryWeightEntryStore()


@pytest.fixture()
def seeds() -> RecordingSeedQueue:
    return RecordingSeedQueue()


@pytest.fixture()
def service(profiles, entries, seeds, clock) -> ProfileService:
    return ProfileService(profiles, entries, seeds, clock=clock, max_attempts=3)


@pytest.fixture()
def override_service(service):
    """Override the FastAPI dependency so no real DB is needed."""
    app.dependency_overrides[get_service] = lambda: service
    yield service
    app.dependency_overrides.clear()


@pytest.fixture()
async def client(override_service):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture()
def today() -> date:
    return TODAY
