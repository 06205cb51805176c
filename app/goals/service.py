"""Profile service: the operations exposed to the HTTP layer.

Each mutating operation reads the full aggregate, normalises goal ids,
applies one lifecycle transition in memory, checks the goal invariant and
writes the aggregate back with a revision check. A revision conflict re-runs
the whole sequence on a fresh read. The goal-start weight entry is enqueued
for the rq worker only after the write has committed.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, TypeVar

from pydantic import BaseModel, ValidationError

from app.config import settings
from app.goals import lifecycle
from app.goals.credentials import CredentialHasher
from app.goals.errors import (
    ConcurrentModification,
    ConflictingIdentity,
    NoActiveGoal,
    NotFound,
    ValidationFailed,
)
from app.goals.identifiers import new_id, normalize_goal_ids
from app.goals.models import User, WeightEntry
from app.goals.schemas import GoalPayload, ProfilePayload, RegistrationPayload, is_goal_only
from app.goals.seeder import SeedQueue, SeedTask
from app.goals.store import ProfileStore, WeightEntryStore

logger = logging.getLogger(__name__)

P = TypeVar("P", bound=BaseModel)
Transition = Callable[[User, datetime], Any]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _field_errors(exc: ValidationError) -> list[dict[str, str]]:
    return [
        {"field": ".".join(str(part) for part in err["loc"]) or "payload", "message": err["msg"]}
        for err in exc.errors()
    ]


class ProfileService:
    def __init__(
        self,
        profiles: ProfileStore,
        entries: WeightEntryStore,
        seeds: SeedQueue,
        hasher: CredentialHasher | None = None,
        clock: Callable[[], datetime] = _utcnow,
        max_attempts: int | None = None,
    ) -> None:
        self._profiles = profiles
        self._entries = entries
        self._seeds = seeds
        self._hasher = hasher or CredentialHasher()
        self._clock = clock
        self._max_attempts = max_attempts or settings.goal_save_max_attempts

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _validate(self, model: type[P], payload: dict[str, Any]) -> P:
        try:
            return model.model_validate(payload, context={"today": self._clock().date()})
        except ValidationError as exc:
            raise ValidationFailed("Validation failed", errors=_field_errors(exc)) from exc

    async def _load(self, user_id: str) -> User:
        user = await self._profiles.find_by_id(user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found")
        return user

    async def _persist(self, user: User) -> User:
        normalize_goal_ids(user)
        lifecycle.assert_goal_consistency(user)
        saved = await self._profiles.save(user)
        task = SeedTask.for_user(saved)
        if task is not None:
            # rq enqueue is a blocking Redis call
            await asyncio.to_thread(self._seeds.enqueue, task)
        return saved

    async def _mutate(self, user_id: str, transition: Transition) -> User:
        """Load, transition, save; retried from a fresh read on revision conflicts."""
        attempt = 1
        while True:
            user = await self._load(user_id)
            normalize_goal_ids(user)
            try:
                transition(user, self._clock())
            except ValidationError as exc:
                raise ValidationFailed("Validation failed", errors=_field_errors(exc)) from exc
            try:
                return await self._persist(user)
            except ConcurrentModification:
                if attempt >= self._max_attempts:
                    raise
                logger.warning(
                    "Revision conflict saving user %s (attempt %d/%d), retrying",
                    user_id,
                    attempt,
                    self._max_attempts,
                )
                attempt += 1

    # ------------------------------------------------------------------
    # operations
    # ------------------------------------------------------------------

    async def create_profile(self, payload: dict[str, Any]) -> User:
        """Register a user together with their first goal."""
        data = self._validate(RegistrationPayload, payload)
        email = str(data.email)
        if await self._profiles.find_one(email=email) or await self._profiles.find_one(mobile=data.mobile):
            raise ConflictingIdentity("Email or mobile already registered")

        now = self._clock()
        try:
            user = User(
                id=new_id(),
                email=email,
                mobile=data.mobile,
                password_hash=self._hasher.hash(data.password),
                name=data.name,
                gender=data.gender,
                age=data.age,
                height=data.height,
                current_weight=data.current_weight,
                created_at=now,
                updated_at=now,
            )
            lifecycle.create_goal(
                user,
                current_weight=data.current_weight,
                target_weight=data.target_weight,
                target_date=data.target_date,
                goal_id=data.goal_id,
                now=now,
            )
        except ValidationError as exc:
            raise ValidationFailed("Validation failed", errors=_field_errors(exc)) from exc
        saved = await self._persist(user)
        logger.info("Registered user %s", saved.id)
        return saved

    async def update_profile(self, user_id: str, payload: dict[str, Any]) -> User:
        """Goal-only payloads (re)create the goal; anything else is a full update.

        An overdue goal is expired before the payload is applied and the
        check runs again afterwards.
        """
        if is_goal_only(payload):
            goal = self._validate(GoalPayload, payload)

            def transition(user: User, now: datetime) -> None:
                lifecycle.expire_if_due(user, now)
                lifecycle.apply_goal_update(user, goal, now)
                lifecycle.expire_if_due(user, now)

        else:
            profile = self._validate(ProfilePayload, payload)

            def transition(user: User, now: datetime) -> None:
                lifecycle.expire_if_due(user, now)
                lifecycle.apply_profile_update(user, profile, now)
                lifecycle.expire_if_due(user, now)

        return await self._mutate(user_id, transition)

    async def discard_goal(self, user_id: str) -> User:
        return await self._mutate(user_id, lifecycle.discard_goal)

    async def achieve_goal(self, user_id: str) -> User:
        return await self._mutate(user_id, lifecycle.achieve_goal)

    async def check_expiry(self, user_id: str) -> User:
        """Archive the current goal as expired if its target day has arrived.

        Raises NoActiveGoal when there is no goal to check; a goal that is not
        yet due is returned unchanged without a write.
        """
        user = normalize_goal_ids(await self._load(user_id))
        if not user.has_goal():
            raise NoActiveGoal("No active goal to expire")
        if not lifecycle.is_overdue(user, self._clock()):
            return user
        return await self._mutate(user_id, lifecycle.expire_if_due)

    async def get_profile(self, user_id: str) -> User:
        # Normalised in memory only; the next write persists it
        return normalize_goal_ids(await self._load(user_id))

    async def delete_profile(self, user_id: str) -> None:
        if not await self._profiles.delete_by_id(user_id):
            raise NotFound(f"User {user_id} not found")

    async def list_weight_entries(self, user_id: str, goal_id: str | None = None) -> list[WeightEntry]:
        await self._load(user_id)
        return await self._entries.list_for_user(user_id, goal_id)
