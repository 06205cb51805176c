"""User aggregate, archived goals and weight entries as Pydantic v2 models."""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GoalStatus(str, Enum):
    none = "none"
    active = "active"
    expired = "expired"


class ArchivedGoalStatus(str, Enum):
    achieved = "achieved"
    discarded = "discarded"
    expired = "expired"
    superseded = "superseded"


class Gender(str, Enum):
    male = "Male"
    female = "Female"
    other = "Other"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ArchivedGoal(CamelModel):
    """A terminated goal. Appended to ``User.past_goals`` and never edited."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    goal_id: str | None = None
    current_weight: float | None = None
    target_weight: float | None = None
    target_date: date | None = None
    started_at: datetime | None = None  # account creation time, see DESIGN.md
    goal_created_at: datetime | None = None
    ended_at: datetime
    status: ArchivedGoalStatus


class User(CamelModel):
    """One aggregate per account: identity, profile, current goal slot, history.

    The goal quintuple (target_weight, target_date, goal_id, goal_created_at,
    goal_initial_weight) is all-present for an active goal and all-absent
    otherwise; ``lifecycle.assert_goal_consistency`` enforces it before saves.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )

    id: str
    email: str
    mobile: str
    password_hash: str = ""

    name: str = Field(min_length=2)
    gender: Gender | None = None
    age: int | None = Field(default=None, ge=1, le=120)
    height: float | None = Field(default=None, ge=50, le=300)
    current_weight: float | None = Field(default=None, ge=20, le=500)

    target_weight: float | None = Field(default=None, ge=20, le=500)
    target_date: date | None = None
    goal_id: str | None = None
    goal_status: GoalStatus = GoalStatus.none
    goal_created_at: datetime | None = None
    goal_initial_weight: float | None = Field(default=None, ge=20, le=500)

    past_goals: list[ArchivedGoal] = Field(default_factory=list)

    revision: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def has_goal(self) -> bool:
        """A goal is logically present when both target fields are set."""
        return self.target_weight is not None and self.target_date is not None

    def snapshot(self) -> dict:
        """Profile as rendered to callers, without the credential hash."""
        return self.model_dump(mode="json", by_alias=True, exclude={"password_hash"})


class WeightEntry(CamelModel):
    id: str
    user_id: str
    goal_id: str | None = None
    weight: float
    date: datetime
    notes: str | None = None
    seeded: bool = False
    created_at: datetime = Field(default_factory=utcnow)
