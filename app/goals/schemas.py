"""Request payloads and their validation rules."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from pydantic import EmailStr, Field, ValidationInfo, field_validator, model_validator

from app.goals.models import CamelModel, Gender

# Keys a goal-only update may carry. goal_status / goal_created_at are
# accepted so clients can echo them back, but the server owns both.
GOAL_ONLY_KEYS = frozenset(
    {"height", "currentWeight", "targetWeight", "targetDate", "goalStatus", "goalCreatedAt", "goalId"}
)


def is_goal_only(payload: dict[str, Any]) -> bool:
    return all(key in GOAL_ONLY_KEYS for key in payload)


def _today(info: ValidationInfo) -> date:
    if info.context and info.context.get("today") is not None:
        return info.context["today"]
    return datetime.now(timezone.utc).date()


class GoalPayload(CamelModel):
    height: float = Field(ge=50, le=300)
    current_weight: float = Field(ge=20, le=500)
    target_weight: float = Field(ge=20, le=500)
    target_date: date
    goal_id: str | None = None
    goal_status: str | None = None
    goal_created_at: str | None = None

    @field_validator("target_date", mode="before")
    @classmethod
    def _parse_iso(cls, value: Any) -> Any:
        # Clients send either YYYY-MM-DD or a full ISO-8601 timestamp;
        # offset-aware timestamps are read on the UTC calendar
        if isinstance(value, str) and "T" in value:
            try:
                moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
                if moment.tzinfo is not None:
                    moment = moment.astimezone(timezone.utc)
                return moment.date()
            except ValueError:
                return value
        return value

    @field_validator("target_date")
    @classmethod
    def _must_be_future(cls, value: date, info: ValidationInfo) -> date:
        if value <= _today(info):
            raise ValueError("Target date must be a future date")
        return value


class ProfilePayload(GoalPayload):
    name: str = Field(min_length=2)
    gender: Gender
    age: int = Field(ge=1, le=120)

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class RegistrationPayload(ProfilePayload):
    email: EmailStr
    mobile: str = Field(pattern=r"^[0-9]{10,15}$")
    password: str = Field(min_length=6)
    confirm_password: str

    @model_validator(mode="after")
    def _passwords_match(self) -> "RegistrationPayload":
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self
