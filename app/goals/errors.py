"""Typed failures raised by the goal lifecycle and its stores.

The router maps each ``kind`` to an HTTP status; nothing in the core
retries except the versioned-write loop in the service.
"""

from __future__ import annotations

from typing import Any


class GoalTrackerError(Exception):
    kind = "GoalTrackerError"

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors or []

    def to_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.errors:
            detail["errors"] = self.errors
        return detail


class ValidationFailed(GoalTrackerError):
    kind = "ValidationFailed"


class NotFound(GoalTrackerError):
    kind = "NotFound"


class NoActiveGoal(GoalTrackerError):
    kind = "NoActiveGoal"


class ConflictingIdentity(GoalTrackerError):
    kind = "ConflictingIdentity"


class ConcurrentModification(GoalTrackerError):
    kind = "ConcurrentModification"


class StoreFailure(GoalTrackerError):
    kind = "StoreFailure"


class InconsistentGoalState(StoreFailure):
    """Goal quintuple is partially populated; refusing to persist."""

    kind = "InconsistentGoalState"


class DuplicateWeightEntry(StoreFailure):
    """A seeded entry for the same user, goal and day already exists."""

    kind = "DuplicateWeightEntry"
