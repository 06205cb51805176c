"""Goal lifecycle: pure transitions on the User aggregate.

States of the current goal slot: none -> active -> (achieved | discarded |
expired | superseded). Terminal states live only in ``past_goals``; the slot
itself goes back to ``none`` (or ``expired`` after lazy expiry) with every
goal field cleared. Functions mutate the user in memory and never do I/O.
"""

from __future__ import annotations

import logging
from datetime import date, datetime

from app.goals.errors import InconsistentGoalState, NoActiveGoal
from app.goals.identifiers import is_canonical, new_id
from app.goals.models import ArchivedGoal, ArchivedGoalStatus, GoalStatus, User
from app.goals.schemas import GoalPayload, ProfilePayload

logger = logging.getLogger(__name__)

_VERBS = {
    ArchivedGoalStatus.achieved: "achieve",
    ArchivedGoalStatus.discarded: "discard",
    ArchivedGoalStatus.expired: "expire",
}


def goal_fields(user: User) -> tuple:
    return (
        user.target_weight,
        user.target_date,
        user.goal_id,
        user.goal_created_at,
        user.goal_initial_weight,
    )


def assert_goal_consistency(user: User) -> None:
    """Raise InconsistentGoalState unless the goal quintuple is all-or-nothing."""
    present = [value is not None for value in goal_fields(user)]
    if any(present) and not all(present):
        raise InconsistentGoalState(f"User {user.id} has a partially populated goal")
    active = user.goal_status is GoalStatus.active
    if all(present) != active:
        raise InconsistentGoalState(
            f"User {user.id} goal_status={user.goal_status.value} does not match its goal fields"
        )


def _clear_goal(user: User, status: GoalStatus = GoalStatus.none) -> None:
    user.target_weight = None
    user.target_date = None
    user.goal_id = None
    user.goal_created_at = None
    user.goal_initial_weight = None
    user.goal_status = status


def _archive(user: User, status: ArchivedGoalStatus, now: datetime) -> ArchivedGoal:
    # started_at is the account creation time, not the goal's
    archived = ArchivedGoal(
        goal_id=user.goal_id if is_canonical(user.goal_id) else new_id(),
        current_weight=user.current_weight,
        target_weight=user.target_weight,
        target_date=user.target_date,
        started_at=user.created_at,
        goal_created_at=user.goal_created_at,
        ended_at=now,
        status=status,
    )
    user.past_goals.append(archived)
    return archived


def create_goal(
    user: User,
    *,
    current_weight: float,
    target_weight: float,
    target_date: date,
    now: datetime,
    height: float | None = None,
    goal_id: str | None = None,
) -> ArchivedGoal | None:
    """Start a goal in the current slot.

    A caller-supplied ``goal_id`` is kept only when canonical and not already
    used by an archived goal. An active goal with a different id is archived
    as ``superseded`` first; the superseded entry is returned.
    """
    archived_ids = {goal.goal_id for goal in user.past_goals}
    if not is_canonical(goal_id) or goal_id in archived_ids:
        goal_id = new_id()

    superseded = None
    if user.has_goal() and user.goal_id != goal_id:
        superseded = _archive(user, ArchivedGoalStatus.superseded, now)
        logger.info("Goal %s of user %s superseded by %s", superseded.goal_id, user.id, goal_id)

    if height is not None:
        user.height = height
    user.current_weight = current_weight
    user.target_weight = target_weight
    user.target_date = target_date
    user.goal_id = goal_id
    user.goal_created_at = now
    user.goal_initial_weight = current_weight
    user.goal_status = GoalStatus.active
    logger.info("Goal %s created for user %s (target %.1f by %s)", goal_id, user.id, target_weight, target_date)
    return superseded


def terminate_goal(user: User, status: ArchivedGoalStatus, now: datetime) -> ArchivedGoal:
    """Archive the current goal with ``status`` and reset the slot."""
    if not user.has_goal():
        raise NoActiveGoal(f"No active goal to {_VERBS.get(status, 'terminate')}")
    archived = _archive(user, status, now)
    _clear_goal(user, GoalStatus.expired if status is ArchivedGoalStatus.expired else GoalStatus.none)
    logger.info("Goal %s of user %s %s", archived.goal_id, user.id, status.value)
    return archived


def discard_goal(user: User, now: datetime) -> ArchivedGoal:
    return terminate_goal(user, ArchivedGoalStatus.discarded, now)


def achieve_goal(user: User, now: datetime) -> ArchivedGoal:
    return terminate_goal(user, ArchivedGoalStatus.achieved, now)


def is_overdue(user: User, now: datetime) -> bool:
    """True once the target day has started, i.e. its midnight is in the past."""
    return user.target_date is not None and user.target_date <= now.date()


def expire_if_due(user: User, now: datetime) -> ArchivedGoal | None:
    if not is_overdue(user, now):
        return None
    return terminate_goal(user, ArchivedGoalStatus.expired, now)


def apply_goal_update(user: User, payload: GoalPayload, now: datetime) -> ArchivedGoal | None:
    """Goal-only update: always (re)creates the goal in the current slot."""
    return create_goal(
        user,
        current_weight=payload.current_weight,
        target_weight=payload.target_weight,
        target_date=payload.target_date,
        height=payload.height,
        goal_id=payload.goal_id,
        now=now,
    )


def apply_profile_update(user: User, payload: ProfilePayload, now: datetime) -> None:
    """Full update: copy the allow-listed fields, stamping a goal if none is running."""
    user.name = payload.name
    user.gender = payload.gender
    user.age = payload.age
    user.height = payload.height

    running = (
        user.goal_status is GoalStatus.active
        and user.goal_created_at is not None
        and user.goal_initial_weight is not None
    )
    if running:
        user.current_weight = payload.current_weight
        user.target_weight = payload.target_weight
        user.target_date = payload.target_date
        return

    create_goal(
        user,
        current_weight=payload.current_weight,
        target_weight=payload.target_weight,
        target_date=payload.target_date,
        goal_id=user.goal_id,
        now=now,
    )
