"""Goal identifier normalisation.

Canonical identifiers are 24 lowercase hex characters: a 4-byte big-endian
seconds timestamp followed by 8 random bytes. Older records may still hold
36-character hyphenated identifiers from the previous scheme; those are
rewritten in place before any persist that could observe them.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import Any

from app.goals.models import User

logger = logging.getLogger(__name__)

CANONICAL_LENGTH = 24
LEGACY_LENGTH = 36
_HEX = frozenset("0123456789abcdef")


def new_id() -> str:
    stamp = int(time.time()) & 0xFFFFFFFF
    return stamp.to_bytes(4, "big").hex() + secrets.token_hex(8)


def is_canonical(value: Any) -> bool:
    return isinstance(value, str) and len(value) == CANONICAL_LENGTH and set(value) <= _HEX


def is_legacy(value: Any) -> bool:
    return isinstance(value, str) and len(value) == LEGACY_LENGTH and "-" in value


def canonicalize(value: Any) -> str:
    """Return ``value`` if already canonical, else a freshly issued identifier."""
    if is_canonical(value):
        return value
    replacement = new_id()
    if is_legacy(value):
        logger.info("Rewrote legacy goal id %s -> %s", value, replacement)
    elif value:
        logger.warning("Replaced malformed goal id %r -> %s", value, replacement)
    return replacement


def normalize_goal_ids(user: User) -> User:
    """Rewrite non-canonical goal ids on the user and every archived goal.

    Synthesizes an id when the current slot holds a goal (either target
    field set) but no id. Idempotent; performs no I/O.
    """
    for i, goal in enumerate(user.past_goals):
        if not is_canonical(goal.goal_id):
            user.past_goals[i] = goal.model_copy(update={"goal_id": canonicalize(goal.goal_id)})

    if not user.goal_id:
        if user.target_weight is not None or user.target_date is not None:
            user.goal_id = new_id()
        elif user.goal_id is not None:
            user.goal_id = None
    elif not is_canonical(user.goal_id):
        user.goal_id = canonicalize(user.goal_id)
    return user
