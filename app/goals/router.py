"""Profile & goal HTTP router."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request

from app.auth import verify_api_key
from app.goals.errors import GoalTrackerError
from app.goals.service import ProfileService

router = APIRouter(prefix="/users", tags=["users"])

STATUS_BY_KIND = {
    "ValidationFailed": 422,
    "NotFound": 404,
    "NoActiveGoal": 400,
    "ConflictingIdentity": 409,
    "ConcurrentModification": 409,
}


def get_service(request: Request) -> ProfileService:
    return request.app.state.profile_service


def _http_error(exc: GoalTrackerError) -> HTTPException:
    return HTTPException(status_code=STATUS_BY_KIND.get(exc.kind, 500), detail=exc.to_detail())


# ---------------------------------------------------------------------------
# /users
# ---------------------------------------------------------------------------


@router.post("", status_code=201)
async def create_profile(
    payload: dict[str, Any] = Body(...),
    service: ProfileService = Depends(get_service),
    _: str = Depends(verify_api_key),
) -> dict:
    try:
        user = await service.create_profile(payload)
    except GoalTrackerError as exc:
        raise _http_error(exc)
    return {"message": "Registration successful", "user": user.snapshot()}


@router.get("/{user_id}")
async def get_profile(
    user_id: str,
    service: ProfileService = Depends(get_service),
    _: str = Depends(verify_api_key),
) -> dict:
    try:
        user = await service.get_profile(user_id)
    except GoalTrackerError as exc:
        raise _http_error(exc)
    return user.snapshot()


@router.put("/{user_id}")
async def update_profile(
    user_id: str,
    payload: dict[str, Any] = Body(...),
    service: ProfileService = Depends(get_service),
    _: str = Depends(verify_api_key),
) -> dict:
    try:
        user = await service.update_profile(user_id, payload)
    except GoalTrackerError as exc:
        raise _http_error(exc)
    return {"message": "User profile updated successfully", "user": user.snapshot()}


@router.delete("/{user_id}")
async def delete_profile(
    user_id: str,
    service: ProfileService = Depends(get_service),
    _: str = Depends(verify_api_key),
) -> dict:
    try:
        await service.delete_profile(user_id)
    except GoalTrackerError as exc:
        raise _http_error(exc)
    return {"message": "User deleted successfully"}


# ---------------------------------------------------------------------------
# /users/{id} goal transitions
# ---------------------------------------------------------------------------


@router.post("/{user_id}/discard-goal")
async def discard_goal(
    user_id: str,
    service: ProfileService = Depends(get_service),
    _: str = Depends(verify_api_key),
) -> dict:
    try:
        user = await service.discard_goal(user_id)
    except GoalTrackerError as exc:
        raise _http_error(exc)
    return {"message": "Goal discarded", "user": user.snapshot()}


@router.post("/{user_id}/achieve-goal")
async def achieve_goal(
    user_id: str,
    service: ProfileService = Depends(get_service),
    _: str = Depends(verify_api_key),
) -> dict:
    try:
        user = await service.achieve_goal(user_id)
    except GoalTrackerError as exc:
        raise _http_error(exc)
    return {"message": "Goal marked as achieved", "user": user.snapshot()}


@router.post("/{user_id}/check-expiry")
async def check_expiry(
    user_id: str,
    service: ProfileService = Depends(get_service),
    _: str = Depends(verify_api_key),
) -> dict:
    try:
        user = await service.check_expiry(user_id)
    except GoalTrackerError as exc:
        raise _http_error(exc)
    return {"message": "Goal status checked", "user": user.snapshot()}


@router.get("/{user_id}/weight-entries")
async def list_weight_entries(
    user_id: str,
    service: ProfileService = Depends(get_service),
    _: str = Depends(verify_api_key),
    goal_id: str | None = Query(default=None, alias="goalId", description="Only entries of this goal"),
) -> list[dict]:
    try:
        entries = await service.list_weight_entries(user_id, goal_id)
    except GoalTrackerError as exc:
        raise _http_error(exc)
    return [entry.model_dump(mode="json", by_alias=True) for entry in entries]
