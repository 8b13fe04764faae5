"""Reward catalog endpoints: admin management and the user's view of it."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, Field

from hoteria.api.auth import CurrentUser, get_current_user
from hoteria.api.rbac import require_role
from hoteria.domain.loyalty import (
    get_redemption_history,
    list_available_rewards,
    list_user_vouchers,
)
from hoteria.domain.reward_catalog import (
    create_reward,
    delete_reward,
    list_catalog,
    update_reward,
)


class CreateRewardRequest(BaseModel):
    """Catalog entry; voucher_code must name a live voucher discount."""

    name: str = Field(min_length=1)
    description: str | None = None
    membership_level: str
    points_required: int = Field(ge=0)
    voucher_code: str = Field(min_length=1)


class UpdateRewardRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    membership_level: str | None = None
    points_required: int | None = Field(default=None, ge=0)
    voucher_code: str | None = Field(default=None, min_length=1)


router = APIRouter(prefix="/rewards", tags=["rewards"])


@router.get("")
def available(user: CurrentUser = Depends(get_current_user)) -> dict:
    """Rewards at the user's tier that the balance covers."""
    return list_available_rewards(user.id)


@router.get("/admin")
def catalog(user: CurrentUser = Depends(require_role("admin"))) -> list[dict]:
    return list_catalog(actor_role=user.role)


@router.get("/vouchers")
def vouchers(user: CurrentUser = Depends(get_current_user)) -> list[dict]:
    """Redeemed vouchers not used yet."""
    return list_user_vouchers(user.id)


@router.get("/history")
def history(
    limit: int = Query(default=50, ge=1, le=200),
    user: CurrentUser = Depends(get_current_user),
) -> list[dict]:
    return get_redemption_history(user.id, limit=limit)


@router.post("", status_code=201)
def create(
    body: CreateRewardRequest,
    user: CurrentUser = Depends(require_role("admin")),
) -> dict:
    return create_reward(body.model_dump(), actor_role=user.role)


@router.put("/{reward_id}")
def update(
    body: UpdateRewardRequest,
    reward_id: str = Path(..., description="Reward UUID"),
    user: CurrentUser = Depends(require_role("admin")),
) -> dict:
    return update_reward(reward_id, body.model_dump(exclude_unset=True), actor_role=user.role)


@router.delete("/{reward_id}")
def delete(
    reward_id: str = Path(..., description="Reward UUID"),
    user: CurrentUser = Depends(require_role("admin")),
) -> dict:
    return delete_reward(reward_id, actor_role=user.role)
