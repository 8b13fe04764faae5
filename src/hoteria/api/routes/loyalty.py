"""Loyalty endpoints for the authenticated user."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path

from hoteria.api.auth import CurrentUser, get_current_user
from hoteria.domain.loyalty import get_membership, redeem_reward

router = APIRouter(prefix="/loyalty", tags=["loyalty"])


@router.get("/me")
def membership(user: CurrentUser = Depends(get_current_user)) -> dict:
    """Points balance, derived tier and recent ledger entries."""
    return get_membership(user.id)


@router.post("/rewards/{reward_id}/redeem")
def redeem(
    reward_id: str = Path(..., description="Reward UUID"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    return redeem_reward(user.id, reward_id=reward_id)
