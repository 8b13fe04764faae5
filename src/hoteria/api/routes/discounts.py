"""Discount endpoints: admin catalog management, member listings, quotes."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel, Field

from hoteria.api.auth import CurrentUser, get_current_user, get_optional_user
from hoteria.api.rbac import require_role
from hoteria.domain.apply_discounts import quote_discounts
from hoteria.domain.discount_catalog import (
    create_discount,
    delete_discount,
    list_accumulated_discounts,
    list_member_discounts,
    update_discount,
)


class CreateDiscountRequest(BaseModel):
    """Discount definition; the type-specific field must match type."""

    name: str = Field(min_length=1)
    description: str | None = None
    type: Literal["voucher", "festival", "member", "accumulated"]
    discount_type: Literal["percentage", "fixed"]
    value: Decimal = Field(ge=0)
    max_discount: int | None = Field(default=None, ge=0)
    start_date: datetime
    end_date: datetime
    applicable_room_ids: list[str] = Field(default_factory=list)
    min_booking_amount: int = Field(default=0, ge=0)
    is_stackable: bool = False
    code: str | None = None
    membership_level: str | None = None
    min_spending: int | None = None


class UpdateDiscountRequest(BaseModel):
    """Fields to change; omitted fields keep their value. type is fixed."""

    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    discount_type: Literal["percentage", "fixed"] | None = None
    value: Decimal | None = Field(default=None, ge=0)
    max_discount: int | None = Field(default=None, ge=0)
    start_date: datetime | None = None
    end_date: datetime | None = None
    applicable_room_ids: list[str] | None = None
    min_booking_amount: int | None = Field(default=None, ge=0)
    is_stackable: bool | None = None
    code: str | None = None
    membership_level: str | None = None
    min_spending: int | None = None


class QuoteRequest(BaseModel):
    """A prospective stay and the codes/ids to price it with."""

    room_id: str
    checkin: date
    checkout: date
    codes: list[str] = Field(min_length=1)


router = APIRouter(prefix="/discounts", tags=["discounts"])


@router.post("", status_code=201)
def create(
    body: CreateDiscountRequest,
    user: CurrentUser = Depends(require_role("admin")),
) -> dict:
    return create_discount(body.model_dump(), actor_role=user.role)


@router.put("/{discount_id}")
def update(
    body: UpdateDiscountRequest,
    discount_id: str = Path(..., description="Discount UUID"),
    user: CurrentUser = Depends(require_role("admin")),
) -> dict:
    return update_discount(discount_id, body.model_dump(exclude_unset=True), actor_role=user.role)


@router.delete("/{discount_id}")
def delete(
    discount_id: str = Path(..., description="Discount UUID"),
    user: CurrentUser = Depends(require_role("admin")),
) -> dict:
    return delete_discount(discount_id, actor_role=user.role)


@router.get("/member")
def member(user: CurrentUser = Depends(get_current_user)) -> dict:
    """Active member discounts of the caller's tier."""
    return list_member_discounts(user.id)


@router.get("/accumulated")
def accumulated(user: CurrentUser = Depends(get_current_user)) -> dict:
    """Active accumulated discounts the caller's spending unlocks."""
    return list_accumulated_discounts(user.id)


@router.post("/quote")
def quote(
    body: QuoteRequest,
    user: CurrentUser | None = Depends(get_optional_user),
) -> dict:
    """Price a stay with discounts before booking; nothing is stored."""
    return quote_discounts(
        room_id=body.room_id,
        checkin=body.checkin,
        checkout=body.checkout,
        identifiers=body.codes,
        user_id=user.id if user else None,
    )
