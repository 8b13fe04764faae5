"""Booking endpoints.

Thin translation layer: request models in, domain calls, dicts out. Domain
errors are mapped to HTTP by the app's exception handler.
"""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel, Field, field_validator

from hoteria.api.auth import CurrentUser, get_current_user, get_optional_user
from hoteria.api.rbac import require_role
from hoteria.domain.apply_discounts import apply_discounts
from hoteria.domain.bookings import create_booking, validate_booking
from hoteria.domain.cancellation import cancel_booking, record_cancel_reason
from hoteria.domain.extend_stay import extend_stay
from hoteria.domain.loyalty import award_points
from hoteria.domain.payments import (
    attach_gateway_order,
    check_payment_deadline,
    confirm_booking,
    update_payment_method,
)
from hoteria.domain.room_assignment import reassign_room
from hoteria.observability.correlation import get_correlation_id
from hoteria.observability.logging import get_logger
from hoteria.observability.redaction import safe_log_context


class ValidateBookingRequest(BaseModel):
    room_id: str
    checkin: date
    checkout: date
    adults: int = Field(ge=1)
    children: int = Field(default=0, ge=0)
    room_type: str | None = None


class CreateBookingRequest(BaseModel):
    """Request body for a new booking."""

    room_id: str
    guest_name: str = Field(min_length=1)
    guest_email: str
    guest_phone: str | None = None
    checkin: date
    checkout: date
    adults: int = Field(ge=1)
    children: int = Field(default=0, ge=0)
    room_type: str | None = None
    special_request: str | None = None
    payment_method: str

    @field_validator("guest_email")
    @classmethod
    def _email_shape(cls, v: str) -> str:
        v = v.strip()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("guest_email must be an email address")
        return v


class CancelBookingRequest(BaseModel):
    reason: str


class AssignRoomRequest(BaseModel):
    room_id: str


class ExtendStayRequest(BaseModel):
    checkout: date


class PaymentMethodRequest(BaseModel):
    payment_method: str


class ApplyDiscountsRequest(BaseModel):
    """Voucher codes or discount ids, in priority order."""

    codes: list[str] = Field(min_length=1)


class GatewayOrderRequest(BaseModel):
    gateway: str = Field(min_length=1)
    order_id: str = Field(min_length=1)


router = APIRouter(prefix="/bookings", tags=["bookings"])

logger = get_logger(__name__)


@router.post("/validate")
def validate(body: ValidateBookingRequest) -> dict:
    """Pre-validate a reservation request (no writes)."""
    return validate_booking(
        room_id=body.room_id,
        checkin=body.checkin,
        checkout=body.checkout,
        adults=body.adults,
        children=body.children,
        room_type=body.room_type,
    )


@router.post("", status_code=201)
def create(
    body: CreateBookingRequest,
    user: CurrentUser | None = Depends(get_optional_user),
) -> dict:
    """Create a pending booking; anonymous guests are allowed."""
    correlation_id = get_correlation_id()
    logger.info(
        "create booking requested",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                room_id=body.room_id,
                guest_email=body.guest_email,
                authenticated=user is not None,
            )
        },
    )
    return create_booking(
        room_id=body.room_id,
        guest_name=body.guest_name,
        guest_email=body.guest_email,
        guest_phone=body.guest_phone,
        checkin=body.checkin,
        checkout=body.checkout,
        adults=body.adults,
        children=body.children,
        room_type=body.room_type,
        special_request=body.special_request,
        payment_method=body.payment_method,
        user_id=user.id if user else None,
        correlation_id=correlation_id,
    )


@router.post("/{booking_id}/cancel")
def cancel(
    body: CancelBookingRequest,
    booking_id: str = Path(..., description="Booking UUID"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    return cancel_booking(booking_id, reason=body.reason)


@router.post("/{booking_id}/cancel-reason")
def cancel_reason(
    body: CancelBookingRequest,
    booking_id: str = Path(..., description="Booking UUID"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    return record_cancel_reason(booking_id, reason=body.reason)


@router.post("/{booking_id}/confirm")
def confirm(
    booking_id: str = Path(..., description="Booking UUID"),
    user: CurrentUser = Depends(require_role("staff")),
) -> dict:
    return confirm_booking(booking_id)


@router.get("/{booking_id}/payment-deadline")
def payment_deadline(booking_id: str = Path(..., description="Booking UUID")) -> dict:
    """Remaining payment window; expires the booking if it is overdue."""
    return check_payment_deadline(booking_id)


@router.patch("/{booking_id}/payment-method")
def payment_method(
    body: PaymentMethodRequest,
    booking_id: str = Path(..., description="Booking UUID"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    return update_payment_method(
        booking_id,
        payment_method=body.payment_method,
        correlation_id=get_correlation_id(),
    )


@router.post("/{booking_id}/gateway-order")
def gateway_order(
    body: GatewayOrderRequest,
    booking_id: str = Path(..., description="Booking UUID"),
    user: CurrentUser | None = Depends(get_optional_user),
) -> dict:
    return attach_gateway_order(booking_id, gateway=body.gateway, order_id=body.order_id)


@router.post("/{booking_id}/assign-room")
def assign_room(
    body: AssignRoomRequest,
    booking_id: str = Path(..., description="Booking UUID"),
    user: CurrentUser = Depends(require_role("staff")),
) -> dict:
    return reassign_room(booking_id, new_room_id=body.room_id)


@router.post("/{booking_id}/extend")
def extend(
    body: ExtendStayRequest,
    booking_id: str = Path(..., description="Booking UUID"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    return extend_stay(booking_id, new_checkout=body.checkout)


@router.post("/{booking_id}/discounts")
def discounts(
    body: ApplyDiscountsRequest,
    booking_id: str = Path(..., description="Booking UUID"),
    user: CurrentUser | None = Depends(get_optional_user),
) -> dict:
    """Apply discount codes/ids; rejected candidates are listed, not raised."""
    return apply_discounts(
        booking_id,
        identifiers=body.codes,
        actor_user_id=user.id if user else None,
        actor_role=user.role if user else "user",
    )


@router.post("/{booking_id}/checkout")
def checkout(
    booking_id: str = Path(..., description="Booking UUID"),
    user: CurrentUser = Depends(get_current_user),
) -> dict:
    """Award loyalty points for a paid booking."""
    return award_points(booking_id, actor_user_id=user.id, actor_role=user.role)
