"""Cancel booking domain logic - transactional cancellation.

Orchestrates cancellation inside a single DB transaction:
lock booking -> validate state -> set canceled/canceled -> release interval.

release_booking() is the shared transition also used by deadline expiry
and failed gateway payments.
"""

from psycopg2.extensions import cursor as PgCursor

from hoteria.domain.errors import InvalidTransitionError, ValidationError
from hoteria.infra.db import txn
from hoteria.infra.repositories.bookings_repository import (
    lock_booking,
    set_cancel_reason,
    update_booking_status,
)
from hoteria.infra.repositories.rooms_repository import delete_interval
from hoteria.observability.logging import get_logger

logger = get_logger(__name__)


def _require_reason(reason: str | None) -> str:
    if reason is None or not reason.strip():
        raise ValidationError("A cancellation reason is required")
    return reason.strip()


def assert_pending(booking: dict, action: str) -> None:
    """Raise InvalidTransitionError unless the booking is still pending."""
    status = booking["status"]
    if status == "canceled":
        raise InvalidTransitionError(f"Booking {booking['id']} is already canceled")
    if status == "confirmed":
        raise InvalidTransitionError(
            f"Booking {booking['id']} is confirmed and cannot be {action}"
        )


def release_booking(cur: PgCursor, *, booking: dict, reason: str) -> int:
    """Move a locked pending booking to canceled/canceled and free its interval.

    Args:
        cur: Database cursor (within transaction, booking row locked).
        booking: The locked booking.
        reason: Stored cancel reason.

    Returns:
        Number of interval rows released.
    """
    update_booking_status(
        cur,
        booking_id=booking["id"],
        status="canceled",
        payment_status="canceled",
        cancel_reason=reason,
    )
    released = delete_interval(cur, booking_id=booking["id"])

    logger.info(
        "booking canceled",
        extra={
            "extra_fields": {
                "booking_id": booking["id"],
                "room_id": booking["room_id"],
                "reason": reason,
                "intervals_released": released,
            }
        },
    )
    return released


def cancel_booking(
    booking_id: str,
    *,
    reason: str,
    cur: PgCursor | None = None,
) -> dict:
    """Cancel a pending booking.

    Args:
        booking_id: Booking UUID.
        reason: Non-empty cancellation reason.
        cur: Optional cursor to run inside an outer transaction.

    Returns:
        {"status": "canceled", "booking_id": str, "room_id": str}

    Raises:
        ValidationError: If reason is empty.
        NotFoundError: If the booking does not exist.
        InvalidTransitionError: If the booking is canceled or confirmed.
    """
    reason = _require_reason(reason)

    def _do(c: PgCursor) -> dict:
        booking = lock_booking(c, booking_id=booking_id)
        assert_pending(booking, "canceled")
        release_booking(c, booking=booking, reason=reason)
        return {
            "status": "canceled",
            "booking_id": booking_id,
            "room_id": booking["room_id"],
        }

    if cur is not None:
        return _do(cur)
    with txn() as c:
        return _do(c)


def record_cancel_reason(booking_id: str, *, reason: str) -> dict:
    """Set or overwrite the reason on an already canceled booking.

    Raises:
        ValidationError: If reason is empty.
        NotFoundError: If the booking does not exist.
        InvalidTransitionError: If the booking is not canceled.
    """
    reason = _require_reason(reason)

    with txn() as cur:
        booking = lock_booking(cur, booking_id=booking_id)
        if booking["status"] != "canceled":
            raise InvalidTransitionError(
                f"Booking {booking_id} is not canceled; cancel it first"
            )
        set_cancel_reason(cur, booking_id=booking_id, reason=reason)

    return {"status": "updated", "booking_id": booking_id, "cancel_reason": reason}
