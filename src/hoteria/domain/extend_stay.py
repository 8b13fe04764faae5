"""Stay extension - push a booking's checkout later on the same room."""

from datetime import date

from hoteria.domain.errors import InvalidTransitionError, ValidationError
from hoteria.domain.room_conflict import lock_and_assert_bookable, translate_exclusion
from hoteria.infra.db import txn
from hoteria.infra.repositories.bookings_repository import lock_booking, set_checkout
from hoteria.infra.repositories.rooms_repository import update_interval_checkout
from hoteria.observability.logging import get_logger

logger = get_logger(__name__)


def extend_stay(booking_id: str, *, new_checkout: date) -> dict:
    """Extend a booking to new_checkout.

    The extended range [checkin, new_checkout) is checked against the
    room's other intervals; the booking's own interval is ignored. The
    room's manual availability status is not consulted since the room is
    already held by this booking.

    Returns:
        {"status": "extended", "booking_id": str, "checkout": date, "nights": int}

    Raises:
        NotFoundError: If the booking does not exist.
        InvalidTransitionError: If the booking is canceled.
        ValidationError: If new_checkout is not after the current checkout.
        SlotConflictError: If another booking holds part of the extension.
    """
    with txn() as cur:
        booking = lock_booking(cur, booking_id=booking_id)
        if booking["status"] == "canceled":
            raise InvalidTransitionError(f"Booking {booking_id} is canceled")

        if new_checkout <= booking["checkout"]:
            raise ValidationError(
                f"New checkout {new_checkout.isoformat()} must be after "
                f"current checkout {booking['checkout'].isoformat()}"
            )

        room_id = booking["room_id"]
        lock_and_assert_bookable(
            cur,
            room_id=room_id,
            check_in=booking["checkin"],
            check_out=new_checkout,
            exclude_booking_id=booking_id,
            check_status=False,
        )

        with translate_exclusion(room_id):
            update_interval_checkout(cur, booking_id=booking_id, checkout=new_checkout)
        set_checkout(cur, booking_id=booking_id, checkout=new_checkout)

    nights = (new_checkout - booking["checkin"]).days
    logger.info(
        "stay extended",
        extra={
            "extra_fields": {
                "booking_id": booking_id,
                "room_id": room_id,
                "previous_checkout": booking["checkout"].isoformat(),
                "checkout": new_checkout.isoformat(),
            }
        },
    )

    return {
        "status": "extended",
        "booking_id": booking_id,
        "checkout": new_checkout,
        "nights": nights,
    }
