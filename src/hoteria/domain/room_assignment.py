"""Room reassignment - move a booking's interval to another room.

Both room rows are locked in ascending id order before the new room's
intervals are checked, so concurrent moves between the same rooms cannot
deadlock or double-book.
"""

from hoteria.domain.availability import StayInterval, assert_bookable
from hoteria.domain.errors import InvalidTransitionError, ValidationError
from hoteria.domain.room_conflict import translate_exclusion
from hoteria.infra.db import txn
from hoteria.infra.repositories.bookings_repository import lock_booking, set_room
from hoteria.infra.repositories.rooms_repository import (
    list_reserved_intervals,
    lock_rooms,
    move_interval,
)
from hoteria.observability.logging import get_logger

logger = get_logger(__name__)


def reassign_room(booking_id: str, *, new_room_id: str) -> dict:
    """Move a booking to another room of the same type for the same dates.

    Returns:
        {"status": "reassigned", "booking_id": str, "from_room_id": str, "to_room_id": str}

    Raises:
        NotFoundError: If the booking or a room does not exist.
        InvalidTransitionError: If the booking is canceled.
        ValidationError: If the new room is the current room or of another type.
        RoomUnavailableError: If the new room is not available.
        SlotConflictError: If the new room is reserved for these dates.
    """
    with txn() as cur:
        booking = lock_booking(cur, booking_id=booking_id)
        if booking["status"] == "canceled":
            raise InvalidTransitionError(f"Booking {booking_id} is canceled")

        old_room_id = booking["room_id"]
        if new_room_id == old_room_id:
            raise ValidationError(f"Booking {booking_id} is already in room {new_room_id}")

        rooms = lock_rooms(cur, room_ids=[old_room_id, new_room_id])
        new_room = rooms[new_room_id]

        if new_room["room_type"] != booking["room_type"]:
            raise ValidationError(
                f"Room {new_room_id} is of type {new_room['room_type']!r}, "
                f"booking requires {booking['room_type']!r}"
            )

        assert_bookable(
            room_id=new_room_id,
            availability_status=new_room["availability_status"],
            candidate=StayInterval(booking["checkin"], booking["checkout"]),
            reserved=list_reserved_intervals(cur, room_id=new_room_id),
            exclude_booking_id=booking_id,
        )

        with translate_exclusion(new_room_id):
            move_interval(cur, booking_id=booking_id, new_room_id=new_room_id)
        set_room(cur, booking_id=booking_id, room_id=new_room_id)

    logger.info(
        "booking reassigned",
        extra={
            "extra_fields": {
                "booking_id": booking_id,
                "from_room_id": old_room_id,
                "to_room_id": new_room_id,
            }
        },
    )

    return {
        "status": "reassigned",
        "booking_id": booking_id,
        "from_room_id": old_room_id,
        "to_room_id": new_room_id,
    }
