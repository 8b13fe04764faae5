"""Booking creation - transactional reservation of a room interval.

The booking insert and the interval append commit together or not at all.
The overlap check runs under the room row lock inside the same transaction,
and the exclusion constraint on room_reservations backs it up.
"""

from datetime import date, datetime, timedelta

from psycopg2.extensions import cursor as PgCursor

from hoteria.domain.availability import check_capacity, validate_interval
from hoteria.domain.errors import (
    RoomUnavailableError,
    SlotConflictError,
    ValidationError,
)
from hoteria.domain.room_conflict import (
    check_room_conflict,
    lock_and_assert_bookable,
    translate_exclusion,
)
from hoteria.infra.db import txn
from hoteria.infra.repositories.bookings_repository import insert_booking
from hoteria.infra.repositories.rooms_repository import get_room, insert_interval
from hoteria.infra.time import utc_now
from hoteria.observability.logging import get_logger
from hoteria.tasks.client import TasksClient

logger = get_logger(__name__)

PAYMENT_METHODS = ("cash", "credit_card", "bank_transfer", "mobile_payment", "vnpay")
BANK_TRANSFER = "bank_transfer"
PAYMENT_WINDOW = timedelta(minutes=5)

EXPIRE_TASK_PATH = "/tasks/bookings/expire"

# Module-level tasks client (singleton for dev)
_tasks_client = TasksClient()


def _get_tasks_client() -> TasksClient:
    """Get tasks client (allows override in tests)."""
    return _tasks_client


def schedule_deadline_expiry(
    booking_id: str,
    deadline: datetime,
    correlation_id: str | None = None,
) -> bool:
    """Enqueue the expiry check for a bank-transfer booking at its deadline.

    Idempotent by task id. Must be called after the transaction commits.
    """
    task_id = f"expire-booking:{booking_id}"
    return _get_tasks_client().enqueue_http(
        task_id=task_id,
        url_path=EXPIRE_TASK_PATH,
        payload={"booking_id": booking_id, "task_id": task_id},
        correlation_id=correlation_id,
        schedule_time=deadline,
    )


def _validate_party(adults: int, children: int) -> None:
    if adults < 1:
        raise ValidationError("At least one adult is required")
    if children < 0:
        raise ValidationError("children must not be negative")


def _check_room_type(room: dict, room_type: str | None) -> None:
    if room_type and room_type != room["room_type"]:
        raise ValidationError(
            f"Room {room['id']} is of type {room['room_type']!r}, not {room_type!r}"
        )


def validate_booking(
    *,
    room_id: str,
    checkin: date,
    checkout: date,
    adults: int,
    children: int = 0,
    room_type: str | None = None,
) -> dict:
    """Pre-validate a reservation request without writing anything.

    Runs the same checks as create_booking, without the room lock. The
    result is advisory: create_booking repeats the check authoritatively.

    Returns:
        {"valid": True, "room_id": str, "nights": int, "amount": int}

    Raises:
        InvalidIntervalError, ValidationError, NotFoundError,
        RoomUnavailableError, CapacityExceededError, SlotConflictError.
    """
    interval = validate_interval(checkin, checkout)
    _validate_party(adults, children)

    with txn() as cur:
        room = get_room(cur, room_id=room_id)
        _check_room_type(room, room_type)
        if room["availability_status"] != "available":
            raise RoomUnavailableError(room_id, room["availability_status"])
        check_capacity(room["max_count"], adults, children)
        conflicting = check_room_conflict(
            cur, room_id=room_id, check_in=checkin, check_out=checkout
        )
        if conflicting is not None:
            raise SlotConflictError(room_id, conflicting)

    return {
        "valid": True,
        "room_id": room_id,
        "nights": interval.nights,
        "amount": room["rent_per_day"] * interval.nights,
    }


def create_booking(
    *,
    room_id: str,
    guest_name: str,
    guest_email: str,
    checkin: date,
    checkout: date,
    adults: int,
    payment_method: str,
    children: int = 0,
    guest_phone: str | None = None,
    room_type: str | None = None,
    special_request: str | None = None,
    user_id: str | None = None,
    correlation_id: str | None = None,
    now: datetime | None = None,
    cur: PgCursor | None = None,
) -> dict:
    """Create a pending booking and hold its interval on the room.

    This function:
    1. Validates interval, party and payment method (no state change)
    2. Locks the room row
    3. Checks room status, room type, capacity and overlap under the lock
    4. Inserts the booking (pending/pending), deadline for bank transfer
    5. Appends the interval to the room
    6. After commit: schedules the deadline expiry task (bank transfer only)

    Args:
        room_id: Room to book.
        guest_name: Guest full name (PII, never logged).
        guest_email: Guest email (PII, never logged).
        checkin: Check-in date (inclusive).
        checkout: Check-out date (exclusive).
        adults: Number of adults.
        payment_method: One of PAYMENT_METHODS.
        children: Number of children.
        guest_phone: Optional guest phone (PII).
        room_type: Optional expected room type; must match the room.
        special_request: Optional free text.
        user_id: Optional owning user.
        correlation_id: Optional correlation ID for tracing.
        now: Creation instant (default: current UTC time).
        cur: Optional cursor to run inside an outer transaction.

    Returns:
        Dict with the booking summary:
        {
            "id": str,
            "room_id": str,
            "status": "pending",
            "payment_status": "pending",
            "payment_method": str,
            "payment_deadline": datetime | None,
            "checkin": date,
            "checkout": date,
            "nights": int,
            "amount": int,
        }

    Raises:
        InvalidIntervalError: If checkin >= checkout.
        ValidationError: Bad party size, payment method or room type.
        NotFoundError: If the room does not exist.
        RoomUnavailableError: If the room is not available.
        CapacityExceededError: If the party does not fit.
        SlotConflictError: If the interval overlaps another booking.
    """
    interval = validate_interval(checkin, checkout)
    _validate_party(adults, children)
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"Unknown payment method: {payment_method!r}")

    if now is None:
        now = utc_now()
    deadline = now + PAYMENT_WINDOW if payment_method == BANK_TRANSFER else None

    def _do(c: PgCursor) -> dict:
        room = lock_and_assert_bookable(
            c, room_id=room_id, check_in=checkin, check_out=checkout
        )
        _check_room_type(room, room_type)
        check_capacity(room["max_count"], adults, children)

        booking_id = insert_booking(
            c,
            room_id=room_id,
            user_id=user_id,
            guest_name=guest_name,
            guest_email=guest_email,
            guest_phone=guest_phone,
            checkin=checkin,
            checkout=checkout,
            adults=adults,
            children=children,
            room_type=room["room_type"],
            special_request=special_request,
            booked_rate=room["rent_per_day"],
            payment_method=payment_method,
            payment_deadline=deadline,
        )

        with translate_exclusion(room_id):
            insert_interval(
                c,
                room_id=room_id,
                booking_id=booking_id,
                checkin=checkin,
                checkout=checkout,
            )

        return {
            "id": booking_id,
            "room_id": room_id,
            "status": "pending",
            "payment_status": "pending",
            "payment_method": payment_method,
            "payment_deadline": deadline,
            "checkin": checkin,
            "checkout": checkout,
            "nights": interval.nights,
            "amount": room["rent_per_day"] * interval.nights,
        }

    if cur is not None:
        result = _do(cur)
    else:
        with txn() as c:
            result = _do(c)

    logger.info(
        "booking created",
        extra={
            "extra_fields": {
                "booking_id": result["id"],
                "room_id": room_id,
                "payment_method": payment_method,
                "nights": interval.nights,
            }
        },
    )

    if deadline is not None:
        schedule_deadline_expiry(result["id"], deadline, correlation_id)

    return result
