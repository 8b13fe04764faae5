"""Room conflict detection inside a transaction.

Authoritative counterpart of the pure checks in availability: the room row
is locked with FOR UPDATE before the room's reserved intervals are read, so
two transactions writing intervals on the same room are serialised.

The gist exclusion constraint on room_reservations is the second layer;
a violation raised by the driver is translated by translate_exclusion().
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date
from typing import Iterator

import psycopg2.errors
from psycopg2.extensions import cursor as PgCursor

from hoteria.domain.availability import (
    StayInterval,
    assert_bookable,
    find_conflict,
)
from hoteria.domain.errors import SlotConflictError
from hoteria.infra.repositories.rooms_repository import (
    list_reserved_intervals,
    lock_room,
)

logger = logging.getLogger(__name__)


def check_room_conflict(
    cur: PgCursor,
    *,
    room_id: str,
    check_in: date,
    check_out: date,
    exclude_booking_id: str | None = None,
) -> str | None:
    """Check if a room has a reserved interval overlapping [check_in, check_out).

    Args:
        cur: Database cursor (should be within a transaction).
        room_id: Room identifier.
        check_in: Desired check-in date (inclusive).
        check_out: Desired check-out date (exclusive).
        exclude_booking_id: Booking whose own interval is ignored (date edits).

    Returns:
        The booking id holding the first conflicting interval, or None.
    """
    candidate = StayInterval(check_in, check_out)
    conflict = find_conflict(
        candidate,
        list_reserved_intervals(cur, room_id=room_id),
        exclude_booking_id=exclude_booking_id,
    )
    if conflict is None:
        return None

    logger.warning(
        "room conflict detected",
        extra={
            "extra_fields": {
                "room_id": room_id,
                "requested_checkin": check_in.isoformat(),
                "requested_checkout": check_out.isoformat(),
                "conflicting_booking_id": conflict.booking_id,
                "existing_checkin": conflict.checkin.isoformat(),
                "existing_checkout": conflict.checkout.isoformat(),
            },
        },
    )
    return conflict.booking_id


def lock_and_assert_bookable(
    cur: PgCursor,
    *,
    room_id: str,
    check_in: date,
    check_out: date,
    exclude_booking_id: str | None = None,
    check_status: bool = True,
) -> dict:
    """Lock the room row and verify the interval can be held on it.

    Args:
        cur: Database cursor (within transaction).
        room_id: Room identifier.
        check_in: Desired check-in date.
        check_out: Desired check-out date.
        exclude_booking_id: Booking whose own interval is ignored.
        check_status: If False, the manual availability override is not
            consulted (stay extensions keep the room already held).

    Returns:
        The locked room as a dict.

    Raises:
        NotFoundError: If the room does not exist.
        RoomUnavailableError: If the room is not available.
        SlotConflictError: If another interval overlaps.
    """
    room = lock_room(cur, room_id=room_id)
    assert_bookable(
        room_id=room_id,
        availability_status=room["availability_status"] if check_status else "available",
        candidate=StayInterval(check_in, check_out),
        reserved=list_reserved_intervals(cur, room_id=room_id),
        exclude_booking_id=exclude_booking_id,
    )
    return room


@contextmanager
def translate_exclusion(room_id: str) -> Iterator[None]:
    """Map the room_reservations exclusion constraint to SlotConflictError."""
    try:
        yield
    except psycopg2.errors.ExclusionViolation as exc:
        logger.warning(
            "room reservation exclusion violated",
            extra={"extra_fields": {"room_id": room_id}},
        )
        raise SlotConflictError(room_id) from exc
