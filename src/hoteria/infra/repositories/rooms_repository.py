"""Rooms repository - rooms and their reserved intervals.

Uses raw SQL with psycopg2 (no ORM).
One room_reservations row per live booking; the row is removed when the
booking is canceled so the interval set only holds live stays.
"""

from datetime import date

from psycopg2.extensions import cursor as PgCursor

from hoteria.domain.availability import ReservedInterval
from hoteria.domain.errors import NotFoundError
from hoteria.infra.db import fetchone, for_update

_ROOM_COLUMNS = (
    "id",
    "hotel_id",
    "name",
    "room_type",
    "max_count",
    "rent_per_day",
    "availability_status",
)

_ROOM_SELECT = f"SELECT {', '.join(_ROOM_COLUMNS)} FROM rooms WHERE id = %s"


def _room_from_row(row: tuple) -> dict:
    room = dict(zip(_ROOM_COLUMNS, row))
    room["id"] = str(room["id"])
    room["hotel_id"] = str(room["hotel_id"]) if room["hotel_id"] else None
    return room


def get_room(cur: PgCursor, *, room_id: str) -> dict:
    """Fetch a room without locking.

    Raises:
        NotFoundError: If the room does not exist.
    """
    row = fetchone(cur, _ROOM_SELECT, (room_id,))
    if row is None:
        raise NotFoundError(f"Room {room_id} not found")
    return _room_from_row(row)


def lock_room(cur: PgCursor, *, room_id: str) -> dict:
    """Fetch a room with FOR UPDATE, serialising interval writes on it.

    Raises:
        NotFoundError: If the room does not exist.
    """
    row = for_update(cur, _ROOM_SELECT, (room_id,))
    if row is None:
        raise NotFoundError(f"Room {room_id} not found")
    return _room_from_row(row)


def lock_rooms(cur: PgCursor, *, room_ids: list[str]) -> dict[str, dict]:
    """Lock several rooms in ascending id order.

    A fixed order keeps two concurrent reassignments between the same pair
    of rooms from deadlocking.

    Returns:
        Dict of room_id -> room.
    """
    return {room_id: lock_room(cur, room_id=room_id) for room_id in sorted(set(room_ids))}


def list_reserved_intervals(cur: PgCursor, *, room_id: str) -> list[ReservedInterval]:
    """List the live intervals held on a room, ordered by checkin."""
    cur.execute(
        """
        SELECT booking_id, checkin, checkout
        FROM room_reservations
        WHERE room_id = %s
        ORDER BY checkin
        """,
        (room_id,),
    )
    return [
        ReservedInterval(booking_id=str(booking_id), checkin=checkin, checkout=checkout)
        for booking_id, checkin, checkout in cur.fetchall()
    ]


def insert_interval(
    cur: PgCursor,
    *,
    room_id: str,
    booking_id: str,
    checkin: date,
    checkout: date,
) -> None:
    """Append an interval to the room."""
    cur.execute(
        """
        INSERT INTO room_reservations (room_id, booking_id, checkin, checkout)
        VALUES (%s, %s, %s, %s)
        """,
        (room_id, booking_id, checkin, checkout),
    )


def delete_interval(cur: PgCursor, *, booking_id: str) -> int:
    """Remove the booking's interval. Returns the number of rows removed."""
    cur.execute(
        "DELETE FROM room_reservations WHERE booking_id = %s",
        (booking_id,),
    )
    return cur.rowcount


def move_interval(cur: PgCursor, *, booking_id: str, new_room_id: str) -> int:
    """Move the booking's interval to another room."""
    cur.execute(
        """
        UPDATE room_reservations
        SET room_id = %s
        WHERE booking_id = %s
        """,
        (new_room_id, booking_id),
    )
    return cur.rowcount


def update_interval_checkout(cur: PgCursor, *, booking_id: str, checkout: date) -> int:
    """Change the end of the booking's interval."""
    cur.execute(
        """
        UPDATE room_reservations
        SET checkout = %s
        WHERE booking_id = %s
        """,
        (checkout, booking_id),
    )
    return cur.rowcount
