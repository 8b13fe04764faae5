"""Bookings repository - persistence for booking records.

Uses raw SQL with psycopg2 (no ORM). Bookings are never deleted; cancel
is a status change.
"""

import json
from datetime import date, datetime

from psycopg2.extensions import cursor as PgCursor

from hoteria.domain.errors import NotFoundError
from hoteria.infra.db import fetchall, fetchone, for_update

BOOKING_COLUMNS = (
    "id",
    "room_id",
    "user_id",
    "guest_name",
    "guest_email",
    "guest_phone",
    "checkin",
    "checkout",
    "adults",
    "children",
    "room_type",
    "special_request",
    "booked_rate",
    "status",
    "payment_status",
    "payment_method",
    "payment_deadline",
    "voucher_discount",
    "applied_vouchers",
    "cancel_reason",
    "gateway",
    "gateway_order_id",
    "gateway_transaction_id",
)

_BOOKING_SELECT = f"SELECT {', '.join(BOOKING_COLUMNS)} FROM bookings"


def booking_from_row(row: tuple) -> dict:
    """Map a bookings row (BOOKING_COLUMNS order) to a dict."""
    booking = dict(zip(BOOKING_COLUMNS, row))
    booking["id"] = str(booking["id"])
    booking["room_id"] = str(booking["room_id"])
    if booking["user_id"] is not None:
        booking["user_id"] = str(booking["user_id"])
    booking["voucher_discount"] = booking["voucher_discount"] or 0
    booking["applied_vouchers"] = booking["applied_vouchers"] or []
    return booking


def get_booking(cur: PgCursor, *, booking_id: str) -> dict:
    """Fetch a booking without locking.

    Raises:
        NotFoundError: If the booking does not exist.
    """
    row = fetchone(cur, f"{_BOOKING_SELECT} WHERE id = %s", (booking_id,))
    if row is None:
        raise NotFoundError(f"Booking {booking_id} not found")
    return booking_from_row(row)


def lock_booking(cur: PgCursor, *, booking_id: str) -> dict:
    """Fetch a booking with FOR UPDATE.

    Raises:
        NotFoundError: If the booking does not exist.
    """
    row = for_update(cur, f"{_BOOKING_SELECT} WHERE id = %s", (booking_id,))
    if row is None:
        raise NotFoundError(f"Booking {booking_id} not found")
    return booking_from_row(row)


def find_booking_by_gateway_order(
    cur: PgCursor,
    *,
    gateway: str,
    gateway_order_id: str,
) -> str | None:
    """Resolve a gateway order reference to a booking id."""
    row = fetchone(
        cur,
        """
        SELECT id FROM bookings
        WHERE gateway = %s AND gateway_order_id = %s
        """,
        (gateway, gateway_order_id),
    )
    return str(row[0]) if row else None


def insert_booking(
    cur: PgCursor,
    *,
    room_id: str,
    user_id: str | None,
    guest_name: str,
    guest_email: str,
    guest_phone: str | None,
    checkin: date,
    checkout: date,
    adults: int,
    children: int,
    room_type: str,
    special_request: str | None,
    booked_rate: int,
    payment_method: str,
    payment_deadline: datetime | None,
) -> str:
    """Insert a booking in pending/pending state.

    booked_rate is the room rate at booking time; amounts are derived from
    it even if the booking later moves to a room priced differently.

    Returns:
        The new booking id.
    """
    cur.execute(
        """
        INSERT INTO bookings (
            room_id, user_id, guest_name, guest_email, guest_phone,
            checkin, checkout, adults, children, room_type,
            special_request, booked_rate, status, payment_status,
            payment_method, payment_deadline
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s,
                'pending', 'pending', %s, %s)
        RETURNING id
        """,
        (
            room_id,
            user_id,
            guest_name,
            guest_email,
            guest_phone,
            checkin,
            checkout,
            adults,
            children,
            room_type,
            special_request,
            booked_rate,
            payment_method,
            payment_deadline,
        ),
    )
    return str(cur.fetchone()[0])


def update_booking_status(
    cur: PgCursor,
    *,
    booking_id: str,
    status: str,
    payment_status: str,
    cancel_reason: str | None = None,
) -> None:
    """Set status and payment_status; cancel_reason only when given."""
    cur.execute(
        """
        UPDATE bookings
        SET status = %s,
            payment_status = %s,
            cancel_reason = COALESCE(%s, cancel_reason),
            updated_at = now()
        WHERE id = %s
        """,
        (status, payment_status, cancel_reason, booking_id),
    )


def set_cancel_reason(cur: PgCursor, *, booking_id: str, reason: str) -> None:
    cur.execute(
        "UPDATE bookings SET cancel_reason = %s, updated_at = now() WHERE id = %s",
        (reason, booking_id),
    )


def set_room(cur: PgCursor, *, booking_id: str, room_id: str) -> None:
    cur.execute(
        "UPDATE bookings SET room_id = %s, updated_at = now() WHERE id = %s",
        (room_id, booking_id),
    )


def set_checkout(cur: PgCursor, *, booking_id: str, checkout: date) -> None:
    cur.execute(
        "UPDATE bookings SET checkout = %s, updated_at = now() WHERE id = %s",
        (checkout, booking_id),
    )


def set_payment_method(
    cur: PgCursor,
    *,
    booking_id: str,
    payment_method: str,
    payment_deadline: datetime | None,
) -> None:
    cur.execute(
        """
        UPDATE bookings
        SET payment_method = %s, payment_deadline = %s, updated_at = now()
        WHERE id = %s
        """,
        (payment_method, payment_deadline, booking_id),
    )


def set_applied_discounts(
    cur: PgCursor,
    *,
    booking_id: str,
    voucher_discount: int,
    applied_vouchers: list[dict],
) -> None:
    """Store the discount total and the applied list on the booking."""
    cur.execute(
        """
        UPDATE bookings
        SET voucher_discount = %s, applied_vouchers = %s::jsonb, updated_at = now()
        WHERE id = %s
        """,
        (voucher_discount, json.dumps(applied_vouchers), booking_id),
    )


def set_gateway_order(
    cur: PgCursor,
    *,
    booking_id: str,
    gateway: str,
    gateway_order_id: str,
) -> None:
    cur.execute(
        """
        UPDATE bookings
        SET gateway = %s, gateway_order_id = %s, updated_at = now()
        WHERE id = %s
        """,
        (gateway, gateway_order_id, booking_id),
    )


def set_gateway_transaction(
    cur: PgCursor,
    *,
    booking_id: str,
    gateway_transaction_id: str,
) -> None:
    cur.execute(
        """
        UPDATE bookings
        SET gateway_transaction_id = %s, updated_at = now()
        WHERE id = %s
        """,
        (gateway_transaction_id, booking_id),
    )


def list_overdue_booking_ids(
    cur: PgCursor,
    *,
    now: datetime,
    limit: int,
) -> list[str]:
    """Lock overdue pending bank-transfer bookings, skipping rows already locked.

    Returns:
        Booking ids (locked until the transaction ends).
    """
    rows = fetchall(
        cur,
        """
        SELECT id FROM bookings
        WHERE payment_method = 'bank_transfer'
          AND status = 'pending'
          AND payment_status = 'pending'
          AND payment_deadline IS NOT NULL
          AND payment_deadline <= %s
        ORDER BY payment_deadline
        LIMIT %s
        FOR UPDATE SKIP LOCKED
        """,
        (now, limit),
    )
    return [str(row[0]) for row in rows]
