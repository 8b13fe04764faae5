"""Expire bookings domain logic - payment deadline enforcement by the worker.

Two entry points apply the same transition as check_payment_deadline:
- expire_booking(): the per-booking task scheduled at creation
- expire_overdue_bookings(): periodic sweep over every overdue booking, so
  an interval is released even if nobody ever asks about the booking
"""

from datetime import datetime

from hoteria.domain.cancellation import release_booking
from hoteria.domain.errors import NotFoundError
from hoteria.domain.payments import DEADLINE_EXPIRED_REASON, is_deadline_passed
from hoteria.infra.db import txn
from hoteria.infra.repositories.bookings_repository import (
    list_overdue_booking_ids,
    lock_booking,
)
from hoteria.infra.time import utc_now
from hoteria.observability.logging import get_logger

logger = get_logger(__name__)

# Source identifier for processed_events dedupe
TASK_SOURCE = "tasks.bookings.expire"

DEFAULT_SWEEP_LIMIT = 100


def expire_booking(
    *,
    booking_id: str,
    task_id: str,
    now: datetime | None = None,
) -> dict:
    """Expire one booking if its payment deadline has passed.

    This function:
    1. Locks the booking with FOR UPDATE
    2. Validates: booking exists, unpaid pending bank transfer, deadline passed
       - If any check fails, returns early WITHOUT dedupe (allows retry)
    3. Dedupes by task_id via processed_events
    4. Cancels the booking and releases its interval

    Returns:
        Dict with result status:
        - {"status": "noop"} - booking missing or not expirable
        - {"status": "not_expired_yet"} - deadline still ahead
        - {"status": "duplicate"} - task already processed
        - {"status": "expired", "booking_id": str}
    """
    if now is None:
        now = utc_now()

    with txn() as cur:
        try:
            booking = lock_booking(cur, booking_id=booking_id)
        except NotFoundError:
            return {"status": "noop"}

        if (
            booking["status"] != "pending"
            or booking["payment_status"] != "pending"
            or booking["payment_deadline"] is None
        ):
            return {"status": "noop"}

        if not is_deadline_passed(booking, now):
            return {"status": "not_expired_yet"}

        cur.execute(
            """
            INSERT INTO processed_events (source, external_id)
            VALUES (%s, %s)
            ON CONFLICT (source, external_id) DO NOTHING
            """,
            (TASK_SOURCE, task_id),
        )
        if cur.rowcount == 0:
            return {"status": "duplicate"}

        release_booking(cur, booking=booking, reason=DEADLINE_EXPIRED_REASON)

    return {"status": "expired", "booking_id": booking_id}


def expire_overdue_bookings(
    *,
    now: datetime | None = None,
    limit: int = DEFAULT_SWEEP_LIMIT,
) -> dict:
    """Cancel every overdue unpaid bank-transfer booking, up to limit.

    Rows locked by a concurrent transaction (a confirm in flight) are
    skipped and picked up by the next sweep.

    Returns:
        {"status": "ok", "expired": int, "booking_ids": list[str]}
    """
    if now is None:
        now = utc_now()

    expired_ids: list[str] = []
    with txn() as cur:
        for booking_id in list_overdue_booking_ids(cur, now=now, limit=limit):
            booking = lock_booking(cur, booking_id=booking_id)
            if not is_deadline_passed(booking, now):
                continue
            release_booking(cur, booking=booking, reason=DEADLINE_EXPIRED_REASON)
            expired_ids.append(booking_id)

    if expired_ids:
        logger.info(
            "overdue bookings expired",
            extra={"extra_fields": {"count": len(expired_ids)}},
        )

    return {"status": "ok", "expired": len(expired_ids), "booking_ids": expired_ids}
