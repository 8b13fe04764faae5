"""Payment lifecycle - booking state machine and gateway reconciliation.

States: pending (initial), confirmed, canceled (both terminal).

    pending -> confirmed   explicit confirm or successful gateway callback
    pending -> canceled    explicit cancel, failed gateway callback, or the
                           bank-transfer deadline passing while unpaid

Every transition runs under the booking row lock and commits together with
its side effects (interval release, loyalty accrual).
"""

from datetime import datetime

from psycopg2.extensions import cursor as PgCursor

from hoteria.domain.bookings import (
    BANK_TRANSFER,
    PAYMENT_METHODS,
    PAYMENT_WINDOW,
    schedule_deadline_expiry,
)
from hoteria.domain.cancellation import assert_pending, release_booking
from hoteria.domain.errors import InvalidTransitionError, NotFoundError, ValidationError
from hoteria.domain.loyalty import accrue
from hoteria.infra.db import txn
from hoteria.infra.repositories.bookings_repository import (
    find_booking_by_gateway_order,
    lock_booking,
    set_gateway_order,
    set_gateway_transaction,
    set_payment_method,
    update_booking_status,
)
from hoteria.infra.time import seconds_until, utc_now
from hoteria.observability.logging import get_logger

logger = get_logger(__name__)

DEADLINE_EXPIRED_REASON = "payment_deadline_expired"
PAYMENT_FAILED_REASON = "payment_failed"

# Source prefix for processed_events dedupe
GATEWAY_SOURCE = "gateway"


def is_deadline_passed(booking: dict, now: datetime) -> bool:
    """Unpaid pending bank-transfer booking whose deadline is at or before now."""
    return (
        booking["payment_method"] == BANK_TRANSFER
        and booking["payment_deadline"] is not None
        and booking["status"] == "pending"
        and booking["payment_status"] == "pending"
        and now >= booking["payment_deadline"]
    )


def mark_paid(cur: PgCursor, *, booking: dict) -> dict:
    """Transition a locked pending booking to confirmed/paid and accrue points.

    Returns:
        The accrual result.
    """
    update_booking_status(
        cur,
        booking_id=booking["id"],
        status="confirmed",
        payment_status="paid",
    )
    booking = {**booking, "status": "confirmed", "payment_status": "paid"}
    return accrue(cur, booking=booking)


def confirm_booking(booking_id: str) -> dict:
    """Explicitly confirm a pending booking as paid.

    Confirmation is accepted even after a bank-transfer deadline has passed
    as long as the booking was not expired yet.

    Returns:
        {"status": "confirmed", "booking_id": str, "loyalty": dict}

    Raises:
        NotFoundError: If the booking does not exist.
        InvalidTransitionError: If the booking is confirmed or canceled.
    """
    with txn() as cur:
        booking = lock_booking(cur, booking_id=booking_id)
        assert_pending(booking, "confirmed again")
        loyalty = mark_paid(cur, booking=booking)

    logger.info(
        "booking confirmed",
        extra={"extra_fields": {"booking_id": booking_id, "loyalty": loyalty["status"]}},
    )
    return {"status": "confirmed", "booking_id": booking_id, "loyalty": loyalty}


def check_payment_deadline(booking_id: str, *, now: datetime | None = None) -> dict:
    """Report the payment window of a bank-transfer booking, expiring it if due.

    A pending booking past its deadline is canceled and its interval released
    in this call. expired is true only for a booking canceled by its
    deadline, here or earlier by the expiry task; a booking the guest
    canceled stays expired=false.

    Returns:
        {
            "booking_id": str,
            "status": str,
            "payment_status": str,
            "payment_deadline": datetime,
            "expired": bool,
            "time_remaining": int,  # seconds, 0 once expired or settled
        }

    Raises:
        NotFoundError: If the booking does not exist.
        ValidationError: If the booking is not a bank transfer with a deadline.
    """
    if now is None:
        now = utc_now()

    with txn() as cur:
        booking = lock_booking(cur, booking_id=booking_id)
        if booking["payment_method"] != BANK_TRANSFER or booking["payment_deadline"] is None:
            raise ValidationError(f"Booking {booking_id} has no payment deadline")

        deadline = booking["payment_deadline"]
        status = booking["status"]
        payment_status = booking["payment_status"]
        expired = status == "canceled" and booking["cancel_reason"] == DEADLINE_EXPIRED_REASON

        if is_deadline_passed(booking, now):
            release_booking(cur, booking=booking, reason=DEADLINE_EXPIRED_REASON)
            status = payment_status = "canceled"
            expired = True

    pending = status == "pending"
    return {
        "booking_id": booking_id,
        "status": status,
        "payment_status": payment_status,
        "payment_deadline": deadline,
        "expired": expired,
        "time_remaining": seconds_until(deadline, now) if pending else 0,
    }


def update_payment_method(
    booking_id: str,
    *,
    payment_method: str,
    correlation_id: str | None = None,
    now: datetime | None = None,
) -> dict:
    """Change the payment method of a pending booking.

    Switching to bank transfer opens a new payment window; switching away
    clears the deadline.

    Raises:
        ValidationError: If the method is unknown.
        NotFoundError: If the booking does not exist.
        InvalidTransitionError: If the booking is not pending.
    """
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"Unknown payment method: {payment_method!r}")
    if now is None:
        now = utc_now()

    scheduled = None
    with txn() as cur:
        booking = lock_booking(cur, booking_id=booking_id)
        assert_pending(booking, "modified")

        if payment_method == BANK_TRANSFER:
            deadline = booking["payment_deadline"]
            if deadline is None:
                deadline = scheduled = now + PAYMENT_WINDOW
        else:
            deadline = None

        set_payment_method(
            cur,
            booking_id=booking_id,
            payment_method=payment_method,
            payment_deadline=deadline,
        )

    if scheduled is not None:
        schedule_deadline_expiry(booking_id, scheduled, correlation_id)

    return {
        "status": "updated",
        "booking_id": booking_id,
        "payment_method": payment_method,
        "payment_deadline": deadline,
    }


def attach_gateway_order(booking_id: str, *, gateway: str, order_id: str) -> dict:
    """Record the order reference a payment gateway issued for a booking.

    Raises:
        NotFoundError: If the booking does not exist.
        InvalidTransitionError: If the booking is not pending/pending.
    """
    with txn() as cur:
        booking = lock_booking(cur, booking_id=booking_id)
        assert_pending(booking, "paid again")
        if booking["payment_status"] != "pending":
            raise InvalidTransitionError(f"Booking {booking_id} is not awaiting payment")
        set_gateway_order(cur, booking_id=booking_id, gateway=gateway, gateway_order_id=order_id)

    return {"status": "attached", "booking_id": booking_id, "gateway": gateway, "order_id": order_id}


def record_gateway_result(
    *,
    gateway: str,
    order_id: str,
    transaction_id: str,
    success: bool,
) -> dict:
    """Apply a gateway payment notification to its booking.

    This function:
    1. Resolves the booking by (gateway, order_id) and locks it
    2. Dedupes the notification via processed_events
       - a duplicate still makes sure a paid booking has earned its points
    3. success on pending  -> confirmed/paid + accrual
       failure on pending  -> canceled with reason payment_failed
       success on canceled -> reported, no transition

    Returns:
        Dict with result status:
        - {"status": "duplicate", ...}
        - {"status": "confirmed", ...}
        - {"status": "canceled", ...}
        - {"status": "booking_canceled", ...}
        - {"status": "noop", ...} - booking already settled

    Raises:
        NotFoundError: If no booking carries this order reference.
    """
    with txn() as cur:
        booking_id = find_booking_by_gateway_order(
            cur, gateway=gateway, gateway_order_id=order_id
        )
        if booking_id is None:
            raise NotFoundError(f"No booking for {gateway} order {order_id}")

        booking = lock_booking(cur, booking_id=booking_id)
        result = {"booking_id": booking_id, "gateway": gateway}

        cur.execute(
            """
            INSERT INTO processed_events (source, external_id)
            VALUES (%s, %s)
            ON CONFLICT (source, external_id) DO NOTHING
            """,
            (f"{GATEWAY_SOURCE}.{gateway}", f"{order_id}:{transaction_id}"),
        )
        if cur.rowcount == 0:
            if booking["payment_status"] == "paid":
                result["loyalty"] = accrue(cur, booking=booking)
            return {**result, "status": "duplicate"}

        status = booking["status"]

        if status == "canceled":
            if success:
                logger.warning(
                    "payment succeeded for canceled booking",
                    extra={
                        "extra_fields": {
                            "booking_id": booking_id,
                            "gateway": gateway,
                            "order_id": order_id,
                            "transaction_id": transaction_id,
                        }
                    },
                )
                set_gateway_transaction(
                    cur, booking_id=booking_id, gateway_transaction_id=transaction_id
                )
                return {**result, "status": "booking_canceled"}
            return {**result, "status": "noop"}

        if status == "confirmed":
            if booking["payment_status"] == "paid":
                result["loyalty"] = accrue(cur, booking=booking)
            return {**result, "status": "noop"}

        set_gateway_transaction(cur, booking_id=booking_id, gateway_transaction_id=transaction_id)

        if success:
            result["loyalty"] = mark_paid(cur, booking=booking)
            result["status"] = "confirmed"
        else:
            release_booking(cur, booking=booking, reason=PAYMENT_FAILED_REASON)
            result["status"] = "canceled"

    logger.info(
        "gateway result applied",
        extra={
            "extra_fields": {
                "booking_id": booking_id,
                "gateway": gateway,
                "success": success,
                "status": result["status"],
            }
        },
    )
    return result
