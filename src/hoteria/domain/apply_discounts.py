"""Apply discounts to a booking - resolution plus its side effects in one transaction.

Lock order: booking, then user (and the user's vouchers). The voucher-used
flag flip is a conditional update, so a concurrent redemption of the same
voucher fails here instead of being counted twice.

Only the booking's owner, or staff acting for the owner, resolves with
user facts. Anonymous callers get festival discounts only.
"""

from datetime import date, datetime

from psycopg2.extensions import cursor as PgCursor

from hoteria.domain.availability import validate_interval
from hoteria.domain.discounts import (
    VOUCHER_ALREADY_USED,
    UserFacts,
    VoucherDiscount,
    discount_from_record,
    resolve_discounts,
)
from hoteria.domain.errors import (
    DiscountsAlreadyAppliedError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
    VoucherAlreadyUsedError,
)
from hoteria.domain.loyalty import STAFF_ROLES, resolve_booking_user
from hoteria.domain.membership import tier_for_points
from hoteria.infra.db import txn
from hoteria.infra.repositories.bookings_repository import (
    lock_booking,
    set_applied_discounts,
)
from hoteria.infra.repositories.discounts_repository import (
    fetch_discounts,
    get_usage_counts,
    get_user_vouchers,
    increment_usage,
    lock_user_vouchers,
    mark_voucher_used,
)
from hoteria.infra.repositories.loyalty_repository import (
    get_completed_spending,
    get_user,
    lock_user,
)
from hoteria.infra.repositories.rooms_repository import get_room
from hoteria.infra.time import utc_now
from hoteria.observability.logging import get_logger

logger = get_logger(__name__)


def _clean_identifiers(identifiers: list[str]) -> list[str]:
    cleaned = [i.strip() for i in identifiers if i and i.strip()]
    if not cleaned:
        raise ValidationError("At least one discount code or id is required")
    return cleaned


def _user_facts(
    cur: PgCursor,
    *,
    user_id: str,
    discount_ids: list[str],
    lock: bool,
) -> UserFacts:
    user = lock_user(cur, user_id=user_id) if lock else get_user(cur, user_id=user_id)
    vouchers = (
        lock_user_vouchers(cur, user_id=user_id)
        if lock
        else get_user_vouchers(cur, user_id=user_id)
    )
    return UserFacts(
        user_id=user_id,
        tier=tier_for_points(user["points"]),
        completed_spending=get_completed_spending(cur, user_id=user_id),
        vouchers=vouchers,
        usage_counts=get_usage_counts(cur, user_id=user_id, discount_ids=discount_ids),
    )


def _facts_owner(
    cur: PgCursor,
    booking: dict,
    *,
    actor_user_id: str | None,
    actor_role: str,
) -> str | None:
    """User whose facts apply to the booking, or None for festival-only."""
    if actor_user_id is None:
        return None
    owner_id = resolve_booking_user(cur, booking)
    if actor_role in STAFF_ROLES:
        return owner_id
    if owner_id is None or owner_id != actor_user_id:
        raise ForbiddenError("Only the booking owner or staff can apply discounts")
    return owner_id


def apply_discounts(
    booking_id: str,
    *,
    identifiers: list[str],
    actor_user_id: str | None = None,
    actor_role: str = "user",
    now: datetime | None = None,
) -> dict:
    """Resolve discount codes/ids against a booking and store the outcome.

    Candidates are resolved in the order of identifiers. Rejected
    candidates have no side effects and are reported with their reason.

    Args:
        booking_id: Booking UUID.
        identifiers: Voucher codes or discount ids, in priority order.
        actor_user_id: Authenticated caller, None for an anonymous one.
        actor_role: Caller's role; staff and admin act for the owner.
        now: Evaluation instant (default: current UTC time).

    Returns:
        {
            "booking_id": str,
            "booking_amount": int,
            "total_discount": int,
            "net_amount": int,
            "applied": list[dict],
            "rejected": list[dict],
        }

    Raises:
        ValidationError: If no identifier is given.
        ForbiddenError: If a signed-in caller neither owns the booking nor is staff.
        NotFoundError: If the booking, user or every identifier is unknown.
        InvalidTransitionError: If the booking is canceled.
        DiscountsAlreadyAppliedError: If the booking already carries discounts.
        VoucherAlreadyUsedError: If nothing applied because a voucher was used.
    """
    identifiers = _clean_identifiers(identifiers)
    if now is None:
        now = utc_now()

    with txn() as cur:
        booking = lock_booking(cur, booking_id=booking_id)
        user_id = _facts_owner(
            cur, booking, actor_user_id=actor_user_id, actor_role=actor_role
        )
        if booking["status"] == "canceled":
            raise InvalidTransitionError(f"Booking {booking_id} is canceled")
        if booking["applied_vouchers"]:
            raise DiscountsAlreadyAppliedError(
                f"Booking {booking_id} already has discounts applied"
            )

        records = fetch_discounts(cur, identifiers=identifiers)
        if not records:
            raise NotFoundError("No matching discounts found")
        candidates = [discount_from_record(record) for record in records]

        facts = None
        if user_id is not None:
            facts = _user_facts(
                cur,
                user_id=user_id,
                discount_ids=[c.terms.id for c in candidates],
                lock=True,
            )

        nights = (booking["checkout"] - booking["checkin"]).days
        resolution = resolve_discounts(
            candidates,
            booking_amount=booking["booked_rate"] * nights,
            room_id=booking["room_id"],
            now=now,
            facts=facts,
        )

        if not resolution.applied and resolution.rejected_for(VOUCHER_ALREADY_USED):
            raise VoucherAlreadyUsedError("Voucher already used")

        by_id = {c.terms.id: c for c in candidates}
        for applied in resolution.applied:
            discount = by_id[applied.discount_id]
            if isinstance(discount, VoucherDiscount):
                if not mark_voucher_used(cur, user_id=user_id, code=discount.code):
                    raise VoucherAlreadyUsedError(f"Voucher {discount.code} already used")
            if user_id is not None:
                increment_usage(cur, discount_id=applied.discount_id, user_id=user_id)

        if resolution.applied:
            set_applied_discounts(
                cur,
                booking_id=booking_id,
                voucher_discount=resolution.total_discount,
                applied_vouchers=[a.to_dict() for a in resolution.applied],
            )

    logger.info(
        "discounts resolved",
        extra={
            "extra_fields": {
                "booking_id": booking_id,
                "applied": len(resolution.applied),
                "rejected": [r.reason for r in resolution.rejected],
                "total_discount": resolution.total_discount,
                "anonymous": user_id is None,
            }
        },
    )

    return {
        "booking_id": booking_id,
        "booking_amount": resolution.booking_amount,
        "total_discount": resolution.total_discount,
        "net_amount": resolution.net_amount,
        "applied": [a.to_dict() for a in resolution.applied],
        "rejected": [r.to_dict() for r in resolution.rejected],
    }


def quote_discounts(
    *,
    room_id: str,
    checkin: date,
    checkout: date,
    identifiers: list[str],
    user_id: str | None = None,
    now: datetime | None = None,
) -> dict:
    """Price a prospective stay with discount codes/ids, writing nothing.

    Same resolution as apply_discounts against the room's current rate.
    Nothing is marked used, so the outcome is advisory.

    Returns:
        {"room_id", "booking_amount", "total_discount", "net_amount",
         "applied", "rejected"}

    Raises:
        InvalidIntervalError: If checkin >= checkout.
        ValidationError: If no identifier is given.
        NotFoundError: If the room, user or every identifier is unknown.
    """
    identifiers = _clean_identifiers(identifiers)
    interval = validate_interval(checkin, checkout)
    if now is None:
        now = utc_now()

    with txn() as cur:
        room = get_room(cur, room_id=room_id)
        records = fetch_discounts(cur, identifiers=identifiers)
        if not records:
            raise NotFoundError("No matching discounts found")
        candidates = [discount_from_record(record) for record in records]

        facts = None
        if user_id is not None:
            facts = _user_facts(
                cur,
                user_id=user_id,
                discount_ids=[c.terms.id for c in candidates],
                lock=False,
            )

    resolution = resolve_discounts(
        candidates,
        booking_amount=room["rent_per_day"] * interval.nights,
        room_id=room_id,
        now=now,
        facts=facts,
    )

    return {
        "room_id": room_id,
        "booking_amount": resolution.booking_amount,
        "total_discount": resolution.total_discount,
        "net_amount": resolution.net_amount,
        "applied": [a.to_dict() for a in resolution.applied],
        "rejected": [r.to_dict() for r in resolution.rejected],
    }
