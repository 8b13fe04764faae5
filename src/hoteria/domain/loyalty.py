"""Loyalty ledger - points accrual and reward redemption.

Accrual happens at most once per booking. The booking row lock, the user
row lock and the partial unique index on earn entries each guard it; the
index alone is enough across processes, the locks keep the balance update
and the ledger entry consistent.

Lock order is always booking, then user.
"""

from psycopg2.extensions import cursor as PgCursor

from hoteria.domain.errors import (
    DuplicateEarnError,
    DuplicateRedemptionError,
    ForbiddenError,
    InsufficientPointsError,
    InvalidTransitionError,
    NotFoundError,
    RewardNotEligibleError,
)
from hoteria.domain.membership import next_tier, normalize_tier, tier_for_points
from hoteria.infra.db import txn
from hoteria.infra.repositories.bookings_repository import lock_booking
from hoteria.infra.repositories.discounts_repository import (
    find_voucher_by_code,
    insert_user_voucher,
    list_unused_vouchers,
)
from hoteria.infra.repositories.loyalty_repository import (
    add_points,
    debit_points,
    find_user_id_by_email,
    get_reward,
    get_user,
    has_earn,
    insert_earn,
    insert_redemption,
    list_rewards,
    list_transactions,
    lock_user,
)
from hoteria.observability.logging import get_logger

logger = get_logger(__name__)

STAFF_ROLES = ("staff", "admin")

# 1 point per 100 currency units paid
POINTS_DIVISOR = 100


def points_for_amount(amount: int) -> int:
    """floor(amount * 0.01), never negative."""
    return max(0, amount) // POINTS_DIVISOR


def booking_amount_paid(booking: dict) -> int:
    """Booked rate x nights minus the stored discount, floored at zero."""
    nights = (booking["checkout"] - booking["checkin"]).days
    return max(0, booking["booked_rate"] * nights - booking["voucher_discount"])


def resolve_booking_user(cur: PgCursor, booking: dict) -> str | None:
    """The booking's user, or the user registered with the guest email."""
    if booking["user_id"]:
        return booking["user_id"]
    if booking.get("guest_email"):
        return find_user_id_by_email(cur, email=booking["guest_email"])
    return None


def accrue(cur: PgCursor, *, booking: dict) -> dict:
    """Award points for a paid booking, exactly once.

    Runs inside the caller's transaction with the booking row locked.

    Returns:
        - {"status": "no_user"} - booking has no resolvable user
        - {"status": "duplicate"} - booking already earned
        - {"status": "accrued", "user_id": str, "points": int, "amount": int}
    """
    user_id = resolve_booking_user(cur, booking)
    if user_id is None:
        return {"status": "no_user"}

    lock_user(cur, user_id=user_id)
    amount = booking_amount_paid(booking)
    points = points_for_amount(amount)

    if not insert_earn(
        cur,
        user_id=user_id,
        booking_id=booking["id"],
        amount=amount,
        points=points,
    ):
        return {"status": "duplicate"}

    if points > 0:
        add_points(cur, user_id=user_id, points=points)

    logger.info(
        "loyalty points accrued",
        extra={
            "extra_fields": {
                "booking_id": booking["id"],
                "user_id": user_id,
                "points": points,
            }
        },
    )
    return {"status": "accrued", "user_id": user_id, "points": points, "amount": amount}


def award_points(booking_id: str, *, actor_user_id: str | None, actor_role: str) -> dict:
    """Explicit accrual for a paid booking (checkout).

    Raises:
        NotFoundError: If the booking or its user does not exist.
        InvalidTransitionError: If the booking is not confirmed and paid.
        ForbiddenError: If the actor neither owns the booking nor is staff.
        DuplicateEarnError: If points were already awarded.
    """
    with txn() as cur:
        booking = lock_booking(cur, booking_id=booking_id)
        if booking["status"] != "confirmed" or booking["payment_status"] != "paid":
            raise InvalidTransitionError(
                f"Booking {booking_id} must be confirmed and paid to earn points"
            )

        owner_id = resolve_booking_user(cur, booking)
        if actor_role not in STAFF_ROLES and (owner_id is None or owner_id != actor_user_id):
            raise ForbiddenError("Only the booking owner or staff can award points")
        if owner_id is None:
            raise NotFoundError(f"Booking {booking_id} has no registered user")

        if has_earn(cur, booking_id=booking_id):
            raise DuplicateEarnError(f"Points already awarded for booking {booking_id}")

        result = accrue(cur, booking=booking)
        if result["status"] == "duplicate":
            raise DuplicateEarnError(f"Points already awarded for booking {booking_id}")

    return result


def redeem_reward(user_id: str, *, reward_id: str) -> dict:
    """Exchange points for a reward's personal voucher.

    Returns:
        {"status": "redeemed", "reward_id": str, "voucher_code": str,
         "points_spent": int, "points": int, "expiry_date": datetime}

    Raises:
        NotFoundError: If the user, reward or the reward's voucher is missing.
        RewardNotEligibleError: If the user's tier differs from the reward's.
        InsufficientPointsError: If the balance is too low.
        DuplicateRedemptionError: If the user already holds this voucher.
    """
    with txn() as cur:
        user = lock_user(cur, user_id=user_id)
        reward = get_reward(cur, reward_id=reward_id)

        tier = tier_for_points(user["points"])
        if tier != normalize_tier(reward["membership_level"]):
            raise RewardNotEligibleError(
                f"Reward {reward_id} requires {reward['membership_level']} membership"
            )

        required = reward["points_required"]
        if user["points"] < required:
            raise InsufficientPointsError(
                f"Reward {reward_id} requires {required} points, user has {user['points']}"
            )

        discount = find_voucher_by_code(cur, code=reward["voucher_code"])
        if discount is None:
            raise NotFoundError(f"Voucher {reward['voucher_code']} not found")

        if not insert_user_voucher(
            cur,
            user_id=user_id,
            reward_id=reward_id,
            code=reward["voucher_code"],
            expiry_date=discount["end_date"],
        ):
            raise DuplicateRedemptionError(f"Reward {reward_id} already redeemed")

        if not debit_points(cur, user_id=user_id, points=required):
            raise InsufficientPointsError(f"Reward {reward_id} requires {required} points")

        insert_redemption(
            cur,
            user_id=user_id,
            reward_id=reward_id,
            points=required,
            description=f"Redeemed reward {reward['name']}",
        )

    logger.info(
        "reward redeemed",
        extra={
            "extra_fields": {
                "user_id": user_id,
                "reward_id": reward_id,
                "points_spent": required,
            }
        },
    )

    return {
        "status": "redeemed",
        "reward_id": reward_id,
        "voucher_code": reward["voucher_code"],
        "points_spent": required,
        "points": user["points"] - required,
        "expiry_date": discount["end_date"],
    }


def get_membership(user_id: str, *, history_limit: int = 20) -> dict:
    """Points balance, derived tier and recent ledger entries."""
    with txn() as cur:
        user = get_user(cur, user_id=user_id)
        history = list_transactions(cur, user_id=user_id, limit=history_limit)

    points = user["points"]
    upcoming = next_tier(points)
    return {
        "user_id": user_id,
        "points": points,
        "tier": tier_for_points(points),
        "next_tier": upcoming[0] if upcoming else None,
        "points_to_next_tier": upcoming[1] if upcoming else 0,
        "transactions": history,
    }


def list_available_rewards(user_id: str) -> dict:
    """Rewards of the user's tier that the balance already covers."""
    with txn() as cur:
        user = get_user(cur, user_id=user_id)
        tier = tier_for_points(user["points"])
        rewards = list_rewards(cur, membership_level=tier)

    return {
        "points": user["points"],
        "tier": tier,
        "rewards": [r for r in rewards if r["points_required"] <= user["points"]],
    }


def list_user_vouchers(user_id: str) -> list[dict]:
    """Personal vouchers the user redeemed and has not used yet."""
    with txn() as cur:
        return list_unused_vouchers(cur, user_id=user_id)


def get_redemption_history(user_id: str, *, limit: int = 50) -> list[dict]:
    """The user's reward redemptions, newest first."""
    with txn() as cur:
        return list_transactions(cur, user_id=user_id, limit=limit, type="reward_redemption")
