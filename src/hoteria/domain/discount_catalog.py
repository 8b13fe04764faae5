"""Discount catalog - admin management of discount definitions, plus the
member-facing listings of what a user currently qualifies for.

A definition must carry exactly the type-specific field matching its type:
voucher -> code, member -> membership_level, accumulated -> min_spending,
festival -> none of them.
"""

from datetime import datetime
from decimal import Decimal

from hoteria.domain.discounts import AMOUNT_TYPES, DISCOUNT_KINDS
from hoteria.domain.errors import (
    DuplicateDiscountCodeError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from hoteria.domain.membership import normalize_tier, tier_for_points
from hoteria.infra.db import txn
from hoteria.infra.repositories.discounts_repository import (
    insert_discount,
    list_active_discounts,
    lock_discount,
    soft_delete_discount,
    update_discount as store_discount,
    voucher_code_exists,
)
from hoteria.infra.repositories.loyalty_repository import get_completed_spending, get_user
from hoteria.infra.time import utc_now
from hoteria.observability.logging import get_logger

logger = get_logger(__name__)

_TYPE_FIELDS = {
    "voucher": "code",
    "festival": None,
    "member": "membership_level",
    "accumulated": "min_spending",
}


def _require_admin(actor_role: str) -> None:
    if actor_role != "admin":
        raise ForbiddenError("Only admins can manage discounts")


def validate_definition(definition: dict) -> dict:
    """Check a discount definition and return its normalized copy.

    Raises:
        ValidationError: On any malformed field.
    """
    data = dict(definition)

    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Discount name is required")
    data["name"] = name

    kind = data.get("type")
    if kind not in DISCOUNT_KINDS:
        raise ValidationError(f"Unknown discount type: {kind!r}")
    if data.get("discount_type") not in AMOUNT_TYPES:
        raise ValidationError(f"Unknown discount_type: {data.get('discount_type')!r}")

    value = Decimal(str(data.get("value", -1)))
    if value < 0:
        raise ValidationError("Discount value must not be negative")
    if data["discount_type"] == "percentage" and value > 100:
        raise ValidationError("Percentage discount cannot exceed 100")
    data["value"] = value

    for field in ("max_discount", "min_booking_amount"):
        if data.get(field) is not None and data[field] < 0:
            raise ValidationError(f"{field} must not be negative")

    if data.get("start_date") is None or data.get("end_date") is None:
        raise ValidationError("start_date and end_date are required")
    if data["start_date"] >= data["end_date"]:
        raise ValidationError("start_date must be before end_date")

    required_field = _TYPE_FIELDS[kind]
    for other in ("code", "membership_level", "min_spending"):
        present = data.get(other) not in (None, "")
        if other == required_field and not present:
            raise ValidationError(f"{kind} discount requires {other}")
        if other != required_field and present:
            raise ValidationError(f"{other} is not allowed on a {kind} discount")
        if not present:
            data[other] = None

    if kind == "voucher":
        data["code"] = data["code"].strip()
    elif kind == "member":
        try:
            data["membership_level"] = normalize_tier(data["membership_level"])
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
    elif kind == "accumulated" and data["min_spending"] < 0:
        raise ValidationError("min_spending must not be negative")

    return data


def create_discount(definition: dict, *, actor_role: str) -> dict:
    """Create a discount definition (admin only).

    Returns:
        {"status": "created", "id": str, "type": str, "code": str | None}

    Raises:
        ForbiddenError: If the actor is not an admin.
        ValidationError: If the definition is malformed.
        DuplicateDiscountCodeError: If a live voucher already uses the code.
    """
    _require_admin(actor_role)
    data = validate_definition(definition)

    with txn() as cur:
        if data["code"] and voucher_code_exists(cur, code=data["code"]):
            raise DuplicateDiscountCodeError(f"Voucher code {data['code']} already exists")
        discount_id = insert_discount(cur, definition=data)

    logger.info(
        "discount created",
        extra={"extra_fields": {"discount_id": discount_id, "type": data["type"]}},
    )
    return {"status": "created", "id": discount_id, "type": data["type"], "code": data["code"]}


def update_discount(discount_id: str, changes: dict, *, actor_role: str) -> dict:
    """Change some fields of a live discount (admin only).

    Fields absent from changes keep their stored value; the merged
    definition is validated as a whole. The type cannot change.

    Raises:
        ForbiddenError: If the actor is not an admin.
        NotFoundError: If no live discount has this id.
        ValidationError: If the merged definition is malformed.
        DuplicateDiscountCodeError: If another live voucher uses the code.
    """
    _require_admin(actor_role)

    with txn() as cur:
        current = lock_discount(cur, discount_id=discount_id)
        if current is None:
            raise NotFoundError(f"Discount {discount_id} not found")
        if changes.get("type", current["type"]) != current["type"]:
            raise ValidationError("Discount type cannot be changed")

        data = validate_definition({**current, **changes})
        if data["code"] and voucher_code_exists(
            cur, code=data["code"], exclude_id=discount_id
        ):
            raise DuplicateDiscountCodeError(f"Voucher code {data['code']} already exists")
        store_discount(cur, discount_id=discount_id, definition=data)

    logger.info(
        "discount updated",
        extra={"extra_fields": {"discount_id": discount_id, "fields": sorted(changes)}},
    )
    return {"status": "updated", "id": discount_id, "type": data["type"], "code": data["code"]}


def delete_discount(discount_id: str, *, actor_role: str) -> dict:
    """Soft-delete a discount (admin only).

    Raises:
        ForbiddenError: If the actor is not an admin.
        NotFoundError: If no live discount has this id.
    """
    _require_admin(actor_role)

    with txn() as cur:
        if soft_delete_discount(cur, discount_id=discount_id) == 0:
            raise NotFoundError(f"Discount {discount_id} not found")

    logger.info("discount deleted", extra={"extra_fields": {"discount_id": discount_id}})
    return {"status": "deleted", "id": discount_id}


def list_member_discounts(user_id: str, *, now: datetime | None = None) -> dict:
    """Active member discounts of the user's current tier."""
    if now is None:
        now = utc_now()
    with txn() as cur:
        user = get_user(cur, user_id=user_id)
        tier = tier_for_points(user["points"])
        discounts = list_active_discounts(cur, type="member", now=now, membership_level=tier)
    return {"tier": tier, "discounts": discounts}


def list_accumulated_discounts(user_id: str, *, now: datetime | None = None) -> dict:
    """Active accumulated discounts the user's completed spending unlocks."""
    if now is None:
        now = utc_now()
    with txn() as cur:
        spending = get_completed_spending(cur, user_id=user_id)
        discounts = list_active_discounts(
            cur, type="accumulated", now=now, max_min_spending=spending
        )
    return {"completed_spending": spending, "discounts": discounts}
