"""Discount resolution - pure, ordered, stackability-aware.

A discount is one of four tagged variants sharing DiscountTerms; each
variant carries only the field its type needs (voucher code, membership
level or minimum spending).

resolve_discounts() walks the candidates in the order given and returns the
aggregate outcome. Rejections are collected with a reason and never raised;
side effects of acceptance (voucher used, usage counter) are applied by
apply_discounts in the same transaction that stores the result.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_DOWN, Decimal
from typing import ClassVar, Union

from hoteria.domain.membership import normalize_tier

DISCOUNT_KINDS = ("voucher", "festival", "member", "accumulated")
AMOUNT_TYPES = ("percentage", "fixed")

# Rejection reasons
OUTSIDE_WINDOW = "outside_window"
ROOM_NOT_ELIGIBLE = "room_not_eligible"
BELOW_MIN_AMOUNT = "below_min_amount"
NOT_STACKABLE = "not_stackable"
REQUIRES_USER = "requires_user"
VOUCHER_NOT_OWNED = "voucher_not_owned"
TIER_MISMATCH = "tier_mismatch"
INSUFFICIENT_SPENDING = "insufficient_spending"
VOUCHER_ALREADY_USED = "voucher_already_used"


@dataclass(frozen=True)
class DiscountTerms:
    """Fields common to every discount type."""

    id: str
    name: str
    discount_type: str
    value: Decimal
    start_date: datetime
    end_date: datetime
    max_discount: int | None = None
    applicable_room_ids: tuple[str, ...] = ()
    min_booking_amount: int = 0
    is_stackable: bool = False
    description: str | None = None

    def in_window(self, now: datetime) -> bool:
        return self.start_date <= now <= self.end_date

    def covers_room(self, room_id: str) -> bool:
        return not self.applicable_room_ids or room_id in self.applicable_room_ids

    def amount_for(self, booking_amount: int) -> int:
        """Discount amount in whole currency units, rounded down."""
        if self.discount_type == "percentage":
            raw = (Decimal(booking_amount) * self.value / 100).quantize(
                Decimal(1), rounding=ROUND_DOWN
            )
            amount = int(raw)
            if self.max_discount is not None:
                amount = min(amount, self.max_discount)
            return amount
        return int(self.value)


@dataclass(frozen=True)
class VoucherDiscount:
    kind: ClassVar[str] = "voucher"
    terms: DiscountTerms
    code: str

    @property
    def label(self) -> str:
        return self.code


@dataclass(frozen=True)
class FestivalDiscount:
    kind: ClassVar[str] = "festival"
    terms: DiscountTerms

    @property
    def label(self) -> str:
        return self.terms.id


@dataclass(frozen=True)
class MemberDiscount:
    kind: ClassVar[str] = "member"
    terms: DiscountTerms
    membership_level: str | None = None

    @property
    def label(self) -> str:
        return self.terms.id


@dataclass(frozen=True)
class AccumulatedDiscount:
    kind: ClassVar[str] = "accumulated"
    terms: DiscountTerms
    min_spending: int

    @property
    def label(self) -> str:
        return self.terms.id


Discount = Union[VoucherDiscount, FestivalDiscount, MemberDiscount, AccumulatedDiscount]


@dataclass(frozen=True)
class OwnedVoucher:
    """A user's personal voucher instance."""

    code: str
    is_used: bool
    expiry_date: datetime | None

    def usable_at(self, now: datetime) -> bool:
        if self.is_used:
            return False
        return self.expiry_date is None or now <= self.expiry_date


@dataclass
class UserFacts:
    """What the resolver needs to know about the user applying discounts."""

    user_id: str
    tier: str
    completed_spending: int = 0
    vouchers: dict[str, OwnedVoucher] = field(default_factory=dict)
    usage_counts: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class AppliedDiscount:
    discount_id: str
    kind: str
    code: str
    amount: int

    def to_dict(self) -> dict:
        return {
            "discount_id": self.discount_id,
            "type": self.kind,
            "code": self.code,
            "amount": self.amount,
        }


@dataclass(frozen=True)
class Rejection:
    discount_id: str
    code: str
    reason: str

    def to_dict(self) -> dict:
        return {"discount_id": self.discount_id, "code": self.code, "reason": self.reason}


@dataclass
class Resolution:
    booking_amount: int
    total_discount: int = 0
    applied: list[AppliedDiscount] = field(default_factory=list)
    rejected: list[Rejection] = field(default_factory=list)

    @property
    def net_amount(self) -> int:
        return max(0, self.booking_amount - self.total_discount)

    def rejected_for(self, reason: str) -> list[Rejection]:
        return [r for r in self.rejected if r.reason == reason]


def discount_from_record(record: dict) -> Discount:
    """Build the tagged variant from a discounts row mapped to a dict.

    Raises:
        ValueError: If the type is unknown or its type-specific field is missing.
    """
    max_discount = record.get("max_discount")
    terms = DiscountTerms(
        id=str(record["id"]),
        name=record["name"],
        discount_type=record["discount_type"],
        value=Decimal(str(record["value"])),
        start_date=record["start_date"],
        end_date=record["end_date"],
        max_discount=int(max_discount) if max_discount is not None else None,
        applicable_room_ids=tuple(str(r) for r in record.get("applicable_room_ids") or ()),
        min_booking_amount=int(record.get("min_booking_amount") or 0),
        is_stackable=bool(record.get("is_stackable")),
        description=record.get("description"),
    )

    kind = record["type"]
    if kind == "voucher":
        if not record.get("code"):
            raise ValueError(f"voucher discount {terms.id} has no code")
        return VoucherDiscount(terms=terms, code=record["code"])
    if kind == "festival":
        return FestivalDiscount(terms=terms)
    if kind == "member":
        level = record.get("membership_level")
        return MemberDiscount(terms=terms, membership_level=normalize_tier(level) if level else None)
    if kind == "accumulated":
        if record.get("min_spending") is None:
            raise ValueError(f"accumulated discount {terms.id} has no min_spending")
        return AccumulatedDiscount(terms=terms, min_spending=int(record["min_spending"]))
    raise ValueError(f"Unknown discount type: {kind!r}")


def _eligibility_reason(discount: Discount, facts: UserFacts | None, now: datetime) -> str | None:
    """Type-specific eligibility; returns a rejection reason or None."""
    if isinstance(discount, FestivalDiscount):
        return None
    if facts is None:
        return REQUIRES_USER

    if isinstance(discount, VoucherDiscount):
        owned = facts.vouchers.get(discount.code)
        if owned is None:
            return VOUCHER_NOT_OWNED
        if owned.is_used:
            return VOUCHER_ALREADY_USED
        if not owned.usable_at(now):
            return VOUCHER_NOT_OWNED
        return None

    if isinstance(discount, MemberDiscount):
        if discount.membership_level and facts.tier != discount.membership_level:
            return TIER_MISMATCH
        return None

    if facts.completed_spending < discount.min_spending:
        return INSUFFICIENT_SPENDING
    return None


def resolve_discounts(
    candidates: list[Discount],
    *,
    booking_amount: int,
    room_id: str,
    now: datetime,
    facts: UserFacts | None = None,
) -> Resolution:
    """Resolve candidates in order into an aggregate discount.

    Args:
        candidates: Discounts in the order the caller listed them.
        booking_amount: Gross booking amount (rate x nights).
        room_id: Room the booking holds.
        now: Evaluation instant for windows and voucher expiry.
        facts: User facts; None for an anonymous booking.

    Returns:
        Resolution with applied and rejected entries. Net amount is never
        negative.
    """
    resolution = Resolution(booking_amount=booking_amount)
    seen: set[str] = set()

    for discount in candidates:
        terms = discount.terms
        if terms.id in seen:
            continue
        seen.add(terms.id)

        reason = None
        if not terms.in_window(now):
            reason = OUTSIDE_WINDOW
        elif not terms.covers_room(room_id):
            reason = ROOM_NOT_ELIGIBLE
        elif booking_amount < terms.min_booking_amount:
            reason = BELOW_MIN_AMOUNT
        elif not terms.is_stackable and resolution.applied:
            reason = NOT_STACKABLE
        else:
            reason = _eligibility_reason(discount, facts, now)

        if (
            reason is None
            and isinstance(discount, VoucherDiscount)
            and facts.usage_counts.get(terms.id, 0) >= 1
        ):
            reason = VOUCHER_ALREADY_USED

        if reason is not None:
            resolution.rejected.append(Rejection(terms.id, discount.label, reason))
            continue

        amount = terms.amount_for(booking_amount)
        resolution.total_discount += amount
        resolution.applied.append(
            AppliedDiscount(
                discount_id=terms.id,
                kind=discount.kind,
                code=discount.label,
                amount=amount,
            )
        )

    return resolution
