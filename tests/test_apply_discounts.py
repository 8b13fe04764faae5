"""Tests for applying discounts to a booking (mocked transaction)."""

from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest

from hoteria.domain.apply_discounts import apply_discounts, quote_discounts
from hoteria.domain.discounts import OwnedVoucher
from hoteria.domain.errors import (
    DiscountsAlreadyAppliedError,
    ForbiddenError,
    InvalidIntervalError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
    VoucherAlreadyUsedError,
)

from helpers import T0, make_booking, make_room

MODULE = "hoteria.domain.apply_discounts"


def _record(discount_id: str, **overrides) -> dict:
    record = {
        "id": discount_id,
        "name": f"Discount {discount_id}",
        "description": None,
        "type": "festival",
        "discount_type": "percentage",
        "value": Decimal("10"),
        "max_discount": None,
        "start_date": T0 - timedelta(days=1),
        "end_date": T0 + timedelta(days=1),
        "applicable_room_ids": [],
        "min_booking_amount": 0,
        "is_stackable": False,
        "code": None,
        "membership_level": None,
        "min_spending": None,
    }
    record.update(overrides)
    return record


VOUCHER = _record("v1", type="voucher", code="SPRING10", max_discount=150_000)
FESTIVAL = _record("f1", discount_type="fixed", value=Decimal("100000"), is_stackable=True)


def _apply_as_owner(identifiers: list[str]) -> dict:
    return apply_discounts("booking-1", identifiers=identifiers, actor_user_id="user-1", now=T0)


@pytest.fixture
def storage():
    user = {"id": "user-1", "points": 0}
    with patch(f"{MODULE}.lock_booking", return_value=make_booking()) as lock_booking, \
         patch(f"{MODULE}.fetch_discounts", return_value=[VOUCHER]) as fetch_discounts, \
         patch(f"{MODULE}.resolve_booking_user", return_value="user-1") as resolve_user, \
         patch(f"{MODULE}.lock_user", return_value=user) as lock_user, \
         patch(f"{MODULE}.get_user", return_value=user) as get_user, \
         patch(f"{MODULE}.get_user_vouchers", return_value={}) as get_vouchers, \
         patch(f"{MODULE}.get_completed_spending", return_value=0), \
         patch(
             f"{MODULE}.lock_user_vouchers",
             return_value={"SPRING10": OwnedVoucher("SPRING10", False, None)},
         ) as lock_vouchers, \
         patch(f"{MODULE}.get_usage_counts", return_value={}) as usage_counts, \
         patch(f"{MODULE}.get_room", return_value=make_room()) as get_room, \
         patch(f"{MODULE}.mark_voucher_used", return_value=True) as mark_used, \
         patch(f"{MODULE}.increment_usage") as increment_usage, \
         patch(f"{MODULE}.set_applied_discounts") as set_applied:
        yield {
            "lock_booking": lock_booking,
            "fetch_discounts": fetch_discounts,
            "resolve_user": resolve_user,
            "lock_user": lock_user,
            "get_user": get_user,
            "get_vouchers": get_vouchers,
            "get_room": get_room,
            "lock_vouchers": lock_vouchers,
            "usage_counts": usage_counts,
            "mark_used": mark_used,
            "increment_usage": increment_usage,
            "set_applied": set_applied,
        }


class TestApplyDiscounts:
    def test_capped_voucher_applied_atomically(self, mock_txn, storage):
        cur = mock_txn(MODULE)

        result = _apply_as_owner(["SPRING10"])

        assert result["booking_amount"] == 2_000_000
        assert result["total_discount"] == 150_000
        assert result["net_amount"] == 1_850_000
        storage["mark_used"].assert_called_once_with(cur, user_id="user-1", code="SPRING10")
        storage["increment_usage"].assert_called_once_with(
            cur, discount_id="v1", user_id="user-1"
        )
        storage["set_applied"].assert_called_once_with(
            cur,
            booking_id="booking-1",
            voucher_discount=150_000,
            applied_vouchers=[
                {"discount_id": "v1", "type": "voucher", "code": "SPRING10", "amount": 150_000}
            ],
        )

    def test_rejections_reported_without_side_effects(self, mock_txn, storage):
        mock_txn(MODULE)
        expired = _record("old", end_date=T0 - timedelta(hours=1))
        storage["fetch_discounts"].return_value = [expired, FESTIVAL]

        result = _apply_as_owner(["old", "f1"])

        assert [a["discount_id"] for a in result["applied"]] == ["f1"]
        assert result["rejected"] == [
            {"discount_id": "old", "code": "old", "reason": "outside_window"}
        ]
        storage["increment_usage"].assert_called_once()
        storage["mark_used"].assert_not_called()

    def test_anonymous_caller_gets_festival_only(self, mock_txn, storage):
        """The booking owner's vouchers stay untouched without a signed-in caller."""
        mock_txn(MODULE)
        storage["fetch_discounts"].return_value = [VOUCHER, FESTIVAL]

        result = apply_discounts("booking-1", identifiers=["SPRING10", "f1"], now=T0)

        assert [a["discount_id"] for a in result["applied"]] == ["f1"]
        assert result["rejected"][0]["reason"] == "requires_user"
        storage["resolve_user"].assert_not_called()
        storage["lock_user"].assert_not_called()
        storage["lock_vouchers"].assert_not_called()
        storage["mark_used"].assert_not_called()
        storage["increment_usage"].assert_not_called()

    def test_other_user_cannot_apply_to_booking(self, mock_txn, storage):
        mock_txn(MODULE)
        storage["resolve_user"].return_value = "user-2"

        with pytest.raises(ForbiddenError):
            _apply_as_owner(["SPRING10"])

        storage["lock_user"].assert_not_called()
        storage["mark_used"].assert_not_called()
        storage["set_applied"].assert_not_called()

    def test_signed_in_user_on_guest_booking_forbidden(self, mock_txn, storage):
        mock_txn(MODULE)
        storage["resolve_user"].return_value = None

        with pytest.raises(ForbiddenError):
            _apply_as_owner(["SPRING10"])

    def test_staff_applies_with_owner_facts(self, mock_txn, storage):
        cur = mock_txn(MODULE)

        result = apply_discounts(
            "booking-1",
            identifiers=["SPRING10"],
            actor_user_id="staff-1",
            actor_role="staff",
            now=T0,
        )

        assert result["total_discount"] == 150_000
        storage["lock_user"].assert_called_once_with(cur, user_id="user-1")
        storage["mark_used"].assert_called_once_with(cur, user_id="user-1", code="SPRING10")

    def test_staff_on_guest_booking_gets_festival_only(self, mock_txn, storage):
        mock_txn(MODULE)
        storage["resolve_user"].return_value = None
        storage["fetch_discounts"].return_value = [VOUCHER, FESTIVAL]

        result = apply_discounts(
            "booking-1",
            identifiers=["SPRING10", "f1"],
            actor_user_id="admin-1",
            actor_role="admin",
            now=T0,
        )

        assert [a["discount_id"] for a in result["applied"]] == ["f1"]
        storage["lock_user"].assert_not_called()

    def test_amount_uses_booked_rate(self, mock_txn, storage):
        """A later move to a pricier room does not change the booking amount."""
        mock_txn(MODULE)
        storage["lock_booking"].return_value = make_booking(
            room_id="room-2", booked_rate=800_000
        )
        storage["get_room"].return_value = make_room(id="room-2", rent_per_day=1_200_000)

        result = _apply_as_owner(["SPRING10"])

        assert result["booking_amount"] == 1_600_000
        storage["get_room"].assert_not_called()

    def test_used_voucher_raises(self, mock_txn, storage):
        mock_txn(MODULE)
        storage["lock_vouchers"].return_value = {
            "SPRING10": OwnedVoucher("SPRING10", True, None)
        }

        with pytest.raises(VoucherAlreadyUsedError):
            _apply_as_owner(["SPRING10"])

        storage["set_applied"].assert_not_called()

    def test_concurrent_use_of_same_voucher(self, mock_txn, storage):
        """The guarded flag flip loses the race: nothing is stored."""
        mock_txn(MODULE)
        storage["mark_used"].return_value = False

        with pytest.raises(VoucherAlreadyUsedError):
            _apply_as_owner(["SPRING10"])

        storage["set_applied"].assert_not_called()

    def test_usage_counter_blocks_reuse(self, mock_txn, storage):
        mock_txn(MODULE)
        storage["usage_counts"].return_value = {"v1": 1}

        with pytest.raises(VoucherAlreadyUsedError):
            _apply_as_owner(["SPRING10"])

    def test_unknown_codes(self, mock_txn, storage):
        mock_txn(MODULE)
        storage["fetch_discounts"].return_value = []

        with pytest.raises(NotFoundError):
            apply_discounts("booking-1", identifiers=["NOPE"], now=T0)

    def test_canceled_booking(self, mock_txn, storage):
        mock_txn(MODULE)
        storage["lock_booking"].return_value = make_booking(status="canceled")

        with pytest.raises(InvalidTransitionError):
            _apply_as_owner(["SPRING10"])

    def test_discounts_already_applied(self, mock_txn, storage):
        mock_txn(MODULE)
        storage["lock_booking"].return_value = make_booking(
            applied_vouchers=[{"discount_id": "f1", "type": "festival", "code": "f1", "amount": 1}]
        )

        with pytest.raises(DiscountsAlreadyAppliedError):
            _apply_as_owner(["SPRING10"])

        storage["fetch_discounts"].assert_not_called()

    def test_blank_identifiers(self, mock_txn, storage):
        with pytest.raises(ValidationError):
            apply_discounts("booking-1", identifiers=["", "  "], now=T0)


class TestQuoteDiscounts:
    def _quote(self, identifiers: list[str], **overrides) -> dict:
        kwargs = {
            "room_id": "room-1",
            "checkin": date(2025, 3, 10),
            "checkout": date(2025, 3, 13),
            "identifiers": identifiers,
            "now": T0,
        }
        kwargs.update(overrides)
        return quote_discounts(**kwargs)

    def test_prices_at_current_room_rate(self, mock_txn, storage):
        mock_txn(MODULE)
        storage["fetch_discounts"].return_value = [FESTIVAL]

        result = self._quote(["f1"])

        assert result["booking_amount"] == 3_000_000
        assert result["total_discount"] == 100_000
        assert result["net_amount"] == 2_900_000

    def test_user_facts_read_without_locks_or_writes(self, mock_txn, storage):
        mock_txn(MODULE)
        storage["get_vouchers"].return_value = {
            "SPRING10": OwnedVoucher("SPRING10", False, None)
        }

        result = self._quote(["SPRING10"], user_id="user-1")

        assert result["total_discount"] == 150_000
        storage["get_user"].assert_called_once()
        storage["lock_user"].assert_not_called()
        storage["lock_vouchers"].assert_not_called()
        storage["mark_used"].assert_not_called()
        storage["increment_usage"].assert_not_called()
        storage["set_applied"].assert_not_called()

    def test_anonymous_quote_skips_vouchers(self, mock_txn, storage):
        mock_txn(MODULE)

        result = self._quote(["SPRING10"])

        assert result["applied"] == []
        assert result["rejected"][0]["reason"] == "requires_user"

    def test_invalid_interval(self, mock_txn, storage):
        with pytest.raises(InvalidIntervalError):
            self._quote(["f1"], checkout=date(2025, 3, 10))

    def test_unknown_codes(self, mock_txn, storage):
        mock_txn(MODULE)
        storage["fetch_discounts"].return_value = []

        with pytest.raises(NotFoundError):
            self._quote(["NOPE"])
