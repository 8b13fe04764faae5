"""Tests for loyalty accrual and reward redemption (mocked transaction)."""

from unittest.mock import MagicMock, patch

import pytest

from hoteria.domain.errors import (
    DuplicateEarnError,
    DuplicateRedemptionError,
    ForbiddenError,
    InsufficientPointsError,
    InvalidTransitionError,
    NotFoundError,
    RewardNotEligibleError,
)
from hoteria.domain.loyalty import (
    accrue,
    award_points,
    booking_amount_paid,
    get_membership,
    points_for_amount,
    redeem_reward,
)

from helpers import T0, make_booking

MODULE = "hoteria.domain.loyalty"


def _user(points: int, user_id: str = "user-1") -> dict:
    return {
        "id": user_id,
        "external_subject": "sub-1",
        "email": "guest@example.com",
        "name": "Guest",
        "role": "user",
        "points": points,
    }


def _paid(**overrides) -> dict:
    fields = {"status": "confirmed", "payment_status": "paid"}
    fields.update(overrides)
    return make_booking(**fields)


@pytest.fixture
def storage():
    with patch(f"{MODULE}.lock_booking") as lock_booking, \
         patch(f"{MODULE}.lock_user", return_value=_user(0)) as lock_user, \
         patch(f"{MODULE}.get_user") as get_user, \
         patch(f"{MODULE}.find_user_id_by_email", return_value=None) as by_email, \
         patch(f"{MODULE}.has_earn", return_value=False) as has_earn, \
         patch(f"{MODULE}.insert_earn", return_value=True) as insert_earn, \
         patch(f"{MODULE}.add_points") as add_points, \
         patch(f"{MODULE}.get_reward") as get_reward, \
         patch(f"{MODULE}.find_voucher_by_code", return_value={"end_date": T0}) as find_voucher, \
         patch(f"{MODULE}.insert_user_voucher", return_value=True) as insert_user_voucher, \
         patch(f"{MODULE}.debit_points", return_value=True) as debit_points, \
         patch(f"{MODULE}.insert_redemption") as insert_redemption, \
         patch(f"{MODULE}.list_transactions", return_value=[]) as list_transactions:
        yield {
            "lock_booking": lock_booking,
            "lock_user": lock_user,
            "get_user": get_user,
            "by_email": by_email,
            "has_earn": has_earn,
            "insert_earn": insert_earn,
            "add_points": add_points,
            "get_reward": get_reward,
            "find_voucher": find_voucher,
            "insert_user_voucher": insert_user_voucher,
            "debit_points": debit_points,
            "insert_redemption": insert_redemption,
            "list_transactions": list_transactions,
        }


class TestPointsForAmount:
    @pytest.mark.parametrize(
        "amount,points",
        [(0, 0), (99, 0), (100, 1), (199, 1), (1_850_000, 18_500), (-500, 0)],
    )
    def test_floor_one_percent(self, amount, points):
        assert points_for_amount(amount) == points

    def test_amount_paid_subtracts_discount(self):
        booking = make_booking(voucher_discount=150_000)
        assert booking_amount_paid(booking) == 1_850_000

    def test_amount_paid_never_negative(self):
        booking = make_booking(voucher_discount=5_000_000)
        assert booking_amount_paid(booking) == 0


class TestAccrue:
    def test_accrues_once_for_paid_booking(self, storage):
        cur = MagicMock()
        booking = _paid(voucher_discount=150_000)

        result = accrue(cur, booking=booking)

        assert result == {
            "status": "accrued",
            "user_id": "user-1",
            "points": 18_500,
            "amount": 1_850_000,
        }
        storage["insert_earn"].assert_called_once_with(
            cur, user_id="user-1", booking_id="booking-1", amount=1_850_000, points=18_500
        )
        storage["add_points"].assert_called_once_with(cur, user_id="user-1", points=18_500)

    def test_reassigned_booking_accrues_at_booked_rate(self, storage):
        """Moved to a same-type room priced 1.2M after booking at 1.0M."""
        cur = MagicMock()
        booking = _paid(room_id="room-2", booked_rate=1_000_000)

        result = accrue(cur, booking=booking)

        assert result["amount"] == 2_000_000
        assert result["points"] == 20_000
        storage["insert_earn"].assert_called_once_with(
            cur, user_id="user-1", booking_id="booking-1", amount=2_000_000, points=20_000
        )

    def test_second_accrual_is_duplicate(self, storage):
        storage["insert_earn"].return_value = False

        result = accrue(MagicMock(), booking=_paid())

        assert result == {"status": "duplicate"}
        storage["add_points"].assert_not_called()

    def test_user_resolved_by_email(self, storage):
        storage["by_email"].return_value = "user-7"

        result = accrue(MagicMock(), booking=_paid(user_id=None))

        assert result["user_id"] == "user-7"

    def test_anonymous_booking(self, storage):
        result = accrue(MagicMock(), booking=_paid(user_id=None))

        assert result == {"status": "no_user"}
        storage["insert_earn"].assert_not_called()


class TestAwardPoints:
    def test_owner_can_award(self, mock_txn, storage):
        mock_txn(MODULE)
        storage["lock_booking"].return_value = _paid()

        result = award_points("booking-1", actor_user_id="user-1", actor_role="user")

        assert result["status"] == "accrued"

    def test_staff_can_award_for_guest(self, mock_txn, storage):
        mock_txn(MODULE)
        storage["lock_booking"].return_value = _paid()

        result = award_points("booking-1", actor_user_id="staff-1", actor_role="staff")

        assert result["status"] == "accrued"

    def test_other_user_forbidden(self, mock_txn, storage):
        mock_txn(MODULE)
        storage["lock_booking"].return_value = _paid()

        with pytest.raises(ForbiddenError):
            award_points("booking-1", actor_user_id="user-2", actor_role="user")

    def test_unpaid_booking(self, mock_txn, storage):
        mock_txn(MODULE)
        storage["lock_booking"].return_value = make_booking()

        with pytest.raises(InvalidTransitionError):
            award_points("booking-1", actor_user_id="user-1", actor_role="user")

    def test_already_awarded(self, mock_txn, storage):
        mock_txn(MODULE)
        storage["lock_booking"].return_value = _paid()
        storage["has_earn"].return_value = True

        with pytest.raises(DuplicateEarnError):
            award_points("booking-1", actor_user_id="user-1", actor_role="user")

        storage["insert_earn"].assert_not_called()

    def test_concurrent_earn_lost_race(self, mock_txn, storage):
        mock_txn(MODULE)
        storage["lock_booking"].return_value = _paid()
        storage["insert_earn"].return_value = False

        with pytest.raises(DuplicateEarnError):
            award_points("booking-1", actor_user_id="user-1", actor_role="user")

    def test_booking_without_user(self, mock_txn, storage):
        mock_txn(MODULE)
        storage["lock_booking"].return_value = _paid(user_id=None)

        with pytest.raises(NotFoundError):
            award_points("booking-1", actor_user_id="admin-1", actor_role="admin")


class TestRedeemReward:
    REWARD = {
        "id": "reward-1",
        "name": "Silver night",
        "membership_level": "Silver",
        "points_required": 50_000,
        "voucher_code": "SILVER50",
    }

    def test_redeems(self, mock_txn, storage):
        cur = mock_txn(MODULE)
        storage["lock_user"].return_value = _user(150_000)
        storage["get_reward"].return_value = dict(self.REWARD)

        result = redeem_reward("user-1", reward_id="reward-1")

        assert result["voucher_code"] == "SILVER50"
        assert result["points"] == 100_000
        assert result["expiry_date"] == T0
        storage["debit_points"].assert_called_once_with(cur, user_id="user-1", points=50_000)
        storage["insert_redemption"].assert_called_once()

    def test_tier_mismatch(self, mock_txn, storage):
        mock_txn(MODULE)
        storage["lock_user"].return_value = _user(60_000)
        storage["get_reward"].return_value = dict(self.REWARD)

        with pytest.raises(RewardNotEligibleError):
            redeem_reward("user-1", reward_id="reward-1")

    def test_insufficient_points(self, mock_txn, storage):
        mock_txn(MODULE)
        storage["lock_user"].return_value = _user(120_000)
        storage["get_reward"].return_value = {**self.REWARD, "points_required": 150_000}

        with pytest.raises(InsufficientPointsError):
            redeem_reward("user-1", reward_id="reward-1")

        storage["debit_points"].assert_not_called()

    def test_already_redeemed(self, mock_txn, storage):
        mock_txn(MODULE)
        storage["lock_user"].return_value = _user(150_000)
        storage["get_reward"].return_value = dict(self.REWARD)
        storage["insert_user_voucher"].return_value = False

        with pytest.raises(DuplicateRedemptionError):
            redeem_reward("user-1", reward_id="reward-1")

        storage["debit_points"].assert_not_called()


class TestGetMembership:
    def test_derives_tier(self, mock_txn, storage):
        mock_txn(MODULE)
        storage["get_user"].return_value = _user(120_000)

        result = get_membership("user-1")

        assert result["tier"] == "Silver"
        assert result["next_tier"] == "Gold"
        assert result["points_to_next_tier"] == 80_000
