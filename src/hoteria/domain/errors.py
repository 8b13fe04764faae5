"""Error taxonomy for the reservation engine.

Every failure the core reports belongs to one of five families. Each carries
a stable ``code`` that callers can branch on (client-side retry logic), and
the API layer maps the family to an HTTP status.
"""

from __future__ import annotations


class HoteriaError(Exception):
    """Base class for all domain errors."""

    code = "error"

    def __init__(self, message: str = "", *, code: str | None = None) -> None:
        super().__init__(message or self.__class__.__doc__ or self.code)
        if code is not None:
            self.code = code

    @property
    def message(self) -> str:
        return str(self)


# -- ValidationError: malformed input, no state change -----------------------


class ValidationError(HoteriaError):
    """Input failed validation."""

    code = "validation_error"


class InvalidIntervalError(ValidationError):
    """Check-in must be before check-out."""

    code = "invalid_interval"


# -- NotFoundError ------------------------------------------------------------


class NotFoundError(HoteriaError):
    """Referenced record does not exist."""

    code = "not_found"


# -- ConflictError: recoverable by retrying with different input -------------


class ConflictError(HoteriaError):
    """Request conflicts with current state."""

    code = "conflict"


class SlotConflictError(ConflictError):
    """Room already has a reservation overlapping the requested dates."""

    code = "slot_conflict"

    def __init__(
        self,
        room_id: str,
        conflicting_booking_id: str | None = None,
        message: str = "",
    ) -> None:
        self.room_id = room_id
        self.conflicting_booking_id = conflicting_booking_id
        super().__init__(message or f"Room {room_id} is already reserved for these dates")


class RoomUnavailableError(ConflictError):
    """Room is not open for booking."""

    code = "room_unavailable"

    def __init__(self, room_id: str, availability_status: str) -> None:
        self.room_id = room_id
        self.availability_status = availability_status
        super().__init__(f"Room {room_id} is {availability_status} and cannot be booked")


class CapacityExceededError(ConflictError):
    """Party size exceeds the room capacity."""

    code = "capacity_exceeded"


class InvalidTransitionError(ConflictError):
    """Booking status does not allow the requested transition."""

    code = "invalid_transition"


class VoucherAlreadyUsedError(ConflictError):
    """Voucher already used."""

    code = "voucher_already_used"


class DiscountsAlreadyAppliedError(ConflictError):
    """Booking already carries applied discounts."""

    code = "discounts_already_applied"


class DuplicateDiscountCodeError(ConflictError):
    """A voucher with this code already exists."""

    code = "duplicate_discount_code"


class DuplicateRewardCodeError(ConflictError):
    """Another reward already hands out this voucher code."""

    code = "duplicate_reward_code"


class DuplicateEarnError(ConflictError):
    """Points were already awarded for this booking."""

    code = "duplicate_earn"


class DuplicateRedemptionError(ConflictError):
    """Reward already redeemed by this user."""

    code = "duplicate_redemption"


class InsufficientPointsError(ConflictError):
    """Not enough points for this reward."""

    code = "insufficient_points"


class RewardNotEligibleError(ConflictError):
    """Membership tier does not match the reward."""

    code = "reward_not_eligible"


# -- ForbiddenError -----------------------------------------------------------


class ForbiddenError(HoteriaError):
    """Principal lacks the role or ownership required."""

    code = "forbidden"


# -- StorageUnavailableError: infrastructure, retryable -----------------------


class StorageUnavailableError(HoteriaError):
    """Storage layer is unavailable; retry later."""

    code = "storage_unavailable"
