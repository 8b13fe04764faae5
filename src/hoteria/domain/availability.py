"""Availability checks - pure functions over half-open date intervals.

Overlap formula:  (candidate.checkin < existing.checkout) AND (existing.checkin < candidate.checkout)
Strict inequality allows check-out day == check-in day (same-day turnover).

No I/O here: the same functions run for pre-validation outside a
transaction and again, authoritatively, inside the transaction that
writes the interval (see room_conflict).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable

from hoteria.domain.errors import (
    CapacityExceededError,
    InvalidIntervalError,
    RoomUnavailableError,
    SlotConflictError,
)

ROOM_AVAILABLE = "available"
ROOM_STATUSES = ("available", "maintenance", "busy")


@dataclass(frozen=True)
class StayInterval:
    """Half-open date range [checkin, checkout)."""

    checkin: date
    checkout: date

    @property
    def nights(self) -> int:
        return (self.checkout - self.checkin).days


@dataclass(frozen=True)
class ReservedInterval:
    """An interval held on a room by a booking."""

    booking_id: str
    checkin: date
    checkout: date

    @property
    def interval(self) -> StayInterval:
        return StayInterval(self.checkin, self.checkout)


def validate_interval(checkin: date, checkout: date) -> StayInterval:
    """Return the interval, or raise InvalidIntervalError if checkin >= checkout."""
    if checkin >= checkout:
        raise InvalidIntervalError(
            f"checkin {checkin.isoformat()} must be before checkout {checkout.isoformat()}"
        )
    return StayInterval(checkin, checkout)


def overlaps(candidate: StayInterval, existing: StayInterval) -> bool:
    """True if the two half-open intervals share at least one night."""
    return candidate.checkin < existing.checkout and existing.checkin < candidate.checkout


def find_conflict(
    candidate: StayInterval,
    reserved: Iterable[ReservedInterval],
    *,
    exclude_booking_id: str | None = None,
) -> ReservedInterval | None:
    """Return the first reserved interval overlapping candidate, if any.

    Args:
        candidate: Requested stay.
        reserved: Intervals currently held on the room.
        exclude_booking_id: Ignore this booking's own interval (date edits).
    """
    for existing in sorted(reserved, key=lambda r: r.checkin):
        if exclude_booking_id is not None and existing.booking_id == exclude_booking_id:
            continue
        if overlaps(candidate, existing.interval):
            return existing
    return None


def is_bookable(
    availability_status: str,
    candidate: StayInterval,
    reserved: Iterable[ReservedInterval],
) -> bool:
    """Room is open and no reserved interval overlaps the candidate."""
    if availability_status != ROOM_AVAILABLE:
        return False
    return find_conflict(candidate, reserved) is None


def check_capacity(max_count: int, adults: int, children: int = 0) -> None:
    """Raise CapacityExceededError if the party does not fit in the room."""
    party_size = adults + children
    if party_size > max_count:
        raise CapacityExceededError(
            f"Party of {party_size} exceeds room capacity of {max_count}"
        )


def assert_bookable(
    *,
    room_id: str,
    availability_status: str,
    candidate: StayInterval,
    reserved: Iterable[ReservedInterval],
    exclude_booking_id: str | None = None,
) -> None:
    """Raise RoomUnavailableError or SlotConflictError if candidate cannot be held."""
    if availability_status != ROOM_AVAILABLE:
        raise RoomUnavailableError(room_id, availability_status)

    conflict = find_conflict(candidate, reserved, exclude_booking_id=exclude_booking_id)
    if conflict is not None:
        raise SlotConflictError(room_id, conflict.booking_id)
