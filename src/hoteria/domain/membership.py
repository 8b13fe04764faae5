"""Membership tier derivation.

Tier is a pure function of a user's cumulative points and is never stored.
"""

TIERS = ("Bronze", "Silver", "Gold", "Platinum", "Diamond")

# (min points, tier), highest first
_THRESHOLDS = (
    (400_000, "Diamond"),
    (300_000, "Platinum"),
    (200_000, "Gold"),
    (100_000, "Silver"),
)


def tier_for_points(points: int) -> str:
    """Return the membership tier for a points balance."""
    for minimum, tier in _THRESHOLDS:
        if points >= minimum:
            return tier
    return "Bronze"


def normalize_tier(value: str) -> str:
    """Canonical tier name, or ValueError for an unknown tier."""
    candidate = value.strip().capitalize()
    if candidate not in TIERS:
        raise ValueError(f"Unknown membership level: {value!r}")
    return candidate


def next_tier(points: int) -> tuple[str, int] | None:
    """Next tier up and the points still missing, or None at the top tier."""
    for minimum, tier in reversed(_THRESHOLDS):
        if points < minimum:
            return tier, minimum - points
    return None
