"""Tests for membership tier derivation."""

import pytest

from hoteria.domain.membership import next_tier, normalize_tier, tier_for_points


class TestTierForPoints:
    @pytest.mark.parametrize(
        "points,tier",
        [
            (0, "Bronze"),
            (99_999, "Bronze"),
            (100_000, "Silver"),
            (199_999, "Silver"),
            (200_000, "Gold"),
            (300_000, "Platinum"),
            (400_000, "Diamond"),
            (5_000_000, "Diamond"),
        ],
    )
    def test_thresholds(self, points, tier):
        assert tier_for_points(points) == tier


class TestNormalizeTier:
    def test_case_insensitive(self):
        assert normalize_tier(" gold ") == "Gold"

    def test_unknown(self):
        with pytest.raises(ValueError):
            normalize_tier("Titanium")


class TestNextTier:
    def test_from_bronze(self):
        assert next_tier(40_000) == ("Silver", 60_000)

    def test_from_platinum(self):
        assert next_tier(350_000) == ("Diamond", 50_000)

    def test_top_tier(self):
        assert next_tier(400_000) is None
