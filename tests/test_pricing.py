"""Tests for the tiered pricing calculator."""

from datetime import datetime, timedelta, timezone

import pytest

from trailer_rental.services.pricing import PricingTiers, price, quote, rental_days

TIERS = PricingTiers(one_day=500, two_days=900, additional_day=300)
START = datetime(2030, 5, 1, 8, 0, tzinfo=timezone.utc)


class TestPrice:
    @pytest.mark.parametrize(
        "days,expected",
        [(0, 0), (1, 500), (2, 900), (3, 1200), (4, 1500), (10, 3300)],
    )
    def test_tiers(self, days, expected):
        assert price(TIERS, days) == expected

    def test_three_day_rental_costs_two_day_bundle_plus_one_additional_day(self):
        assert quote(TIERS, START, START + timedelta(days=3)) == 900 + 300

    def test_monotonic_in_duration(self):
        previous = 0
        for hours in range(1, 24 * 14, 5):
            current = quote(TIERS, START, START + timedelta(hours=hours))
            assert current >= previous
            previous = current


class TestRentalDays:
    def test_partial_days_round_up(self):
        assert rental_days(START, START + timedelta(hours=1)) == 1
        assert rental_days(START, START + timedelta(days=1, minutes=1)) == 2

    def test_exact_days(self):
        assert rental_days(START, START + timedelta(days=2)) == 2
