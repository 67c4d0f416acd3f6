"""
Tiered rental pricing.

A rental is charged by whole days: the first day, the first two days as a
bundle, then a flat rate for each day beyond two. Partial days round up.
"""

from dataclasses import dataclass
from datetime import datetime
import math

from ..models.trailer import Trailer

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class PricingTiers:
    one_day: int
    two_days: int
    additional_day: int

    @classmethod
    def for_trailer(cls, trailer: Trailer) -> "PricingTiers":
        return cls(
            one_day=trailer.price_one_day,
            two_days=trailer.price_two_days,
            additional_day=trailer.price_additional_day,
        )


def price(tiers: PricingTiers, days: int) -> int:
    if days <= 0:
        return 0
    if days == 1:
        return tiers.one_day
    if days == 2:
        return tiers.two_days
    return tiers.two_days + (days - 2) * tiers.additional_day


def rental_days(start: datetime, end: datetime) -> int:
    """Whole days spanned by [start, end], rounding partial days up."""
    return math.ceil((end - start).total_seconds() / SECONDS_PER_DAY)


def quote(tiers: PricingTiers, start: datetime, end: datetime) -> int:
    return price(tiers, rental_days(start, end))
