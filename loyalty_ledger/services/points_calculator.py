"""
Points calculation for purchases.

earned = base + sum(rate bonuses) + sum(flat bonuses)

- base: spent * base_rate, truncated
- rate bonus: spent * promotion.rate, truncated, per rate-bearing promotion
- flat bonus: promotion.points, per flat-award promotion

Each term is truncated toward zero before summing and the total is clamped
at zero. The calculator reads nothing but its arguments, so the same
(spent, promotions) always yields the same award.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Sequence

DEFAULT_BASE_EARNING_RATE = 1  # 1 point per $1 spent


@dataclass(frozen=True)
class PointsBreakdown:
    base_points: int
    rate_bonus_points: int
    flat_bonus_points: int
    total_points: int
    promotion_bonuses: List[dict] = field(default_factory=list)


def _truncate(value: Decimal) -> int:
    # int() on a Decimal truncates toward zero
    return int(value)


class PointsCalculator:
    """Pure mapping from (spent, promotions) to a non-negative point award."""

    def __init__(self, base_rate=DEFAULT_BASE_EARNING_RATE):
        self.base_rate = Decimal(str(base_rate))

    def calculate(self, spent, promotions: Sequence = ()) -> int:
        return self.breakdown(spent, promotions).total_points

    def breakdown(self, spent, promotions: Sequence = ()) -> PointsBreakdown:
        spent = Decimal(str(spent))
        if not spent.is_finite() or spent <= 0:
            return PointsBreakdown(0, 0, 0, 0)

        base_points = _truncate(spent * self.base_rate)
        rate_bonus = 0
        flat_bonus = 0
        bonuses = []

        for promo in promotions:
            promo_rate = 0
            promo_flat = 0
            if promo.rate:
                promo_rate = _truncate(spent * Decimal(str(promo.rate)))
            if promo.points:
                promo_flat = int(promo.points)
            rate_bonus += promo_rate
            flat_bonus += promo_flat
            bonuses.append({
                'promotion_id': promo.id,
                'rate_bonus': promo_rate,
                'flat_bonus': promo_flat,
            })

        total = max(0, base_points + rate_bonus + flat_bonus)
        return PointsBreakdown(
            base_points=base_points,
            rate_bonus_points=rate_bonus,
            flat_bonus_points=flat_bonus,
            total_points=total,
            promotion_bonuses=bonuses,
        )
