"""
Reprice selection.

An order is repriced only when it has drifted past the threshold AND has
rested long enough. The age guard is what stops a freshly repriced order from
being picked again on the next tick while the price is still moving.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, List

from mmbot.core.rounding import to_decimal
from mmbot.core.types import TrackedOrder

_HUNDRED = Decimal(100)


def deviation(price: Decimal, mid: Decimal) -> Decimal:
    """Relative distance |price - mid| / mid as a fraction."""
    return abs(price - mid) / mid


def select_for_reprice(
    confirmed_orders: Iterable[TrackedOrder],
    mid_price,
    max_rebalance_distance_pct,
    min_rebalance_age_sec: float,
    now: float,
) -> List[TrackedOrder]:
    """
    Pick confirmed orders that are both too far from mid and old enough.

    Returned in input order. Pure: no order is mutated.
    """
    mid = to_decimal(mid_price)
    if mid <= 0:
        raise ValueError(f"mid_price must be > 0, got {mid}")
    threshold = to_decimal(max_rebalance_distance_pct) / _HUNDRED

    selected = []
    for order in confirmed_orders:
        too_far = deviation(order.price, mid) > threshold
        recently_touched = (now - order.placed_at) < min_rebalance_age_sec
        if too_far and not recently_touched:
            selected.append(order)
    return selected
