"""
Ladder generation for market making.

Pure calculation module: given a reference price and spacing, compute the
ordered target prices per side. Rung 0 is closest to mid. Nothing here
touches the exchange or the tracked book.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Tuple

from mmbot.core.enums import MarketMakingStrategy
from mmbot.core.rounding import to_decimal
from mmbot.core.types import Side

_HUNDRED = Decimal(100)


@dataclass(frozen=True)
class Ladder:
    """Target prices for both sides, derived from one mid price."""
    mid: Decimal
    buy: Tuple[Decimal, ...]
    sell: Tuple[Decimal, ...]

    def side(self, side: Side) -> Tuple[Decimal, ...]:
        return self.buy if side == Side.BUY else self.sell

    def price_at(self, side: Side, level_index: int) -> Decimal | None:
        prices = self.side(side)
        if 0 <= level_index < len(prices):
            return prices[level_index]
        return None


def generate_ladder(
    mid_price,
    side: Side,
    level_distance_pct,
    level_count: int,
    max_levels: int,
) -> Tuple[Decimal, ...]:
    """
    Build the rung prices for one side.

    BUY rung k sits at mid * (1 - d/100 * (k+1)), SELL rung k at
    mid * (1 + d/100 * (k+1)). level_count is clamped to max_levels. BUY rungs
    that would reach zero or below are not emitted.

    Raises:
        ValueError: mid_price <= 0 or level_distance_pct <= 0
    """
    mid = to_decimal(mid_price)
    distance = to_decimal(level_distance_pct)
    if mid <= 0:
        raise ValueError(f"mid_price must be > 0, got {mid}")
    if distance <= 0:
        raise ValueError(f"level_distance_pct must be > 0, got {distance}")

    count = max(0, min(int(level_count), int(max_levels)))
    step = distance / _HUNDRED
    prices = []
    for k in range(count):
        offset = step * (k + 1)
        if side == Side.BUY:
            price = mid * (1 - offset)
            if price <= 0:
                break
        else:
            price = mid * (1 + offset)
        prices.append(price)
    return tuple(prices)


def orders_needed(strategy: MarketMakingStrategy, max_orders: int) -> Tuple[int, int]:
    """Return (buy_count, sell_count) the strategy wants resting on the book."""
    max_orders = max(0, int(max_orders))
    if strategy == MarketMakingStrategy.BALANCED:
        return max_orders, max_orders
    if strategy == MarketMakingStrategy.BUY_ONLY:
        return max_orders, 0
    if strategy == MarketMakingStrategy.SELL_ONLY:
        return 0, max_orders
    if strategy == MarketMakingStrategy.ACCUMULATE:
        return (max_orders * 8) // 10, (max_orders * 2) // 10
    if strategy == MarketMakingStrategy.DISTRIBUTE:
        return (max_orders * 2) // 10, (max_orders * 8) // 10
    raise ValueError(f"unknown market making strategy: {strategy!r}")


def build_ladder(
    mid_price,
    level_distance_pct,
    levels: int,
    max_levels: int,
    strategy: MarketMakingStrategy = MarketMakingStrategy.BALANCED,
    max_orders: int | None = None,
) -> Ladder:
    """Both sides of the ladder, with per-side depth limited by the strategy's order mix."""
    mid = to_decimal(mid_price)
    buy_needed, sell_needed = orders_needed(strategy, levels if max_orders is None else max_orders)
    return Ladder(
        mid=mid,
        buy=generate_ladder(mid, Side.BUY, level_distance_pct, min(levels, buy_needed), max_levels),
        sell=generate_ladder(mid, Side.SELL, level_distance_pct, min(levels, sell_needed), max_levels),
    )
