"""Unit tests for ladder generation."""

from decimal import Decimal

import pytest

from mmbot.core.enums import MarketMakingStrategy
from mmbot.core.types import Side
from mmbot.strategy.ladder import build_ladder, generate_ladder, orders_needed


class TestGenerateLadder:
    def test_buy_rungs_below_mid(self):
        """BUY rung k sits at mid * (1 - d * (k+1))."""
        prices = generate_ladder(Decimal("1"), Side.BUY, Decimal("1"), 3, 20)
        assert prices == (Decimal("0.99"), Decimal("0.98"), Decimal("0.97"))

    def test_sell_rungs_above_mid(self):
        prices = generate_ladder(Decimal("1"), Side.SELL, Decimal("1"), 3, 20)
        assert prices == (Decimal("1.01"), Decimal("1.02"), Decimal("1.03"))

    def test_monotonic_and_on_correct_side(self):
        """Rungs move strictly away from mid and never cross it."""
        mid = Decimal("0.010001")
        buy = generate_ladder(mid, Side.BUY, Decimal("0.5"), 10, 20)
        sell = generate_ladder(mid, Side.SELL, Decimal("0.5"), 10, 20)
        assert all(a > b for a, b in zip(buy, buy[1:]))
        assert all(a < b for a, b in zip(sell, sell[1:]))
        assert all(p < mid for p in buy)
        assert all(p > mid for p in sell)

    def test_count_clamped_to_max_levels(self):
        assert len(generate_ladder(Decimal("1"), Side.SELL, Decimal("0.1"), 50, 20)) == 20

    def test_zero_levels_is_empty(self):
        assert generate_ladder(Decimal("1"), Side.BUY, Decimal("1"), 0, 20) == ()

    def test_buy_side_stops_before_zero(self):
        """Wide spacing truncates BUY rungs that would be non-positive."""
        prices = generate_ladder(Decimal("1"), Side.BUY, Decimal("30"), 5, 20)
        assert prices == (Decimal("0.7"), Decimal("0.4"), Decimal("0.1"))

    def test_float_inputs_are_exact(self):
        """Floats go through str() so 0.5% of 0.010001 is computed exactly."""
        (price,) = generate_ladder(0.010001, Side.SELL, 0.5, 1, 20)
        assert price == Decimal("0.010051005")

    @pytest.mark.parametrize("mid,distance", [(Decimal("0"), Decimal("1")), (Decimal("-1"), Decimal("1")), (Decimal("1"), Decimal("0"))])
    def test_invalid_inputs_raise(self, mid, distance):
        with pytest.raises(ValueError):
            generate_ladder(mid, Side.BUY, distance, 3, 20)


class TestOrdersNeeded:
    @pytest.mark.parametrize("strategy,expected", [
        (MarketMakingStrategy.BALANCED, (10, 10)),
        (MarketMakingStrategy.BUY_ONLY, (10, 0)),
        (MarketMakingStrategy.SELL_ONLY, (0, 10)),
        (MarketMakingStrategy.ACCUMULATE, (8, 2)),
        (MarketMakingStrategy.DISTRIBUTE, (2, 8)),
    ])
    def test_order_mix(self, strategy, expected):
        assert orders_needed(strategy, 10) == expected

    def test_mix_rounds_down(self):
        assert orders_needed(MarketMakingStrategy.ACCUMULATE, 3) == (2, 0)


class TestBuildLadder:
    def test_sell_only_has_no_buy_side(self):
        ladder = build_ladder(Decimal("1"), Decimal("1"), 3, 20, strategy=MarketMakingStrategy.SELL_ONLY, max_orders=3)
        assert ladder.buy == ()
        assert len(ladder.sell) == 3

    def test_depth_limited_by_levels(self):
        """max_orders above levels never adds rungs."""
        ladder = build_ladder(Decimal("1"), Decimal("1"), 2, 20, max_orders=10)
        assert len(ladder.buy) == 2
        assert len(ladder.sell) == 2

    def test_price_at(self):
        ladder = build_ladder(Decimal("1"), Decimal("1"), 2, 20)
        assert ladder.price_at(Side.SELL, 1) == Decimal("1.02")
        assert ladder.price_at(Side.SELL, 2) is None
        assert ladder.price_at(Side.BUY, -1) is None
