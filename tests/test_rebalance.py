"""Unit tests for reprice selection."""

from decimal import Decimal

import pytest

from mmbot.core.types import Side, TrackedOrder
from mmbot.strategy.rebalance import deviation, select_for_reprice

NOW = 1_700_000_000.0
MID = Decimal("0.010001")


def _order(price, age, side=Side.SELL, oid="o-1", level_index=0):
    return TrackedOrder(
        id=oid,
        side=side,
        price=Decimal(price),
        quantity=Decimal("200"),
        placed_at=NOW - age,
        level_index=level_index,
    )


class TestSelectForReprice:
    def test_drifted_and_old_is_selected(self):
        """A 5% drift on a 300s old order exceeds a 2% threshold."""
        order = _order("0.010511", age=300)
        assert select_for_reprice([order], MID, Decimal("2"), 120, NOW) == [order]

    def test_recent_order_is_kept(self):
        """The age guard holds a 30s old order even when it drifted."""
        order = _order("0.010511", age=30)
        assert select_for_reprice([order], MID, Decimal("2"), 120, NOW) == []

    def test_within_threshold_is_kept(self):
        order = _order("0.010511", age=300)
        assert select_for_reprice([order], MID, Decimal("10"), 120, NOW) == []

    def test_threshold_is_strict(self):
        """Exactly at the threshold is not far enough."""
        order = _order("102", age=300)
        assert select_for_reprice([order], Decimal("100"), Decimal("2"), 120, NOW) == []

    def test_age_exactly_at_guard_is_eligible(self):
        order = _order("0.010511", age=120)
        assert select_for_reprice([order], MID, Decimal("2"), 120, NOW) == [order]

    def test_fresh_reprice_not_selected_again(self):
        """An order repriced to the ladder is not picked on the next tick nor later at the same mid."""
        repriced = _order("0.010051", age=0)
        assert select_for_reprice([repriced], MID, Decimal("2"), 120, NOW) == []
        assert select_for_reprice([repriced], MID, Decimal("2"), 120, NOW + 300) == []

    def test_input_order_preserved_and_orders_untouched(self):
        a = _order("0.009000", age=500, side=Side.BUY, oid="a")
        b = _order("0.010051", age=500, oid="b")
        c = _order("0.011000", age=500, oid="c", level_index=1)
        before = [o.to_dict() for o in (a, b, c)]
        assert select_for_reprice([a, b, c], MID, Decimal("2"), 120, NOW) == [a, c]
        assert [o.to_dict() for o in (a, b, c)] == before

    def test_non_positive_mid_raises(self):
        with pytest.raises(ValueError):
            select_for_reprice([_order("1", age=300)], Decimal("0"), Decimal("2"), 120, NOW)


def test_deviation_is_symmetric():
    assert deviation(Decimal("98"), Decimal("100")) == deviation(Decimal("102"), Decimal("100")) == Decimal("0.02")
