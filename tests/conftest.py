"""Shared fixtures: an in-memory exchange, a controllable clock, seeded randomness."""

import random
from decimal import Decimal

import pytest

from mmbot.config.config import MarketMakingConfig, VolumeBoosterConfig
from mmbot.core.enums import MarketMakingStrategy, VolumeStrategy
from mmbot.gateway.paper import PaperExchange

PAIR = "ILMTUSDT"
START = 1_700_000_000.0


class FakeClock:
    """Wall clock the test moves by hand."""

    def __init__(self, now: float = START):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def pair():
    return PAIR


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def paper():
    return PaperExchange(prices={PAIR: ("0.010001", "0.010001")})


@pytest.fixture
def mm_config():
    """Live (non-monitoring) ladder, one rung per side."""
    return MarketMakingConfig(
        enabled=True,
        monitoring_mode=False,
        strategy=MarketMakingStrategy.BALANCED,
        order_size=Decimal("200"),
        max_orders=1,
        levels=1,
        level_distance_pct=Decimal("0.5"),
        max_rebalance_distance_pct=Decimal("2"),
        min_rebalance_age_sec=120,
        refresh_interval_sec=30,
    )


@pytest.fixture
def vb_config():
    return VolumeBoosterConfig(
        enabled=True,
        monitoring_mode=False,
        strategy=VolumeStrategy.BALANCED,
        min_trade_size=Decimal("150"),
        max_trade_size=Decimal("300"),
        size_step=Decimal("1"),
        cycle_interval_min_sec=60,
        cycle_interval_max_sec=300,
    )
