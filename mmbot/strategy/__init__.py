"""
Strategy package - pure decision logic.

Ladder generation for market making, reprice selection, and the volume
strategy selector. Nothing in here performs I/O.
"""

from mmbot.strategy.ladder import Ladder, build_ladder, generate_ladder, orders_needed
from mmbot.strategy.rebalance import deviation, select_for_reprice
from mmbot.strategy.volume import (
    SIDE_SELECTORS,
    BURST_WIDE_SPREAD_PCT,
    BurstState,
    StrategyState,
    TradeDecision,
    burst_blocked_by_spread,
    decide_next_trade,
    enforce_consecutive_limit,
    plan_burst,
    record_executed,
    record_skipped,
)

__all__ = [
    "Ladder",
    "build_ladder",
    "generate_ladder",
    "orders_needed",
    "deviation",
    "select_for_reprice",
    "SIDE_SELECTORS",
    "BURST_WIDE_SPREAD_PCT",
    "BurstState",
    "StrategyState",
    "TradeDecision",
    "burst_blocked_by_spread",
    "decide_next_trade",
    "enforce_consecutive_limit",
    "plan_burst",
    "record_executed",
    "record_skipped",
]
