"""
Closed sets of strategy tags.
"""

from __future__ import annotations

from enum import Enum


class MarketMakingStrategy(str, Enum):
    BALANCED = "BALANCED"        # full ladder on both sides
    BUY_ONLY = "BUY_ONLY"
    SELL_ONLY = "SELL_ONLY"
    ACCUMULATE = "ACCUMULATE"    # 80% of rungs on the bid
    DISTRIBUTE = "DISTRIBUTE"    # 80% of rungs on the ask


class VolumeStrategy(str, Enum):
    RANDOM = "RANDOM"
    BALANCED = "BALANCED"
    SMART_SPREAD = "SMART_SPREAD"
    BUY_HEAVY = "BUY_HEAVY"
    SELL_HEAVY = "SELL_HEAVY"
    ALTERNATING = "ALTERNATING"
    HIGH_VOLUME_BURST = "HIGH_VOLUME_BURST"
