"""
Orchestrator package.

TradingEngine owns the per-pair loop and control surface. MarketMakingEngine
and VolumeBoosterEngine implement one cycle each.
"""

from mmbot.orchestrator.market_maker import MarketMakingEngine
from mmbot.orchestrator.scheduler import CycleAction, CycleResult, TradingEngine
from mmbot.orchestrator.volume_booster import VolumeBoosterEngine

__all__ = [
    "CycleAction",
    "CycleResult",
    "TradingEngine",
    "MarketMakingEngine",
    "VolumeBoosterEngine",
]
