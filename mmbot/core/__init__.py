"""
Core value types, error taxonomy and decimal helpers.
"""

from mmbot.core.enums import MarketMakingStrategy, VolumeStrategy
from mmbot.core.errors import ConfigInvalid, EngineError, GatewayError, OrderNotFound, PriceUnavailable
from mmbot.core.rounding import quantize_places, quantize_step, to_decimal
from mmbot.core.types import PriceSnapshot, RemoteOrder, Side, TrackedOrder

__all__ = [
    "MarketMakingStrategy",
    "VolumeStrategy",
    "ConfigInvalid",
    "EngineError",
    "GatewayError",
    "OrderNotFound",
    "PriceUnavailable",
    "quantize_places",
    "quantize_step",
    "to_decimal",
    "PriceSnapshot",
    "RemoteOrder",
    "Side",
    "TrackedOrder",
]
