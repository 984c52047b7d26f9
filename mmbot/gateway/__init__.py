"""
Exchange adapters.

- base: the PriceProvider / OrderGateway protocols engines depend on
- paper: in-memory exchange for monitoring mode and tests
- mexc: MEXC spot REST adapter over httpx
"""

from mmbot.gateway.base import ExchangeGateway, OrderGateway, PriceProvider
from mmbot.gateway.mexc import MexcGateway, map_error, sign_query
from mmbot.gateway.paper import PaperExchange
from mmbot.gateway.symbols import DEFAULT_SPECS, SymbolSpec, spec_for

__all__ = [
    "ExchangeGateway",
    "OrderGateway",
    "PriceProvider",
    "MexcGateway",
    "map_error",
    "sign_query",
    "PaperExchange",
    "DEFAULT_SPECS",
    "SymbolSpec",
    "spec_for",
]
