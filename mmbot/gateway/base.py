"""
Collaborator contracts the engines are written against.

Engines only ever see these protocols; PaperExchange and MexcGateway are two
implementations. Any object with matching async methods works.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional, Protocol, runtime_checkable

from mmbot.core.types import PriceSnapshot, RemoteOrder, Side


@runtime_checkable
class PriceProvider(Protocol):
    async def get_mid_price(self, pair: str) -> PriceSnapshot:
        """Best bid/ask. Raises PriceUnavailable."""
        ...


@runtime_checkable
class OrderGateway(Protocol):
    async def get_open_orders(self, pair: str) -> List[RemoteOrder]:
        """Authoritative open orders for the pair. Raises GatewayError."""
        ...

    async def place_order(self, pair: str, side: Side, price: Optional[str], quantity: str) -> RemoteOrder:
        """Place a limit order, or a market order when price is None. Raises GatewayError."""
        ...

    async def cancel_order(self, pair: str, order_id: str) -> None:
        """Raises OrderNotFound if the order is already gone, GatewayError otherwise."""
        ...

    def format_price(self, pair: str, price: Decimal) -> str:
        ...

    def format_quantity(self, pair: str, quantity: Decimal) -> str:
        ...


@runtime_checkable
class ExchangeGateway(PriceProvider, OrderGateway, Protocol):
    """Both collaborator roles in one object, as every shipped adapter provides."""

    async def close(self) -> None:
        ...
