"""
PaperExchange: an in-memory exchange implementing both collaborator roles.

Used for monitoring-mode wiring when no credentials are configured, and by
the test-suite. Supports:
- settable bid/ask per pair
- fault injection per operation (price, open_orders, place, cancel)
- the symbol's minimum quantity and notional, rejected like the exchange does
- external events: fills, cancels and foreign orders appearing on the book
"""

from __future__ import annotations

import itertools
import logging
from collections import defaultdict, deque
from decimal import Decimal
from typing import Deque, Dict, List, Optional, Tuple

from mmbot.core.errors import GatewayError, OrderNotFound, PriceUnavailable
from mmbot.core.rounding import to_decimal
from mmbot.core.types import PriceSnapshot, RemoteOrder, Side
from mmbot.gateway.symbols import SymbolSpec, spec_for
from mmbot.infra.logging_cfg import log_event

log = logging.getLogger("mmbot")

OPERATIONS = ("price", "open_orders", "place", "cancel")
# MEXC: "minimum transaction volume cannot be less than"
MIN_SIZE_CODE = 30002


class PaperExchange:
    """In-memory order book per pair. Nothing ever matches unless told to."""

    def __init__(
        self,
        prices: Optional[Dict[str, Tuple[object, object]]] = None,
        specs: Optional[Dict[str, SymbolSpec]] = None,
        id_prefix: str = "paper",
    ) -> None:
        self._prices: Dict[str, PriceSnapshot] = {}
        self._specs = specs
        self._id_prefix = id_prefix
        self._seq = itertools.count(1)
        self.books: Dict[str, Dict[str, RemoteOrder]] = defaultdict(dict)
        self.trades: List[Tuple[str, RemoteOrder]] = []
        self.fills: List[Tuple[str, RemoteOrder]] = []
        self.cancelled: List[Tuple[str, str]] = []
        self.calls: List[Tuple[str, str]] = []
        self._faults: Dict[str, Deque[BaseException]] = defaultdict(deque)
        self.closed = False
        for pair, (bid, ask) in (prices or {}).items():
            self.set_price(pair, bid, ask)

    # --- test / simulation controls ----------------------------------------

    def set_price(self, pair: str, bid, ask) -> None:
        self._prices[pair] = PriceSnapshot(bid=to_decimal(bid), ask=to_decimal(ask))

    def clear_price(self, pair: str) -> None:
        self._prices.pop(pair, None)

    def inject_fault(self, op: str, exc: Optional[BaseException] = None, times: int = 1) -> None:
        """Make the next `times` calls of `op` raise `exc` (a GatewayError by default)."""
        if op not in OPERATIONS:
            raise ValueError(f"unknown operation {op!r}, expected one of {OPERATIONS}")
        for _ in range(times):
            self._faults[op].append(exc if exc is not None else GatewayError(f"injected {op} failure"))

    def clear_faults(self) -> None:
        self._faults.clear()

    def fill_order(self, pair: str, order_id: str) -> RemoteOrder:
        """Simulate a fill: the order leaves the book."""
        order = self.books[pair].pop(order_id)
        self.fills.append((pair, order))
        return order

    def cancel_externally(self, pair: str, order_id: str) -> RemoteOrder:
        """Simulate a cancel from outside the engine (UI, another process)."""
        order = self.books[pair].pop(order_id)
        self.cancelled.append((pair, order_id))
        return order

    def add_external_order(self, pair: str, side: Side, price, quantity) -> RemoteOrder:
        """Put an order on the book that no engine placed."""
        order = RemoteOrder(id=self._next_id("ext"), side=side, price=to_decimal(price), quantity=to_decimal(quantity))
        self.books[pair][order.id] = order
        return order

    def open_order_ids(self, pair: str) -> set[str]:
        return set(self.books[pair])

    def call_count(self, op: str) -> int:
        return sum(1 for name, _ in self.calls if name == op)

    # --- collaborator protocol ---------------------------------------------

    def _next_id(self, prefix: Optional[str] = None) -> str:
        return f"{prefix or self._id_prefix}-{next(self._seq)}"

    def _maybe_fail(self, op: str) -> None:
        faults = self._faults.get(op)
        if faults:
            raise faults.popleft()

    def _check_minimums(self, pair: str, price: Decimal, quantity: Decimal) -> None:
        reason = spec_for(pair, self._specs).order_rejection(price, quantity)
        if reason is not None:
            raise GatewayError(f"order rejected: {reason}", code=MIN_SIZE_CODE, retryable=False)

    async def get_mid_price(self, pair: str) -> PriceSnapshot:
        self.calls.append(("price", pair))
        self._maybe_fail("price")
        snap = self._prices.get(pair)
        if snap is None:
            raise PriceUnavailable(pair, "no price set")
        if snap.bid <= 0 or snap.ask <= 0 or snap.ask < snap.bid:
            raise PriceUnavailable(pair, f"invalid book bid={snap.bid} ask={snap.ask}")
        return snap

    async def get_open_orders(self, pair: str) -> List[RemoteOrder]:
        self.calls.append(("open_orders", pair))
        self._maybe_fail("open_orders")
        return list(self.books[pair].values())

    async def place_order(self, pair: str, side: Side, price: Optional[str], quantity: str) -> RemoteOrder:
        self.calls.append(("place", pair))
        self._maybe_fail("place")
        qty = to_decimal(quantity)
        if qty <= 0:
            raise GatewayError(f"invalid quantity {quantity}", retryable=False)
        if price is None:
            snap = self._prices.get(pair)
            if snap is None:
                raise GatewayError("no liquidity for market order", retryable=True)
            fill_px = snap.ask if side == Side.BUY else snap.bid
            self._check_minimums(pair, fill_px, qty)
            order = RemoteOrder(id=self._next_id(), side=side, price=fill_px, quantity=qty, filled_quantity=qty)
            self.trades.append((pair, order))
            log_event(log, "paper_market_fill", level=logging.DEBUG, pair=pair, side=side.value, price=str(fill_px), quantity=quantity)
            return order
        px = to_decimal(price)
        if px <= 0:
            raise GatewayError(f"invalid price {price}", retryable=False)
        self._check_minimums(pair, px, qty)
        order = RemoteOrder(id=self._next_id(), side=side, price=px, quantity=qty)
        self.books[pair][order.id] = order
        return order

    async def cancel_order(self, pair: str, order_id: str) -> None:
        self.calls.append(("cancel", pair))
        self._maybe_fail("cancel")
        if order_id not in self.books[pair]:
            raise OrderNotFound(order_id, code=-2011)
        del self.books[pair][order_id]
        self.cancelled.append((pair, order_id))

    def format_price(self, pair: str, price: Decimal) -> str:
        return spec_for(pair, self._specs).format_price(price)

    def format_quantity(self, pair: str, quantity: Decimal) -> str:
        return spec_for(pair, self._specs).format_quantity(quantity)

    async def close(self) -> None:
        self.closed = True
