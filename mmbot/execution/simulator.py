"""
MonitoringSimulator: the monitoring-mode sink for order actions.

When an engine runs with monitoring_mode set, every action it would send to
the exchange is routed here instead. Nothing reaches the gateway; the
simulator only records what would have happened, priced against the real
snapshot, and exposes running totals for status output.
"""

from __future__ import annotations

import itertools
import logging
import time
from collections import deque
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Deque, Dict, Optional

from mmbot.core.types import PriceSnapshot, Side
from mmbot.infra.logging_cfg import log_event

log = logging.getLogger("mmbot")


@dataclass(frozen=True)
class SimulatedAction:
    id: str
    kind: str  # place | cancel | trade
    side: Side
    quantity: Decimal
    price: Decimal
    at: float
    level_index: Optional[int] = None

    @property
    def notional(self) -> Decimal:
        return self.quantity * self.price

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "side": self.side.value,
            "quantity": str(self.quantity),
            "price": str(self.price),
            "notional": str(self.notional),
            "level": self.level_index,
            "at": self.at,
        }


class MonitoringSimulator:
    """Records simulated placements, cancels and trades for one pair."""

    def __init__(
        self,
        pair: str,
        history: int = 50,
        clock: Callable[[], float] = time.time,
        log_event_callback: Optional[Callable[..., None]] = None,
    ) -> None:
        self.pair = pair
        self._clock = clock
        self._seq = itertools.count(1)
        self.recent: Deque[SimulatedAction] = deque(maxlen=history)
        self.placements = 0
        self.cancels = 0
        self.trades = 0
        self.volume = Decimal(0)
        self.notional = Decimal(0)
        self.last_trade_at: Optional[float] = None
        self._log_event = log_event_callback or self._default_log

    def _default_log(self, event: str, level: int = logging.INFO, **kwargs: Any) -> None:
        log_event(log, event, level=level, pair=self.pair, simulation=True, **kwargs)

    def _next_id(self) -> str:
        return f"sim-{self.pair}-{next(self._seq)}"

    def _record(self, action: SimulatedAction) -> SimulatedAction:
        self.recent.append(action)
        return action

    def simulate_placement(self, side: Side, level_index: int, price: Decimal, quantity: Decimal) -> SimulatedAction:
        action = self._record(SimulatedAction(
            id=self._next_id(),
            kind="place",
            side=side,
            quantity=quantity,
            price=price,
            at=self._clock(),
            level_index=level_index,
        ))
        self.placements += 1
        self._log_event("sim_order_placed", side=side.value, level_index=level_index, price=str(price), quantity=str(quantity))
        return action

    def simulate_cancel(self, side: Side, level_index: int, price: Decimal, quantity: Decimal, reason: str = "") -> SimulatedAction:
        action = self._record(SimulatedAction(
            id=self._next_id(),
            kind="cancel",
            side=side,
            quantity=quantity,
            price=price,
            at=self._clock(),
            level_index=level_index,
        ))
        self.cancels += 1
        self._log_event("sim_order_cancelled", side=side.value, level_index=level_index, price=str(price), reason=reason or None)
        return action

    def simulate_trade(self, side: Side, quantity: Decimal, snapshot: PriceSnapshot, price: Optional[Decimal] = None) -> SimulatedAction:
        """
        Record a volume trade. Market orders (price=None) fill at the touch:
        BUY at ask, SELL at bid.
        """
        if price is None:
            price = snapshot.ask if side == Side.BUY else snapshot.bid
        action = self._record(SimulatedAction(
            id=self._next_id(),
            kind="trade",
            side=side,
            quantity=quantity,
            price=price,
            at=self._clock(),
        ))
        self.trades += 1
        self.volume += quantity
        self.notional += action.notional
        self.last_trade_at = action.at
        self._log_event(
            "sim_trade_executed",
            side=side.value,
            quantity=str(quantity),
            price=str(price),
            notional=str(action.notional),
            total_volume=str(self.volume),
            total_trades=self.trades,
        )
        return action

    def to_dict(self) -> Dict[str, Any]:
        return {
            "placements": self.placements,
            "cancels": self.cancels,
            "trades": self.trades,
            "volume": str(self.volume),
            "notional": str(self.notional),
            "last_trade_at": self.last_trade_at,
            "recent": [a.to_dict() for a in list(self.recent)[-10:]],
        }
