"""
Shared value types: sides, price snapshots, tracked and remote orders.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict


class Side(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

    @property
    def opposite(self) -> "Side":
        return Side.SELL if self is Side.BUY else Side.BUY

    @classmethod
    def parse(cls, raw: Any) -> "Side":
        """Accept 'buy', 'BUY', 'b', 'Bid' and friends. Anything else raises ValueError."""
        if isinstance(raw, Side):
            return raw
        key = str(raw).strip().lower()
        if key in _BUY_ALIASES:
            return cls.BUY
        if key in _SELL_ALIASES:
            return cls.SELL
        raise ValueError(f"unrecognized order side {raw!r}")


_BUY_ALIASES = frozenset({"buy", "b", "bid"})
_SELL_ALIASES = frozenset({"sell", "s", "ask"})


@dataclass(frozen=True)
class PriceSnapshot:
    """Best bid/ask for one pair at one moment."""
    bid: Decimal
    ask: Decimal

    @property
    def mid(self) -> Decimal:
        return (self.bid + self.ask) / 2

    @property
    def spread(self) -> Decimal:
        return self.ask - self.bid

    @property
    def spread_pct(self) -> Decimal:
        """Spread as a percentage of the bid."""
        if self.bid <= 0:
            return Decimal(0)
        return self.spread / self.bid * 100


@dataclass(frozen=True)
class RemoteOrder:
    """
    Order as reported by the exchange.

    filled_quantity is what had executed when the exchange answered; for a
    resting limit order that is usually zero.
    """
    id: str
    side: Side
    price: Decimal
    quantity: Decimal
    filled_quantity: Decimal = Decimal(0)

    @property
    def fully_filled(self) -> bool:
        return self.filled_quantity >= self.quantity


@dataclass
class TrackedOrder:
    """An order the engine placed and believes is live."""
    id: str
    side: Side
    price: Decimal
    quantity: Decimal
    placed_at: float
    level_index: int
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def slot(self) -> tuple[Side, int]:
        return (self.side, self.level_index)

    def age(self, now: float) -> float:
        return now - self.placed_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "side": self.side.value,
            "price": str(self.price),
            "quantity": str(self.quantity),
            "placed_at": self.placed_at,
            "level_index": self.level_index,
        }
