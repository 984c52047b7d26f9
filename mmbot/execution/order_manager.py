"""
OrderManager: the tracked order book for one pair.

Two indices over the same TrackedOrder records:
- orders_by_id: exchange order id -> order
- orders_by_slot: (side, level_index) -> order

At most one order occupies a slot. Every mutation updates both indices
together so lookups never see a half-registered order.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from mmbot.core.types import Side, TrackedOrder

log = logging.getLogger("mmbot")

Slot = Tuple[Side, int]


class SlotOccupied(ValueError):
    """Registering into a (side, level_index) that already holds a different order."""


class OrderManager:
    """Per-pair registry of orders the engine believes are live."""

    def __init__(self) -> None:
        self.orders_by_id: Dict[str, TrackedOrder] = {}
        self.orders_by_slot: Dict[Slot, TrackedOrder] = {}

    def register(self, order: TrackedOrder) -> TrackedOrder:
        """
        Add an order to both indices.

        Re-registering the same id moves it to its (possibly new) slot.
        Raises SlotOccupied if another order already holds the slot.
        """
        current = self.orders_by_slot.get(order.slot)
        if current is not None and current.id != order.id:
            raise SlotOccupied(
                f"slot {order.side.value}:{order.level_index} already held by {current.id}"
            )
        existing = self.orders_by_id.get(order.id)
        if existing is not None:
            self._unindex(existing)
        self.orders_by_id[order.id] = order
        self.orders_by_slot[order.slot] = order
        return order

    def get(self, order_id: str) -> Optional[TrackedOrder]:
        return self.orders_by_id.get(order_id)

    def at_slot(self, side: Side, level_index: int) -> Optional[TrackedOrder]:
        return self.orders_by_slot.get((side, level_index))

    def pop(self, order_id: str) -> Optional[TrackedOrder]:
        """Remove and return an order by id; None if it was not tracked."""
        rec = self.orders_by_id.get(order_id)
        if rec is not None:
            self._unindex(rec)
        return rec

    def pop_many(self, order_ids: Iterable[str]) -> List[TrackedOrder]:
        removed = []
        for oid in order_ids:
            rec = self.pop(oid)
            if rec is not None:
                removed.append(rec)
        return removed

    def unindex(self, rec: TrackedOrder) -> None:
        """Public method to remove order from all indices."""
        self._unindex(rec)

    def _unindex(self, rec: TrackedOrder) -> None:
        self.orders_by_id.pop(rec.id, None)
        slot_holder = self.orders_by_slot.get(rec.slot)
        if slot_holder is rec or (slot_holder is not None and slot_holder.id == rec.id):
            self.orders_by_slot.pop(rec.slot, None)

    def clear(self) -> None:
        self.orders_by_id.clear()
        self.orders_by_slot.clear()

    def ids(self) -> set[str]:
        return set(self.orders_by_id)

    def open_count(self) -> int:
        return len(self.orders_by_id)

    def __len__(self) -> int:
        return len(self.orders_by_id)

    def __contains__(self, order_id: object) -> bool:
        return order_id in self.orders_by_id

    def all_orders(self) -> List[TrackedOrder]:
        """All tracked orders, sorted by side then level."""
        return sorted(self.orders_by_id.values(), key=lambda o: (o.side.value, o.level_index))

    def orders_by_side(self, side: Side) -> List[TrackedOrder]:
        return [o for o in self.all_orders() if o.side == side]

    def out_of_range(self, buy_levels: int, sell_levels: int) -> List[TrackedOrder]:
        """Orders whose level_index no longer exists on the current ladder."""
        limits = {Side.BUY: buy_levels, Side.SELL: sell_levels}
        return [o for o in self.all_orders() if o.level_index >= limits[o.side]]

    def snapshot(self) -> List[dict]:
        return [o.to_dict() for o in self.all_orders()]
