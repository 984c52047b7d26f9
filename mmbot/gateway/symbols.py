"""Per-symbol precision and minimum-order rules used to format and vet orders for the wire."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional

from mmbot.core.rounding import quantize_places, to_decimal


@dataclass(frozen=True)
class SymbolSpec:
    price_precision: int = 6
    quantity_precision: int = 2
    min_quantity: Decimal = Decimal("0")
    min_notional: Decimal = Decimal("0")

    def format_price(self, price) -> str:
        return f"{quantize_places(to_decimal(price), self.price_precision):f}"

    def format_quantity(self, quantity) -> str:
        return f"{quantize_places(to_decimal(quantity), self.quantity_precision):f}"

    def order_rejection(self, price, quantity) -> Optional[str]:
        """Reason the exchange would refuse this order size, or None if it passes."""
        qty = to_decimal(quantity)
        if qty < self.min_quantity:
            return f"quantity {qty} below minimum {self.min_quantity}"
        if price is not None:
            notional = to_decimal(price) * qty
            if notional < self.min_notional:
                return f"notional {notional} below minimum {self.min_notional}"
        return None


# ILMT: 2 decimals on quantity, 6 on price, 150 minimum, 1 USDT minimum notional
DEFAULT_SPECS: Dict[str, SymbolSpec] = {
    "ILMTUSDT": SymbolSpec(price_precision=6, quantity_precision=2, min_quantity=Decimal("150"), min_notional=Decimal("1")),
}

FALLBACK_SPEC = SymbolSpec(price_precision=8, quantity_precision=8)


def spec_for(pair: str, specs: Dict[str, SymbolSpec] | None = None) -> SymbolSpec:
    table = DEFAULT_SPECS if specs is None else specs
    return table.get(pair.upper(), FALLBACK_SPEC)
