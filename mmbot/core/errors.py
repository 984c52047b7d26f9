"""
Error taxonomy for the engine.

PriceUnavailable and GatewayError are transient: the cycle that hit them is
skipped or the failed order is retried next cycle. OrderNotFound is the
exchange telling us an order is already gone, which is a normal lifecycle
event. ConfigInvalid is fatal and raised before any gateway call is made.
"""

from __future__ import annotations

from typing import Any, Optional


class EngineError(Exception):
    """Base class for all engine errors."""


class PriceUnavailable(EngineError):
    """Price snapshot could not be obtained (network, empty book, bad payload)."""

    def __init__(self, pair: str, reason: str = "") -> None:
        self.pair = pair
        self.reason = reason
        super().__init__(f"price unavailable for {pair}: {reason}" if reason else f"price unavailable for {pair}")


class GatewayError(EngineError):
    """Order gateway call failed. Timeouts belong to this class too."""

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        status: Optional[int] = None,
        retryable: bool = True,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status = status
        self.retryable = retryable
        self.payload = payload


class OrderNotFound(GatewayError):
    """Cancel/query target does not exist on the exchange (filled, expired or cancelled elsewhere)."""

    def __init__(self, order_id: str, message: str = "unknown order", code: Optional[int] = None) -> None:
        super().__init__(message, code=code, retryable=False)
        self.order_id = order_id


class ConfigInvalid(EngineError, ValueError):
    """Configuration rejected at start() or update_config()."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")
