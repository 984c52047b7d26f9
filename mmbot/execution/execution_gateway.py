"""
ExecutionGateway: order execution for one pair.

Wraps the raw OrderGateway collaborator with the bookkeeping the engines
need around every call:
- price/quantity formatting through the gateway's precision rules
- registration and removal in the tracked book
- structured event logging and metrics
- translation of gateway failures into result objects, so one failed order
  never aborts the rest of a cycle

Only GatewayError (and timeouts) are translated. Anything else is a bug and
propagates to the engine's loop boundary.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, List, Optional, TYPE_CHECKING

from mmbot.core.errors import GatewayError, OrderNotFound
from mmbot.core.types import RemoteOrder, Side, TrackedOrder
from mmbot.infra.logging_cfg import log_event

if TYPE_CHECKING:
    from mmbot.execution.order_manager import OrderManager
    from mmbot.gateway.base import OrderGateway
    from mmbot.monitoring.metrics_rich import EngineMetrics

log = logging.getLogger("mmbot")


@dataclass
class SubmitResult:
    """
    Result of order submission.

    retryable is False when the gateway said resending would fail the same
    way (balance, minimum size, credentials).
    """
    success: bool
    order_id: Optional[str] = None
    order: Optional[TrackedOrder] = None
    remote: Optional[RemoteOrder] = None
    error: Optional[str] = None
    code: Optional[int] = None
    retryable: bool = True
    filled_quantity: Decimal = Decimal(0)


@dataclass
class CancelResult:
    """
    Result of order cancellation.

    success means the order is no longer live: either cancelled now or
    already gone (order_gone=True, the exchange reported it unknown).
    """
    success: bool
    cancelled_count: int = 0
    errors: List[str] = field(default_factory=list)
    order_gone: bool = False


@dataclass
class ExecutionGatewayConfig:
    """Configuration for ExecutionGateway."""
    log_order_intent: bool = True
    log_event_callback: Optional[Callable[..., None]] = None


class ExecutionGateway:
    """
    Order placement and cancellation with tracked-book bookkeeping.

    Usage:
        execution = ExecutionGateway(pair, gateway, order_manager)
        result = await execution.submit_level(Side.BUY, 0, price, qty)
        if result.success:
            ...
    """

    def __init__(
        self,
        pair: str,
        gateway: "OrderGateway",
        order_manager: "OrderManager",
        metrics: Optional["EngineMetrics"] = None,
        config: Optional[ExecutionGatewayConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.pair = pair
        self.gateway = gateway
        self.order_manager = order_manager
        self.metrics = metrics
        self.config = config or ExecutionGatewayConfig()
        self._clock = clock
        self._log_event = self.config.log_event_callback or self._default_log

    def _default_log(self, event: str, level: int = logging.INFO, **kwargs: Any) -> None:
        log_event(log, event, level=level, pair=self.pair, **kwargs)

    # ========== Order Submission ==========

    async def submit_level(
        self,
        side: Side,
        level_index: int,
        price: Decimal,
        quantity: Decimal,
        mode: str = "ladder",
    ) -> SubmitResult:
        """
        Place a limit order for one ladder rung and track it.

        The tracked price/quantity are the formatted values actually sent.
        """
        px = self.gateway.format_price(self.pair, price)
        qty = self.gateway.format_quantity(self.pair, quantity)

        if self.config.log_order_intent:
            self._log_event("order_intent", side=side.value, level_index=level_index, price=px, quantity=qty, mode=mode)

        try:
            remote = await self.gateway.place_order(self.pair, side, px, qty)
        except (GatewayError, asyncio.TimeoutError) as exc:
            return self._submit_failed(exc, side=side, level_index=level_index, mode=mode)

        order = TrackedOrder(
            id=str(remote.id),
            side=side,
            price=Decimal(px),
            quantity=Decimal(qty),
            placed_at=self._clock(),
            level_index=level_index,
            meta={"mode": mode},
        )
        self.order_manager.register(order)

        if self.metrics is not None:
            self.metrics.orders_placed.labels(pair=self.pair, side=side.value).inc()
            self.metrics.tracked_orders.labels(pair=self.pair).set(self.order_manager.open_count())

        self._log_event(
            "order_placed",
            order_id=order.id,
            side=side.value,
            level_index=level_index,
            price=px,
            quantity=qty,
            mode=mode,
        )
        return SubmitResult(success=True, order_id=order.id, order=order, remote=remote)

    async def submit_trade(
        self,
        side: Side,
        quantity: Decimal,
        price: Optional[Decimal] = None,
        mode: str = "volume",
    ) -> SubmitResult:
        """
        Send a one-shot volume trade. Not tracked in the book.

        price=None sends a market order. filled_quantity on the result is what
        the exchange reported as executed; a limit order may rest unfilled.
        """
        px = self.gateway.format_price(self.pair, price) if price is not None else None
        qty = self.gateway.format_quantity(self.pair, quantity)
        try:
            remote = await self.gateway.place_order(self.pair, side, px, qty)
        except (GatewayError, asyncio.TimeoutError) as exc:
            return self._submit_failed(exc, side=side, mode=mode)

        self._log_event(
            "trade_executed" if remote.fully_filled else "trade_order_resting",
            order_id=str(remote.id),
            side=side.value,
            price=px if px is not None else "market",
            quantity=qty,
            filled=str(remote.filled_quantity),
            mode=mode,
        )
        return SubmitResult(
            success=True,
            order_id=str(remote.id),
            remote=remote,
            filled_quantity=remote.filled_quantity,
        )

    def _submit_failed(self, exc: BaseException, **context: Any) -> SubmitResult:
        code = getattr(exc, "code", None)
        retryable = getattr(exc, "retryable", True)
        err = str(exc) or type(exc).__name__
        ctx = {k: (v.value if isinstance(v, Side) else v) for k, v in context.items()}
        self._log_event("order_submit_error", error=err, code=code, retryable=retryable, **ctx)
        if self.metrics is not None:
            self.metrics.gateway_errors.labels(pair=self.pair, op="place").inc()
        return SubmitResult(success=False, error=err, code=code, retryable=retryable)

    # ========== Order Cancellation ==========

    async def cancel_tracked(self, order: TrackedOrder, reason: str = "") -> CancelResult:
        """
        Cancel one tracked order.

        OrderNotFound removes the order from the book like an orphan and
        reports success with order_gone=True. Any other gateway failure leaves
        the order tracked so the next cycle retries.
        """
        try:
            await self.gateway.cancel_order(self.pair, order.id)
        except OrderNotFound:
            self.order_manager.unindex(order)
            self._log_event(
                "order_gone",
                order_id=order.id,
                side=order.side.value,
                level_index=order.level_index,
                reason=reason or None,
            )
            if self.metrics is not None:
                self.metrics.orders_orphaned.labels(pair=self.pair).inc()
            return CancelResult(success=True, order_gone=True)
        except (GatewayError, asyncio.TimeoutError) as exc:
            err = str(exc) or type(exc).__name__
            self._log_event(
                "cancel_error",
                order_id=order.id,
                side=order.side.value,
                level_index=order.level_index,
                error=err,
                code=getattr(exc, "code", None),
                reason=reason or None,
            )
            if self.metrics is not None:
                self.metrics.cancel_failures.labels(pair=self.pair).inc()
                self.metrics.gateway_errors.labels(pair=self.pair, op="cancel").inc()
            return CancelResult(success=False, errors=[err])

        self.order_manager.unindex(order)
        if self.metrics is not None:
            self.metrics.orders_cancelled.labels(pair=self.pair, reason=reason or "none").inc()
            self.metrics.tracked_orders.labels(pair=self.pair).set(self.order_manager.open_count())
        self._log_event(
            "order_cancelled",
            order_id=order.id,
            side=order.side.value,
            level_index=order.level_index,
            price=str(order.price),
            reason=reason or None,
        )
        return CancelResult(success=True, cancelled_count=1)

    async def cancel_many(self, orders: List[TrackedOrder], reason: str = "") -> CancelResult:
        """Cancel orders one by one; failures are collected, not raised."""
        errors: List[str] = []
        cancelled = 0
        for order in orders:
            res = await self.cancel_tracked(order, reason)
            if res.success:
                cancelled += 1
            else:
                errors.extend(f"{order.id}: {e}" for e in res.errors)
        return CancelResult(success=not errors, cancelled_count=cancelled, errors=errors)

    async def cancel_all(self, reason: str = "") -> CancelResult:
        """Cancel every tracked order. Untracked remote orders are never touched."""
        orders = self.order_manager.all_orders()
        self._log_event("cancel_all_start", open_orders=len(orders), reason=reason or None)
        result = await self.cancel_many(orders, reason)
        self._log_event(
            "cancel_all_complete",
            cancelled=result.cancelled_count,
            errors=len(result.errors),
            reason=reason or None,
        )
        return result
