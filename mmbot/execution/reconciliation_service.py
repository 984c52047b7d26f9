"""
ReconciliationService: keep the tracked book consistent with the exchange.

The exchange's open-order list is authoritative. Each cycle the tracked ids
are partitioned against the remote ids:

- confirmed:  tracked and still open remotely
- orphaned:   tracked but gone remotely (filled, expired, cancelled
              elsewhere). Dropped silently; this is normal order lifecycle.
- unexpected: open remotely but never placed by this engine (manual orders,
              another bot, a placement whose response was lost). Logged and
              left alone; never cancelled.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, TYPE_CHECKING

from mmbot.core.errors import GatewayError
from mmbot.core.types import RemoteOrder, TrackedOrder
from mmbot.infra.logging_cfg import log_event

if TYPE_CHECKING:
    from mmbot.execution.order_manager import OrderManager
    from mmbot.gateway.base import OrderGateway
    from mmbot.monitoring.metrics_rich import EngineMetrics

log = logging.getLogger("mmbot")


@dataclass(frozen=True)
class ReconciliationResult:
    """Disjoint partition of tracked and remote order ids."""
    confirmed: FrozenSet[str]
    orphaned: FrozenSet[str]
    unexpected: FrozenSet[str]


def _ids(orders: Iterable[Any]) -> FrozenSet[str]:
    out = set()
    for o in orders:
        out.add(o if isinstance(o, str) else o.id)
    return frozenset(out)


def reconcile(tracked: Iterable[TrackedOrder | str], remote: Iterable[RemoteOrder | str]) -> ReconciliationResult:
    """
    Partition tracked vs remote ids. Accepts orders or bare ids on either side.

    confirmed | orphaned == tracked ids, confirmed | unexpected == remote ids,
    and the three sets are pairwise disjoint.
    """
    tracked_ids = _ids(tracked)
    remote_ids = _ids(remote)
    return ReconciliationResult(
        confirmed=tracked_ids & remote_ids,
        orphaned=tracked_ids - remote_ids,
        unexpected=remote_ids - tracked_ids,
    )


@dataclass
class ReconciliationConfig:
    """Configuration for ReconciliationService."""
    log_event_callback: Optional[Callable[..., None]] = None


@dataclass
class OrderReconcileResult:
    """Result of one order reconciliation pass."""
    success: bool
    result: Optional[ReconciliationResult] = None
    remote_orders: List[RemoteOrder] = field(default_factory=list)
    orphaned_orders: List[TrackedOrder] = field(default_factory=list)
    remote_count: int = 0
    local_count: int = 0
    error: Optional[str] = None

    @property
    def orders_removed(self) -> int:
        return len(self.orphaned_orders)

    @property
    def unexpected_count(self) -> int:
        return len(self.result.unexpected) if self.result else 0


class ReconciliationService:
    """
    Order reconciliation for one pair.

    Usage:
        service = ReconciliationService(pair, gateway, order_manager)
        result = await service.reconcile_orders()
        if not result.success:
            # skip repricing this cycle
    """

    def __init__(
        self,
        pair: str,
        gateway: "OrderGateway",
        order_manager: "OrderManager",
        metrics: Optional["EngineMetrics"] = None,
        config: Optional[ReconciliationConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.pair = pair
        self.gateway = gateway
        self.order_manager = order_manager
        self.metrics = metrics
        self.config = config or ReconciliationConfig()
        self._clock = clock
        self._last_order_reconcile: float = 0.0
        self._log_event = self.config.log_event_callback or self._default_log

    def _default_log(self, event: str, level: int = logging.INFO, **kwargs: Any) -> None:
        log_event(log, event, level=level, pair=self.pair, **kwargs)

    @property
    def last_reconcile_at(self) -> float:
        return self._last_order_reconcile

    async def fetch_remote(self) -> List[RemoteOrder]:
        return list(await self.gateway.get_open_orders(self.pair))

    def apply(self, remote: List[RemoteOrder]) -> OrderReconcileResult:
        """Apply a remote snapshot to the tracked book and report what changed."""
        result = reconcile(self.order_manager.all_orders(), remote)

        orphaned = self.order_manager.pop_many(sorted(result.orphaned))
        for order in orphaned:
            self._log_event(
                "order_orphaned",
                order_id=order.id,
                side=order.side.value,
                level_index=order.level_index,
                price=str(order.price),
            )

        if result.unexpected:
            self._log_event(
                "unexpected_order",
                level=logging.WARNING,
                order_ids=sorted(result.unexpected),
                count=len(result.unexpected),
            )

        if self.metrics is not None:
            self.metrics.orders_orphaned.labels(pair=self.pair).inc(len(orphaned))
            self.metrics.orders_unexpected.labels(pair=self.pair).inc(len(result.unexpected))
            self.metrics.tracked_orders.labels(pair=self.pair).set(self.order_manager.open_count())

        self._last_order_reconcile = self._clock()
        return OrderReconcileResult(
            success=True,
            result=result,
            remote_orders=remote,
            orphaned_orders=orphaned,
            remote_count=len(remote),
            local_count=self.order_manager.open_count(),
        )

    async def reconcile_orders(self) -> OrderReconcileResult:
        """
        Fetch remote orders and reconcile the tracked book against them.

        A failed fetch leaves the book untouched and returns success=False.
        """
        try:
            remote = await self.fetch_remote()
        except GatewayError as exc:
            self._log_event("reconcile_orders_error", level=logging.WARNING, error=str(exc), code=exc.code)
            return OrderReconcileResult(
                success=False,
                local_count=self.order_manager.open_count(),
                error=str(exc),
            )

        outcome = self.apply(remote)
        self._log_event(
            "reconcile_orders_complete",
            confirmed=len(outcome.result.confirmed),
            orphaned=outcome.orders_removed,
            unexpected=outcome.unexpected_count,
            remote=outcome.remote_count,
            local=outcome.local_count,
        )
        return outcome

    def reset_timers(self) -> None:
        self._last_order_reconcile = 0.0
