"""
MarketMakingEngine: keeps a ladder of resting limit orders around mid.

Tick order:
    1. pending config applied (by the scheduler)
    2. fetch price                      -> skip cycle on PriceUnavailable
    3. fetch remote open orders         -> skip cycle on GatewayError
    4. reconcile tracked vs remote      (orphans dropped, unexpected logged)
    5. cancel rungs beyond the current ladder depth
    6. select drifted, old-enough orders and cancel them
    7. place one order into every empty rung of the current ladder

A rung is cancelled at most once and placed at most once per tick. A failed
cancel leaves the order tracked and its rung occupied, so nothing is placed
over it; the cancel is retried next tick.

With monitoring_mode set, steps 3-7 run against a virtual book held by the
engine and every action goes to the MonitoringSimulator.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, TYPE_CHECKING

from mmbot.config.config import MarketMakingConfig
from mmbot.core.errors import PriceUnavailable
from mmbot.core.types import Side, TrackedOrder
from mmbot.execution.execution_gateway import ExecutionGateway
from mmbot.execution.order_manager import OrderManager
from mmbot.execution.reconciliation_service import ReconciliationService
from mmbot.execution.simulator import MonitoringSimulator
from mmbot.orchestrator.scheduler import CycleAction, CycleResult, TradingEngine
from mmbot.strategy.ladder import Ladder, build_ladder
from mmbot.strategy.rebalance import deviation, select_for_reprice

if TYPE_CHECKING:
    from mmbot.gateway.base import OrderGateway, PriceProvider
    from mmbot.monitoring.metrics_rich import EngineMetrics


class MarketMakingEngine(TradingEngine):
    engine_name = "market_making"

    def __init__(
        self,
        pair: str,
        config: MarketMakingConfig,
        price_provider: "PriceProvider",
        gateway: "OrderGateway",
        *,
        metrics: Optional["EngineMetrics"] = None,
        clock: Callable[[], float] = time.time,
        simulator: Optional[MonitoringSimulator] = None,
        log_event_callback: Optional[Callable[..., None]] = None,
    ) -> None:
        super().__init__(pair, config, metrics=metrics, clock=clock, log_event_callback=log_event_callback)
        self.price_provider = price_provider
        self.gateway = gateway
        self.order_manager = OrderManager()
        self.reconciliation = ReconciliationService(pair, gateway, self.order_manager, metrics=metrics, clock=clock)
        self.execution = ExecutionGateway(pair, gateway, self.order_manager, metrics=metrics, clock=clock)
        self.simulator = simulator or MonitoringSimulator(pair, clock=clock)
        # virtual resting orders while monitoring_mode is on
        self.sim_book = OrderManager()
        self.last_ladder: Optional[Ladder] = None

    # ========== Cycle ==========

    async def _cycle(self) -> CycleResult:
        cfg: MarketMakingConfig = self._config
        if not cfg.enabled:
            return CycleResult(success=True, outcome="disabled")

        try:
            snapshot = await self.price_provider.get_mid_price(self.pair)
        except PriceUnavailable as exc:
            self.record_error("price", exc)
            self._log_event("price_unavailable", level=logging.WARNING, error=str(exc))
            return CycleResult(success=False, action=CycleAction.SKIP_CYCLE, outcome="price_unavailable", error=str(exc))

        mid = snapshot.mid
        ladder = build_ladder(
            mid,
            cfg.level_distance_pct,
            cfg.levels,
            cfg.max_levels,
            strategy=cfg.strategy,
            max_orders=cfg.max_orders,
        )
        self.last_ladder = ladder
        self._log_event(
            "ladder_built",
            level=logging.DEBUG,
            mid=str(mid),
            buy=[str(p) for p in ladder.buy],
            sell=[str(p) for p in ladder.sell],
        )

        if cfg.monitoring_mode:
            return self._simulate_cycle(cfg, ladder)

        reconciled = await self.reconciliation.reconcile_orders()
        if not reconciled.success:
            self.record_error("open_orders", reconciled.error)
            return CycleResult(
                success=False,
                action=CycleAction.SKIP_CYCLE,
                outcome="open_orders_unavailable",
                mid=mid,
                error=reconciled.error,
            )

        errors = 0
        cancelled = 0
        touched: Set[Tuple[Side, int]] = set()

        # rungs that no longer exist after a depth/strategy change
        for order in self.order_manager.out_of_range(len(ladder.buy), len(ladder.sell)):
            touched.add(order.slot)
            res = await self.execution.cancel_tracked(order, reason="out_of_range")
            if res.success:
                cancelled += 1
            else:
                errors += 1
                self.record_error("cancel", "; ".join(res.errors), order_id=order.id, reason="out_of_range")

        confirmed = [
            o for o in self.order_manager.all_orders()
            if o.id in reconciled.result.confirmed and o.slot not in touched
        ]
        now = self._clock()
        selected = select_for_reprice(
            confirmed,
            mid,
            cfg.max_rebalance_distance_pct,
            cfg.min_rebalance_age_sec,
            now,
        )
        if self.metrics is not None and selected:
            self.metrics.reprices_selected.labels(pair=self.pair).inc(len(selected))

        repriced_slots: Set[Tuple[Side, int]] = set()
        for order in selected:
            target = ladder.price_at(order.side, order.level_index)
            self._log_event(
                "reprice_selected",
                order_id=order.id,
                side=order.side.value,
                level_index=order.level_index,
                price=str(order.price),
                target=str(target) if target is not None else None,
                deviation_pct=str(round(deviation(order.price, mid) * 100, 4)),
                age_sec=round(order.age(now), 1),
            )
            res = await self.execution.cancel_tracked(order, reason="reprice")
            if res.success:
                cancelled += 1
                repriced_slots.add(order.slot)
            else:
                errors += 1
                self.record_error("cancel", "; ".join(res.errors), order_id=order.id, reason="reprice")

        placed = 0
        for side, level_index, price in self._empty_rungs(ladder, self.order_manager):
            mode = "reprice" if (side, level_index) in repriced_slots else "ladder"
            res = await self.execution.submit_level(side, level_index, price, cfg.order_size, mode=mode)
            if res.success:
                placed += 1
            else:
                errors += 1
                self.record_error("place", res.error, code=res.code, side=side.value, level_index=level_index)

        return CycleResult(
            success=errors == 0,
            outcome="ok" if errors == 0 else "partial",
            mid=mid,
            placed=placed,
            cancelled=cancelled,
            repriced=len(repriced_slots),
            errors=errors,
            details={"unexpected": reconciled.unexpected_count, "orphaned": reconciled.orders_removed},
        )

    @staticmethod
    def _empty_rungs(ladder: Ladder, book: OrderManager):
        for side in (Side.BUY, Side.SELL):
            for level_index, price in enumerate(ladder.side(side)):
                if book.at_slot(side, level_index) is None:
                    yield side, level_index, price

    def _simulate_cycle(self, cfg: MarketMakingConfig, ladder: Ladder) -> CycleResult:
        """Same decisions as a live tick, applied to the virtual book."""
        now = self._clock()
        cancelled = 0
        for order in self.sim_book.out_of_range(len(ladder.buy), len(ladder.sell)):
            self.simulator.simulate_cancel(order.side, order.level_index, order.price, order.quantity, reason="out_of_range")
            self.sim_book.unindex(order)
            cancelled += 1

        selected = select_for_reprice(
            self.sim_book.all_orders(),
            ladder.mid,
            cfg.max_rebalance_distance_pct,
            cfg.min_rebalance_age_sec,
            now,
        )
        for order in selected:
            self.simulator.simulate_cancel(order.side, order.level_index, order.price, order.quantity, reason="reprice")
            self.sim_book.unindex(order)
            cancelled += 1

        placed = 0
        for side, level_index, price in list(self._empty_rungs(ladder, self.sim_book)):
            qty = cfg.order_size
            action = self.simulator.simulate_placement(side, level_index, price, qty)
            self.sim_book.register(TrackedOrder(
                id=action.id,
                side=side,
                price=price,
                quantity=qty,
                placed_at=now,
                level_index=level_index,
                meta={"simulated": True},
            ))
            placed += 1

        return CycleResult(
            success=True,
            outcome="simulated",
            mid=ladder.mid,
            placed=placed,
            cancelled=cancelled,
            repriced=len(selected),
        )

    def _next_delay(self, result: CycleResult) -> float:
        return float(self._config.refresh_interval_sec)

    # ========== Hooks ==========

    def _on_config_applied(self, old: MarketMakingConfig, new: MarketMakingConfig) -> None:
        if old.monitoring_mode != new.monitoring_mode:
            self.sim_book.clear()

    async def _on_stop(self) -> None:
        cfg: MarketMakingConfig = self._config
        if not cfg.cancel_on_stop or cfg.monitoring_mode:
            return
        result = await self.execution.cancel_all(reason="stop")
        for err in result.errors:
            self.record_error("cancel", err, reason="stop")

    def _tracked_snapshot(self) -> List[Dict[str, Any]]:
        if self._config.monitoring_mode:
            return self.sim_book.snapshot()
        return self.order_manager.snapshot()

    def _strategy_state(self) -> Dict[str, Any]:
        ladder = self.last_ladder
        return {
            "strategy": self._config.strategy.value,
            "monitoring_mode": self._config.monitoring_mode,
            "mid": str(ladder.mid) if ladder else None,
            "buy_levels": [str(p) for p in ladder.buy] if ladder else [],
            "sell_levels": [str(p) for p in ladder.sell] if ladder else [],
            "last_reconcile_at": self.reconciliation.last_reconcile_at,
            "simulation": self.simulator.to_dict() if self._config.monitoring_mode else None,
        }
