"""
VolumeBoosterEngine: one volume trade per cycle, sleeping a randomized delay.

The strategy selector decides side, size, price and delay; this engine only
fetches the price, routes the decision (exchange or simulator), and folds the
outcome back into the strategy state. During a HIGH_VOLUME_BURST the delay
between cycles is the burst's micro-delay, so a burst plays out as a rapid
run of cycles.

Only executed quantity is folded into the volume totals. A limit order that
rests unfilled (SMART_SPREAD at the touch) is held as the engine's one
resting order and settled at the start of the next cycle: whatever is still
open is cancelled and the filled part is recorded. No new trade is sent
while a resting order is unsettled.
"""

from __future__ import annotations

import logging
import random
import time
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

from mmbot.config.config import VolumeBoosterConfig
from mmbot.core.enums import VolumeStrategy
from mmbot.core.errors import GatewayError, PriceUnavailable
from mmbot.core.types import TrackedOrder
from mmbot.execution.execution_gateway import ExecutionGateway
from mmbot.execution.order_manager import OrderManager
from mmbot.execution.simulator import MonitoringSimulator
from mmbot.orchestrator.scheduler import CycleAction, CycleResult, TradingEngine
from mmbot.strategy.volume import (
    BURST_WIDE_SPREAD_PCT,
    StrategyState,
    TradeDecision,
    burst_blocked_by_spread,
    cycle_delay,
    decide_next_trade,
    record_executed,
    record_skipped,
)

if TYPE_CHECKING:
    from mmbot.gateway.base import OrderGateway, PriceProvider
    from mmbot.monitoring.metrics_rich import EngineMetrics

RESTING_LEVEL = 0


class VolumeBoosterEngine(TradingEngine):
    engine_name = "volume_booster"

    def __init__(
        self,
        pair: str,
        config: VolumeBoosterConfig,
        price_provider: "PriceProvider",
        gateway: "OrderGateway",
        *,
        metrics: Optional["EngineMetrics"] = None,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
        simulator: Optional[MonitoringSimulator] = None,
        burst_attempts: int = 3,
        log_event_callback: Optional[Callable[..., None]] = None,
    ) -> None:
        super().__init__(pair, config, metrics=metrics, clock=clock, log_event_callback=log_event_callback)
        self.price_provider = price_provider
        self.gateway = gateway
        self.rng = rng or random.Random()
        self.state = StrategyState(balance_window=config.balance_window)
        # holds at most the one resting limit order awaiting settlement
        self.order_manager = OrderManager()
        self.execution = ExecutionGateway(pair, gateway, self.order_manager, metrics=metrics, clock=clock)
        self.simulator = simulator or MonitoringSimulator(pair, clock=clock)
        self.burst_attempts = max(1, burst_attempts)
        self._resting: Optional[TradeDecision] = None

    @property
    def resting_order(self) -> Optional[TrackedOrder]:
        orders = self.order_manager.all_orders()
        return orders[0] if orders else None

    async def _cycle(self) -> CycleResult:
        cfg: VolumeBoosterConfig = self._config
        if not cfg.enabled:
            return CycleResult(success=True, outcome="disabled")

        if self.resting_order is not None and not await self._settle_resting():
            return CycleResult(
                success=False,
                outcome="resting_order_unsettled",
                delay=cycle_delay(cfg, self.rng),
                errors=1,
                error="resting order could not be settled",
            )

        try:
            snapshot = await self.price_provider.get_mid_price(self.pair)
        except PriceUnavailable as exc:
            self.record_error("price", exc)
            self._log_event("price_unavailable", level=logging.WARNING, error=str(exc))
            return CycleResult(success=False, action=CycleAction.SKIP_CYCLE, outcome="price_unavailable", error=str(exc))

        if cfg.strategy == VolumeStrategy.HIGH_VOLUME_BURST:
            if burst_blocked_by_spread(self.state, cfg, snapshot):
                self._log_event(
                    "burst_spread_too_wide",
                    level=logging.WARNING,
                    spread_pct=str(snapshot.spread_pct),
                    max_spread_pct=str(cfg.burst_max_spread_pct),
                )
                return CycleResult(success=True, outcome="spread_too_wide", delay=cycle_delay(cfg, self.rng), mid=snapshot.mid)
            if self.state.burst is None and snapshot.spread_pct > BURST_WIDE_SPREAD_PCT:
                self._log_event("burst_wide_spread", level=logging.WARNING, spread_pct=str(snapshot.spread_pct))

        decision = decide_next_trade(self.state, cfg, snapshot, self.rng)
        self._log_event("trade_decision", level=logging.DEBUG, strategy=cfg.strategy.value, **decision.to_dict())

        if cfg.monitoring_mode:
            self.simulator.simulate_trade(decision.side, decision.size, snapshot, decision.simulated_price)
            record_executed(self.state, decision)
            self._count_volume(decision, decision.size, mode="simulated")
            return self._result(decision, success=True, outcome="simulated", mid=snapshot.mid)

        attempts = self.burst_attempts if decision.burst is not None else 1
        res = None
        for attempt in range(1, attempts + 1):
            res = await self.execution.submit_trade(decision.side, decision.size, decision.price)
            if res.success:
                break
            self._log_event("trade_attempt_failed", level=logging.WARNING, attempt=attempt, error=res.error, retryable=res.retryable)
            if not res.retryable:
                break

        if not res.success:
            record_skipped(self.state, decision)
            self.record_error("trade", res.error, code=res.code, side=decision.side.value, size=str(decision.size))
            return self._result(decision, success=False, outcome="trade_failed", mid=snapshot.mid, error=res.error)

        remote = res.remote
        if not decision.is_market and not remote.fully_filled:
            self.order_manager.register(TrackedOrder(
                id=res.order_id,
                side=decision.side,
                price=remote.price,
                quantity=remote.quantity,
                placed_at=self._clock(),
                level_index=RESTING_LEVEL,
                meta={"mode": "volume", "filled_at_placement": str(res.filled_quantity)},
            ))
            self._resting = decision
            return self._result(decision, success=True, outcome="resting", mid=snapshot.mid, order_id=res.order_id)

        self._fold_fill(decision, res.filled_quantity)
        return self._result(decision, success=True, outcome="ok", mid=snapshot.mid, order_id=res.order_id)

    async def _settle_resting(self) -> bool:
        """
        Cancel what is left of the resting order and record what filled.

        An order missing from the open orders (or unknown on cancel) has left
        the book without this engine cancelling it and is taken as filled.
        Returns False when the order is still live and could not be cancelled.
        """
        order = self.resting_order
        decision = self._resting
        try:
            remote_orders = await self.gateway.get_open_orders(self.pair)
        except GatewayError as exc:
            self.record_error("open_orders", exc)
            self._log_event("resting_order_check_failed", level=logging.WARNING, order_id=order.id, error=str(exc))
            return False

        live = next((o for o in remote_orders if o.id == order.id), None)
        if live is None:
            self.order_manager.unindex(order)
            filled = order.quantity
        else:
            res = await self.execution.cancel_tracked(order, reason="volume_unfilled")
            if not res.success:
                self.record_error("cancel", "; ".join(res.errors), order_id=order.id)
                return False
            filled = order.quantity if res.order_gone else max(live.filled_quantity, Decimal(order.meta.get("filled_at_placement", "0")))

        self._resting = None
        self._log_event("resting_order_settled", order_id=order.id, side=order.side.value, filled=str(filled), quantity=str(order.quantity))
        if decision is not None:
            self._fold_fill(decision, filled)
        return True

    def _fold_fill(self, decision: TradeDecision, filled: Decimal) -> None:
        if filled > 0:
            record_executed(self.state, decision, size=filled)
            self._count_volume(decision, filled, mode="live")
        else:
            record_skipped(self.state, decision)

    def _count_volume(self, decision: TradeDecision, filled: Decimal, mode: str) -> None:
        if self.metrics is not None:
            self.metrics.volume_trades.labels(pair=self.pair, side=decision.side.value, mode=mode).inc()
            self.metrics.volume_traded.labels(pair=self.pair, mode=mode).inc(float(filled))

    def _result(self, decision, success: bool, outcome: str, mid=None, error=None, **details: Any) -> CycleResult:
        return CycleResult(
            success=success,
            outcome=outcome,
            delay=decision.delay,
            mid=mid,
            errors=0 if success else 1,
            error=error,
            details={"decision": decision.to_dict(), **details},
        )

    def _next_delay(self, result: CycleResult) -> float:
        if result.delay is not None:
            return result.delay
        return cycle_delay(self._config, self.rng)

    async def _on_stop(self) -> None:
        if self.resting_order is not None:
            await self._settle_resting()

    def _on_config_applied(self, old: VolumeBoosterConfig, new: VolumeBoosterConfig) -> None:
        self.state.resize_window(new.balance_window)
        if old.strategy == VolumeStrategy.HIGH_VOLUME_BURST and new.strategy != VolumeStrategy.HIGH_VOLUME_BURST:
            self.state.burst = None

    def reset_stats(self) -> None:
        self.state.reset()
        self._log_event("strategy_state_reset")

    def _tracked_snapshot(self) -> List[Dict[str, Any]]:
        return self.order_manager.snapshot()

    def _strategy_state(self) -> Dict[str, Any]:
        out = self.state.to_dict()
        out["strategy"] = self._config.strategy.value
        out["monitoring_mode"] = self._config.monitoring_mode
        if self._config.monitoring_mode:
            out["simulation"] = self.simulator.to_dict()
        return out
