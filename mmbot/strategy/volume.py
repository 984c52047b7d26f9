"""
Volume strategy selector.

Each VolumeStrategy variant is a plain side-picking function registered in
SIDE_SELECTORS. decide_next_trade() combines the variant's side with the
shared rules (consecutive-side bound, size quantization, timing, burst
planning) and returns a TradeDecision without touching the state. The engine
folds the outcome back in with record_executed() or record_skipped().

All randomness comes from the injected random.Random, so a seeded rng
reproduces a decision sequence exactly.
"""

from __future__ import annotations

import random
from collections import deque
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Deque, Dict, Optional, Union

from mmbot.core.enums import VolumeStrategy
from mmbot.core.rounding import quantize_step, to_decimal
from mmbot.core.types import PriceSnapshot, Side

# below this spread (percent of bid) SMART_SPREAD alternates instead of balancing
SMART_SPREAD_TIGHT_PCT = Decimal("0.1")
# above this spread a new burst still starts, with a warning
BURST_WIDE_SPREAD_PCT = Decimal("1.0")
HEAVY_SIDE_WEIGHT = 0.7


@dataclass
class BurstState:
    """Progress of one HIGH_VOLUME_BURST run."""
    target_volume: Decimal
    executions_planned: int
    per_trade_size: Decimal
    price_spread_units: int
    executions_done: int = 0
    volume_done: Decimal = Decimal(0)

    @property
    def finished(self) -> bool:
        return self.executions_done >= self.executions_planned or self.volume_done >= self.target_volume

    @property
    def remaining_volume(self) -> Decimal:
        return max(self.target_volume - self.volume_done, Decimal(0))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_volume": str(self.target_volume),
            "executions_planned": self.executions_planned,
            "executions_done": self.executions_done,
            "volume_done": str(self.volume_done),
            "per_trade_size": str(self.per_trade_size),
            "price_spread_units": self.price_spread_units,
        }


@dataclass
class StrategyState:
    """
    Mutable selector state owned by one volume engine.

    recent_sides holds the last balance_window executed sides.
    consecutive_same_side_count is the length of the current run of
    last_side; it is tracked separately so the bound holds even when the
    window is shorter than max_consecutive_side.
    """
    balance_window: int = 20
    recent_sides: Deque[Side] = field(init=False)
    last_side: Optional[Side] = None
    consecutive_same_side_count: int = 0
    cumulative_volume: Decimal = Decimal(0)
    trade_count: int = 0
    buy_count: int = 0
    sell_count: int = 0
    skipped_count: int = 0
    bursts_completed: int = 0
    burst: Optional[BurstState] = None

    def __post_init__(self) -> None:
        self.recent_sides = deque(maxlen=self.balance_window)

    def resize_window(self, balance_window: int) -> None:
        if balance_window == self.balance_window:
            return
        self.balance_window = balance_window
        self.recent_sides = deque(self.recent_sides, maxlen=balance_window)

    def side_counts(self) -> tuple[int, int]:
        buys = sum(1 for s in self.recent_sides if s == Side.BUY)
        return buys, len(self.recent_sides) - buys

    def reset(self) -> None:
        """Clear running totals and any burst in progress. Lifetime side counters are kept."""
        self.cumulative_volume = Decimal(0)
        self.trade_count = 0
        self.burst = None

    def to_dict(self) -> Dict[str, Any]:
        buys, sells = self.side_counts()
        return {
            "recent_sides": [s.value for s in self.recent_sides],
            "window_buys": buys,
            "window_sells": sells,
            "last_side": self.last_side.value if self.last_side else None,
            "consecutive_same_side_count": self.consecutive_same_side_count,
            "cumulative_volume": str(self.cumulative_volume),
            "trade_count": self.trade_count,
            "buy_count": self.buy_count,
            "sell_count": self.sell_count,
            "skipped_count": self.skipped_count,
            "bursts_completed": self.bursts_completed,
            "burst": self.burst.to_dict() if self.burst else None,
        }


@dataclass(frozen=True)
class TradeDecision:
    """
    One volume trade to make.

    price is the limit price sent to the exchange; None sends a market order.
    sim_price only prices the trade in the simulator (burst micro-trades
    spread around mid); it never reaches the exchange.
    """
    side: Side
    size: Decimal
    delay: float
    price: Optional[Decimal] = None
    burst: Optional[BurstState] = None
    sim_price: Optional[Decimal] = None

    @property
    def is_market(self) -> bool:
        return self.price is None

    @property
    def simulated_price(self) -> Optional[Decimal]:
        return self.price if self.price is not None else self.sim_price

    def to_dict(self) -> Dict[str, Any]:
        return {
            "side": self.side.value,
            "size": str(self.size),
            "delay": round(self.delay, 3),
            "price": str(self.price) if self.price is not None else None,
            "sim_price": str(self.sim_price) if self.sim_price is not None else None,
            "burst": self.burst is not None,
        }


# --- side selection per variant ------------------------------------------

def _random_side(rng: random.Random) -> Side:
    return Side.BUY if rng.random() < 0.5 else Side.SELL


def _side_random(state: StrategyState, config, snapshot: PriceSnapshot, rng: random.Random) -> Side:
    return _random_side(rng)


def _side_balanced(state: StrategyState, config, snapshot: PriceSnapshot, rng: random.Random) -> Side:
    buys, sells = state.side_counts()
    if buys < sells:
        return Side.BUY
    if sells < buys:
        return Side.SELL
    return _random_side(rng)


def _side_alternating(state: StrategyState, config, snapshot: PriceSnapshot, rng: random.Random) -> Side:
    if state.last_side is None:
        return Side.BUY
    return state.last_side.opposite


def _side_smart_spread(state: StrategyState, config, snapshot: PriceSnapshot, rng: random.Random) -> Side:
    if snapshot.spread_pct < SMART_SPREAD_TIGHT_PCT:
        return _side_alternating(state, config, snapshot, rng)
    return _side_balanced(state, config, snapshot, rng)


def _side_buy_heavy(state: StrategyState, config, snapshot: PriceSnapshot, rng: random.Random) -> Side:
    return Side.BUY if rng.random() < HEAVY_SIDE_WEIGHT else Side.SELL


def _side_sell_heavy(state: StrategyState, config, snapshot: PriceSnapshot, rng: random.Random) -> Side:
    return Side.SELL if rng.random() < HEAVY_SIDE_WEIGHT else Side.BUY


SideSelector = Callable[[StrategyState, Any, PriceSnapshot, random.Random], Side]

SIDE_SELECTORS: Dict[VolumeStrategy, SideSelector] = {
    VolumeStrategy.RANDOM: _side_random,
    VolumeStrategy.BALANCED: _side_balanced,
    VolumeStrategy.ALTERNATING: _side_alternating,
    VolumeStrategy.SMART_SPREAD: _side_smart_spread,
    VolumeStrategy.BUY_HEAVY: _side_buy_heavy,
    VolumeStrategy.SELL_HEAVY: _side_sell_heavy,
    VolumeStrategy.HIGH_VOLUME_BURST: _side_balanced,
}


# --- shared rules --------------------------------------------------------

def enforce_consecutive_limit(state: StrategyState, side: Side, max_consecutive_side: int) -> Side:
    """Flip `side` if taking it would extend the current run past the limit."""
    if state.last_side == side and state.consecutive_same_side_count >= max_consecutive_side:
        return side.opposite
    return side


def _uniform_decimal(rng: random.Random, low: Decimal, high: Decimal) -> Decimal:
    if high <= low:
        return low
    return low + (high - low) * to_decimal(rng.random())


def _quantize_size(size: Decimal, step: Decimal) -> Decimal:
    return max(quantize_step(size, step), step)


def random_size(config, rng: random.Random) -> Decimal:
    raw = _uniform_decimal(rng, config.min_trade_size, config.max_trade_size)
    return _quantize_size(raw, config.size_step)


def cycle_delay(config, rng: random.Random) -> float:
    return rng.uniform(config.cycle_interval_min_sec, config.cycle_interval_max_sec)


def plan_burst(config, rng: random.Random) -> BurstState:
    """Sample a new burst: target volume, execution count and per-trade size."""
    target = _quantize_size(
        _uniform_decimal(rng, config.burst_min_volume, config.burst_max_volume),
        config.size_step,
    )
    planned = rng.randint(config.burst_min_executions, config.burst_max_executions)
    per_trade = min(target / planned, config.burst_max_trade_size)
    return BurstState(
        target_volume=target,
        executions_planned=planned,
        per_trade_size=_quantize_size(per_trade, config.size_step),
        price_spread_units=config.burst_price_spread_units,
    )


def _burst_price(snapshot: PriceSnapshot, burst: BurstState, price_unit: Decimal, rng: random.Random) -> Decimal:
    offset = rng.randint(-burst.price_spread_units, burst.price_spread_units)
    price = snapshot.mid + price_unit * offset
    if price <= 0:
        return snapshot.mid
    return price


def _decide_burst(state: StrategyState, config, snapshot: PriceSnapshot, rng: random.Random, side: Side) -> TradeDecision:
    burst = state.burst if state.burst is not None and not state.burst.finished else plan_burst(config, rng)
    size = burst.per_trade_size
    remaining = burst.remaining_volume
    if remaining < size:
        size = _quantize_size(remaining, config.size_step)
    is_last = (
        burst.executions_done + 1 >= burst.executions_planned
        or burst.volume_done + size >= burst.target_volume
    )
    if is_last:
        delay = cycle_delay(config, rng)
    else:
        delay = rng.uniform(config.burst_micro_delay_min_sec, config.burst_micro_delay_max_sec)
    return TradeDecision(
        side=side,
        size=size,
        delay=delay,
        burst=burst,
        sim_price=_burst_price(snapshot, burst, config.price_unit, rng),
    )


def burst_blocked_by_spread(state: StrategyState, config, snapshot: PriceSnapshot) -> bool:
    """True when no burst is running and the spread is too wide to start one."""
    if state.burst is not None and not state.burst.finished:
        return False
    return snapshot.spread_pct > config.burst_max_spread_pct


def decide_next_trade(state: StrategyState, config, snapshot: PriceSnapshot, rng: random.Random) -> TradeDecision:
    """
    Choose side, size, delay and price for the next volume trade.

    Does not mutate `state`. A new burst is planned inside the returned
    decision and only becomes the state's burst once the outcome is recorded.
    """
    strategy = VolumeStrategy(config.strategy)
    try:
        selector = SIDE_SELECTORS[strategy]
    except KeyError:
        raise ValueError(f"no side selector for {strategy!r}") from None

    side = selector(state, config, snapshot, rng)
    side = enforce_consecutive_limit(state, side, config.max_consecutive_side)

    if strategy == VolumeStrategy.HIGH_VOLUME_BURST:
        return _decide_burst(state, config, snapshot, rng, side)

    size = random_size(config, rng)
    delay = cycle_delay(config, rng)
    price = None
    if strategy == VolumeStrategy.SMART_SPREAD:
        price = snapshot.bid if side == Side.BUY else snapshot.ask
    return TradeDecision(side=side, size=size, delay=delay, price=price)


def _attach_burst(state: StrategyState, burst: Optional[BurstState]) -> Optional[BurstState]:
    if burst is None:
        return None
    if state.burst is not burst:
        state.burst = burst
    return burst


def _close_burst_if_done(state: StrategyState, burst: BurstState) -> None:
    if burst.finished and state.burst is burst:
        state.burst = None
        state.bursts_completed += 1


def record_executed(state: StrategyState, decision_or_side: Union[TradeDecision, Side], size=None) -> None:
    """Fold a completed trade into the state."""
    if isinstance(decision_or_side, TradeDecision):
        side = decision_or_side.side
        filled = to_decimal(size) if size is not None else decision_or_side.size
        burst = decision_or_side.burst
    else:
        side = Side.parse(decision_or_side)
        if size is None:
            raise ValueError("size is required when recording a bare side")
        filled = to_decimal(size)
        burst = None

    state.recent_sides.append(side)
    if state.last_side == side:
        state.consecutive_same_side_count += 1
    else:
        state.last_side = side
        state.consecutive_same_side_count = 1
    if side == Side.BUY:
        state.buy_count += 1
    else:
        state.sell_count += 1
    state.cumulative_volume += filled
    state.trade_count += 1

    burst = _attach_burst(state, burst)
    if burst is not None:
        burst.executions_done += 1
        burst.volume_done += filled
        _close_burst_if_done(state, burst)


def record_skipped(state: StrategyState, decision: TradeDecision) -> None:
    """
    Fold a trade that failed to execute.

    Sides and volume are untouched. A failed burst trade still counts toward
    executions_done so a burst always reaches its planned execution count.
    """
    state.skipped_count += 1
    burst = _attach_burst(state, decision.burst)
    if burst is not None:
        burst.executions_done += 1
        _close_burst_if_done(state, burst)
