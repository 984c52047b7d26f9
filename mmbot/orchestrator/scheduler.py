"""
TradingEngine: the cycle scheduler shared by every engine.

One engine drives one pair on its own asyncio task. The base class owns the
loop and the control surface; subclasses implement a single cycle.

Loop contract:
    while running:
        apply pending config   (atomically, at the cycle boundary)
        run one cycle          (under the cycle lock, never re-entered)
        sleep                  (interruptible by stop())

An exception escaping a cycle is caught at the loop boundary, logged,
recorded in recent_errors, and the loop sleeps its normal interval.
stop() never cancels a cycle in flight: it waits for it to finish.
"""

from __future__ import annotations

import asyncio
import logging
import time
import traceback
from collections import deque
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, TYPE_CHECKING

from mmbot.infra.logging_cfg import log_event

if TYPE_CHECKING:
    from mmbot.monitoring.metrics_rich import EngineMetrics

log = logging.getLogger("mmbot")


class CycleAction(Enum):
    """What the loop should do after a cycle."""
    SLEEP_NORMAL = auto()
    SKIP_CYCLE = auto()  # a fetch failed; nothing was attempted
    STOP = auto()


@dataclass
class CycleResult:
    """Result of a single engine cycle."""
    success: bool
    action: CycleAction = CycleAction.SLEEP_NORMAL
    outcome: str = "ok"
    delay: Optional[float] = None
    mid: Optional[Any] = None
    placed: int = 0
    cancelled: int = 0
    repriced: int = 0
    errors: int = 0
    error: Optional[str] = None
    duration_ms: float = 0.0
    details: Dict[str, Any] = field(default_factory=dict)


class TradingEngine:
    """
    Base class for per-pair engines.

    Subclasses implement:
        _cycle() -> CycleResult
        _next_delay(result) -> float
    and may override _on_stop(), _on_config_applied(), _tracked_snapshot()
    and _strategy_state().
    """

    engine_name = "engine"

    def __init__(
        self,
        pair: str,
        config,
        *,
        metrics: Optional["EngineMetrics"] = None,
        clock: Callable[[], float] = time.time,
        max_recent_errors: int = 50,
        log_event_callback: Optional[Callable[..., None]] = None,
    ) -> None:
        self.pair = pair
        self._config = config
        self._pending_config = None
        self.metrics = metrics
        self._clock = clock
        self._cycle_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self.cycle_count = 0
        self.last_result: Optional[CycleResult] = None
        self.recent_errors: Deque[Dict[str, Any]] = deque(maxlen=max_recent_errors)
        self._log_event = log_event_callback or self._default_log

    def _default_log(self, event: str, level: int = logging.INFO, **kwargs: Any) -> None:
        log_event(log, event, level=level, pair=self.pair, engine=self.engine_name, **kwargs)

    # ========== Control surface ==========

    @property
    def config(self):
        return self._config

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    async def start(self, config=None) -> None:
        """
        Validate config and launch the loop task.

        Raises ConfigInvalid before any gateway call if the config is rejected.
        Starting an engine that is already running is a no-op.
        """
        candidate = config if config is not None else self._config
        candidate.validate()
        if self._running:
            self._log_event("engine_already_running", level=logging.WARNING)
            return
        self._config = candidate
        self._pending_config = None
        self._stop_event.clear()
        self._running = True
        self._task = asyncio.create_task(self._run(), name=f"{self.engine_name}:{self.pair}")
        if self.metrics is not None:
            self.metrics.engine_running.labels(pair=self.pair, engine=self.engine_name).set(1)
        self._log_event("engine_started", config=self._config.to_dict())

    async def stop(self) -> None:
        """
        Graceful stop: let the in-flight cycle finish, then run stop hooks.

        Idempotent.
        """
        if not self._running and self._task is None:
            return
        self._running = False
        self._stop_event.set()
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            await asyncio.gather(task, return_exceptions=True)
        async with self._cycle_lock:
            await self._on_stop()
        if self.metrics is not None:
            self.metrics.engine_running.labels(pair=self.pair, engine=self.engine_name).set(0)
        self._log_event("engine_stopped", cycles=self.cycle_count)

    def update_config(self, partial: Mapping[str, Any]):
        """
        Queue a partial config update.

        Validated now (ConfigInvalid propagates and nothing is queued),
        applied atomically at the start of the next cycle. Successive updates
        before a cycle boundary accumulate.
        """
        base = self._pending_config if self._pending_config is not None else self._config
        updated = base.with_updates(partial)
        self._pending_config = updated
        self._log_event("config_update_queued", changes=dict(partial))
        return updated

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_running": self._running,
            "pair": self.pair,
            "engine": self.engine_name,
            "tracked_orders": self._tracked_snapshot(),
            "strategy_state": self._strategy_state(),
            "cycle_count": self.cycle_count,
            "recent_errors": list(self.recent_errors),
            "config": self._config.to_dict(),
            "config_update_pending": self._pending_config is not None,
        }

    # ========== Loop ==========

    async def run_cycle(self) -> CycleResult:
        """Run exactly one cycle. Exceptions from the cycle body are contained here."""
        async with self._cycle_lock:
            start = time.perf_counter()
            self.cycle_count += 1
            self._apply_pending_config()
            try:
                result = await self._cycle()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self.record_error("cycle", exc)
                self._log_event(
                    "cycle_error",
                    level=logging.ERROR,
                    error=str(exc),
                    error_type=type(exc).__name__,
                    traceback=traceback.format_exc(),
                )
                result = CycleResult(success=False, outcome="error", error=str(exc))
            result.duration_ms = (time.perf_counter() - start) * 1000
            self.last_result = result
            if self.metrics is not None:
                self.metrics.cycles.labels(pair=self.pair, engine=self.engine_name, outcome=result.outcome).inc()
                self.metrics.cycle_duration.labels(pair=self.pair, engine=self.engine_name).observe(result.duration_ms / 1000)
            return result

    async def _run(self) -> None:
        while self._running:
            result = await self.run_cycle()
            if result.action == CycleAction.STOP:
                self._running = False
                break
            delay = self._next_delay(result)
            await self._sleep(delay)

    async def _sleep(self, delay: float) -> None:
        """Sleep up to `delay` seconds; returns early when stop() is called."""
        if delay <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    def _apply_pending_config(self) -> None:
        if self._pending_config is None:
            return
        old, self._config = self._config, self._pending_config
        self._pending_config = None
        self._on_config_applied(old, self._config)
        self._log_event("config_applied", config=self._config.to_dict())

    def record_error(self, op: str, error: Any, **context: Any) -> None:
        entry = {
            "at": self._clock(),
            "cycle": self.cycle_count,
            "op": op,
            "error": str(error),
        }
        code = getattr(error, "code", None)
        if code is not None:
            entry["code"] = code
        entry.update(context)
        self.recent_errors.append(entry)

    # ========== Hooks ==========

    async def _cycle(self) -> CycleResult:  # pragma: no cover - abstract
        raise NotImplementedError

    def _next_delay(self, result: CycleResult) -> float:  # pragma: no cover - abstract
        raise NotImplementedError

    async def _on_stop(self) -> None:
        return None

    def _on_config_applied(self, old, new) -> None:
        return None

    def _tracked_snapshot(self) -> List[Dict[str, Any]]:
        return []

    def _strategy_state(self) -> Dict[str, Any]:
        return {}
