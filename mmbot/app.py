"""
Engine supervision: one task per engine, per-pair isolation.
"""

from __future__ import annotations

import asyncio
import logging
import traceback
from typing import Any, Dict, List, Optional

from mmbot.config.config import Settings
from mmbot.config.pair_config import resolve_pair_configs
from mmbot.infra.logging_cfg import log_event
from mmbot.monitoring.metrics_rich import EngineMetrics
from mmbot.orchestrator.market_maker import MarketMakingEngine
from mmbot.orchestrator.scheduler import TradingEngine
from mmbot.orchestrator.volume_booster import VolumeBoosterEngine

log = logging.getLogger("mmbot")


class EngineRunner:
    def __init__(self, engine: TradingEngine) -> None:
        self.engine = engine
        self.error: Exception | None = None

    @property
    def task(self) -> asyncio.Task | None:
        return self.engine.task

    async def start(self) -> None:
        try:
            await self.engine.start()
        except Exception as exc:
            self.error = exc
            log_event(
                log,
                "engine_start_error",
                level=logging.ERROR,
                pair=self.engine.pair,
                engine=self.engine.engine_name,
                err=str(exc),
                traceback=traceback.format_exc(),
            )

    async def stop(self) -> None:
        await self.engine.stop()


def build_engines(
    cfg: Settings,
    price_provider,
    gateway,
    metrics: Optional[EngineMetrics] = None,
    overrides: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None,
) -> List[TradingEngine]:
    """One engine per enabled (pair, kind). Per-pair overrides raise ConfigInvalid if rejected."""
    engines: List[TradingEngine] = []
    for pair in cfg.pairs:
        mm_cfg, vb_cfg = resolve_pair_configs(pair, cfg.market_making, cfg.volume_booster, overrides or {})
        if mm_cfg.enabled:
            engines.append(MarketMakingEngine(pair, mm_cfg, price_provider, gateway, metrics=metrics))
        if vb_cfg.enabled:
            engines.append(VolumeBoosterEngine(pair, vb_cfg, price_provider, gateway, metrics=metrics))
    return engines


async def stop_all(engines: List[TradingEngine]) -> None:
    """Gracefully stop every engine concurrently; failures are logged, not raised."""
    results = await asyncio.gather(*(e.stop() for e in engines), return_exceptions=True)
    for engine, res in zip(engines, results):
        if isinstance(res, BaseException):
            log_event(log, "engine_stop_error", level=logging.ERROR, pair=engine.pair, engine=engine.engine_name, err=str(res))


async def run_all(engines: List[TradingEngine]) -> None:
    """
    Start every engine and wait until all of their loops have ended.

    Returns once every engine has been stopped. If one engine's task dies
    with an exception, its siblings are stopped and the error propagates.
    """
    runners = [EngineRunner(e) for e in engines]
    for r in runners:
        await r.start()

    async with asyncio.TaskGroup() as tg:
        for r in runners:
            if r.task:
                tg.create_task(_watch_engine(r, runners))


async def _watch_engine(runner: EngineRunner, runners: List[EngineRunner]) -> None:
    try:
        if runner.task:
            await runner.task
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        runner.error = exc
        log_event(
            log,
            "engine_run_error",
            level=logging.ERROR,
            pair=runner.engine.pair,
            engine=runner.engine.engine_name,
            err=str(exc),
        )
        # siblings never outlive a crashed engine
        await stop_all([r.engine for r in runners if r is not runner])
        raise
