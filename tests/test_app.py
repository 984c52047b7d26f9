"""Tests for engine wiring and supervision."""

import asyncio

import pytest

from mmbot.app import build_engines, run_all, stop_all
from mmbot.config.config import MarketMakingConfig, Settings, VolumeBoosterConfig
from mmbot.core.errors import ConfigInvalid
from mmbot.main import build_gateways
from mmbot.gateway.mexc import MexcGateway
from mmbot.gateway.paper import PaperExchange
from mmbot.orchestrator.market_maker import MarketMakingEngine
from mmbot.orchestrator.scheduler import CycleResult, TradingEngine
from mmbot.orchestrator.volume_booster import VolumeBoosterEngine


def _settings(mm_enabled=True, vb_enabled=True, pairs=("ILMTUSDT",), **kw):
    base = dict(
        pairs=list(pairs),
        mexc_api_key=None,
        mexc_secret_key=None,
        mexc_base_url="https://api.mexc.com",
        http_timeout=10.0,
        log_level="INFO",
        log_file=None,
        metrics_port=0,
        pair_config_path="configs/pairs.yaml",
        market_making=MarketMakingConfig(enabled=mm_enabled, monitoring_mode=True),
        volume_booster=VolumeBoosterConfig(enabled=vb_enabled, monitoring_mode=True),
    )
    base.update(kw)
    return Settings(**base)


class CrashingEngine(TradingEngine):
    """Engine whose loop dies outside the cycle boundary."""

    engine_name = "crashing"

    def __init__(self):
        super().__init__("ILMTUSDT", MarketMakingConfig(enabled=True))

    async def _cycle(self):
        return CycleResult(success=True)

    def _next_delay(self, result):
        raise RuntimeError("scheduler bug")


async def _wait_for_cycles(engines, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not all(e.cycle_count for e in engines):
        assert loop.time() < deadline, "engines did not cycle"
        await asyncio.sleep(0.01)


class TestBuildEngines:
    def test_one_engine_per_enabled_kind_and_pair(self, paper):
        engines = build_engines(_settings(pairs=("ILMTUSDT", "BTCUSDT")), paper, paper)
        kinds = [(type(e), e.pair) for e in engines]
        assert kinds == [
            (MarketMakingEngine, "ILMTUSDT"),
            (VolumeBoosterEngine, "ILMTUSDT"),
            (MarketMakingEngine, "BTCUSDT"),
            (VolumeBoosterEngine, "BTCUSDT"),
        ]

    def test_disabled_kinds_skipped(self, paper):
        assert build_engines(_settings(mm_enabled=False, vb_enabled=False), paper, paper) == []

    def test_pair_override_enables_engine(self, paper):
        overrides = {"ILMTUSDT": {"market_making": {"levels": 2}, "volume_booster": {"enabled": False}}}
        (engine,) = build_engines(_settings(), paper, paper, overrides=overrides)
        assert isinstance(engine, MarketMakingEngine)
        assert engine.config.levels == 2

    def test_invalid_override(self, paper):
        with pytest.raises(ConfigInvalid):
            build_engines(_settings(), paper, paper, overrides={"ILMTUSDT": {"market_making": {"levels": -1}}})


class TestSupervision:
    @pytest.mark.asyncio
    async def test_run_all_returns_after_stop_all(self, paper):
        engines = build_engines(_settings(), paper, paper)
        runner = asyncio.create_task(run_all(engines))

        await _wait_for_cycles(engines)
        await stop_all(engines)
        await asyncio.wait_for(runner, timeout=2)

        assert not any(e.is_running for e in engines)
        assert paper.call_count("place") == 0

    @pytest.mark.asyncio
    async def test_engine_crash_stops_siblings(self, paper):
        healthy = build_engines(_settings(vb_enabled=False), paper, paper)[0]
        crashing = CrashingEngine()

        with pytest.raises(BaseExceptionGroup) as exc_info:
            await asyncio.wait_for(run_all([healthy, crashing]), timeout=2)

        assert exc_info.group_contains(RuntimeError)
        assert not healthy.is_running

    @pytest.mark.asyncio
    async def test_stop_all_tolerates_failures(self, paper):
        class BadStop(CrashingEngine):
            async def stop(self):
                raise RuntimeError("stop failed")

        good = build_engines(_settings(vb_enabled=False), paper, paper)[0]
        await good.start()
        await stop_all([BadStop(), good])
        assert not good.is_running


@pytest.mark.asyncio
async def test_gateways_without_credentials_use_paper_orders():
    price_provider, gateway, closeables = build_gateways(_settings())
    try:
        assert isinstance(price_provider, MexcGateway)
        assert isinstance(gateway, PaperExchange)
        assert len(closeables) == 2
    finally:
        for c in closeables:
            await c.close()


@pytest.mark.asyncio
async def test_gateways_with_credentials_go_live():
    price_provider, gateway, closeables = build_gateways(_settings(mexc_api_key="k", mexc_secret_key="s"))
    try:
        assert price_provider is gateway
        assert isinstance(gateway, MexcGateway)
    finally:
        for c in closeables:
            await c.close()
