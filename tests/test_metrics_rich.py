"""Engine metrics recorded into an isolated registry."""

import dataclasses

import pytest

from mmbot.core.enums import VolumeStrategy
from mmbot.monitoring.metrics_rich import EngineMetrics
from mmbot.orchestrator.market_maker import MarketMakingEngine
from mmbot.orchestrator.volume_booster import VolumeBoosterEngine

PAIR = "ILMTUSDT"


def _sample(metrics, name, **labels):
    return metrics.get_registry().get_sample_value(name, labels)


def test_registries_are_independent():
    a, b = EngineMetrics(), EngineMetrics()
    a.orders_placed.labels(pair=PAIR, side="BUY").inc()
    assert _sample(a, "mmbot_orders_placed_total", pair=PAIR, side="BUY") == 1.0
    assert _sample(b, "mmbot_orders_placed_total", pair=PAIR, side="BUY") is None


@pytest.mark.asyncio
async def test_market_making_cycle_metrics(paper, mm_config, clock):
    metrics = EngineMetrics()
    engine = MarketMakingEngine(PAIR, mm_config, paper, paper, metrics=metrics, clock=clock)

    await engine.run_cycle()

    assert _sample(metrics, "mmbot_orders_placed_total", pair=PAIR, side="BUY") == 1.0
    assert _sample(metrics, "mmbot_orders_placed_total", pair=PAIR, side="SELL") == 1.0
    assert _sample(metrics, "mmbot_tracked_orders", pair=PAIR) == 2.0
    assert _sample(metrics, "mmbot_cycles_total", pair=PAIR, engine="market_making", outcome="ok") == 1.0
    assert _sample(metrics, "mmbot_cycle_duration_seconds_count", pair=PAIR, engine="market_making") == 1.0


@pytest.mark.asyncio
async def test_failures_counted(paper, mm_config, clock):
    metrics = EngineMetrics()
    engine = MarketMakingEngine(PAIR, mm_config, paper, paper, metrics=metrics, clock=clock)
    paper.inject_fault("place")

    await engine.run_cycle()

    assert _sample(metrics, "mmbot_gateway_errors_total", pair=PAIR, op="place") == 1.0
    assert _sample(metrics, "mmbot_cycles_total", pair=PAIR, engine="market_making", outcome="partial") == 1.0


@pytest.mark.asyncio
async def test_volume_metrics_by_mode(paper, vb_config, clock):
    metrics = EngineMetrics()
    live = VolumeBoosterEngine(PAIR, vb_config, paper, paper, metrics=metrics, clock=clock)
    simulated = VolumeBoosterEngine(
        PAIR, dataclasses.replace(vb_config, monitoring_mode=True), paper, paper, metrics=metrics, clock=clock
    )

    await live.run_cycle()
    await simulated.run_cycle()

    assert _sample(metrics, "mmbot_volume_traded_total", pair=PAIR, mode="live") == float(live.state.cumulative_volume)
    assert _sample(metrics, "mmbot_volume_traded_total", pair=PAIR, mode="simulated") == float(simulated.state.cumulative_volume)


@pytest.mark.asyncio
async def test_resting_volume_order_counted_once_filled(paper, vb_config, clock):
    metrics = EngineMetrics()
    paper.set_price(PAIR, "0.010000", "0.010004")
    engine = VolumeBoosterEngine(
        PAIR, dataclasses.replace(vb_config, strategy=VolumeStrategy.SMART_SPREAD), paper, paper, metrics=metrics, clock=clock
    )

    await engine.run_cycle()
    order = engine.resting_order
    assert not _sample(metrics, "mmbot_volume_traded_total", pair=PAIR, mode="live")

    paper.fill_order(PAIR, order.id)
    await engine.run_cycle()

    assert _sample(metrics, "mmbot_volume_traded_total", pair=PAIR, mode="live") == float(order.quantity)
    assert _sample(metrics, "mmbot_volume_trades_total", pair=PAIR, side=order.side.value, mode="live") == 1.0


@pytest.mark.asyncio
async def test_engine_running_gauge(paper, mm_config, clock):
    metrics = EngineMetrics()
    engine = MarketMakingEngine(PAIR, dataclasses.replace(mm_config, monitoring_mode=True), paper, paper, metrics=metrics, clock=clock)

    await engine.start()
    assert _sample(metrics, "mmbot_engine_running", pair=PAIR, engine="market_making") == 1.0
    await engine.stop()
    assert _sample(metrics, "mmbot_engine_running", pair=PAIR, engine="market_making") == 0.0
