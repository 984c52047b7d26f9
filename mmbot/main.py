"""
Entry point wiring all components.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import List, Tuple

from mmbot.app import build_engines, run_all, stop_all
from mmbot.config.config import Settings
from mmbot.config.config_validator import validate_and_log
from mmbot.config.pair_config import load_pair_overrides
from mmbot.core.errors import ConfigInvalid
from mmbot.gateway.mexc import MexcGateway
from mmbot.gateway.paper import PaperExchange
from mmbot.infra.logging_cfg import build_logger, log_event
from mmbot.monitoring.metrics_rich import EngineMetrics, start_metrics_server


def build_gateways(cfg: Settings) -> Tuple[object, object, List[object]]:
    """
    Return (price_provider, order_gateway, closeables).

    Without credentials, prices still come from the public MEXC book ticker
    and orders go to an in-memory PaperExchange.
    """
    mexc = MexcGateway(
        cfg.mexc_api_key,
        cfg.mexc_secret_key,
        base_url=cfg.mexc_base_url,
        timeout=cfg.http_timeout,
    )
    if cfg.has_credentials:
        return mexc, mexc, [mexc]
    paper = PaperExchange()
    return mexc, paper, [mexc, paper]


async def main() -> int:
    try:
        cfg = Settings.load()
    except ConfigInvalid as exc:
        log = build_logger("mmbot")
        log_event(log, "config_invalid", level=logging.ERROR, field=exc.field, err=str(exc))
        return 1

    log = build_logger("mmbot", level=cfg.log_level, file_path=cfg.log_file)

    if not validate_and_log(cfg, log):
        log.error("Configuration validation failed, exiting")
        return 1

    metrics = EngineMetrics()
    if cfg.metrics_port > 0:
        start_metrics_server(cfg.metrics_port, metrics)

    price_provider, gateway, closeables = build_gateways(cfg)
    try:
        engines = build_engines(cfg, price_provider, gateway, metrics, load_pair_overrides(cfg.pair_config_path))
    except ConfigInvalid as exc:
        log_event(log, "pair_config_invalid", level=logging.ERROR, field=exc.field, err=str(exc))
        for c in closeables:
            await c.close()
        return 1

    if not engines:
        log_event(log, "no_engines_enabled", level=logging.WARNING, pairs=cfg.pairs)
        for c in closeables:
            await c.close()
        return 0

    log_event(
        log,
        "startup",
        pairs=cfg.pairs,
        engines=[f"{e.engine_name}:{e.pair}" for e in engines],
        live_orders=cfg.has_credentials,
    )

    loop = asyncio.get_running_loop()
    shutdown: List[asyncio.Task] = []

    def request_stop() -> None:
        # graceful: engines finish their in-flight cycle, then run_all returns
        if not shutdown:
            log.info("Shutdown signal received, stopping engines...")
            shutdown.append(asyncio.create_task(stop_all(engines)))

    # Windows doesn't support add_signal_handler, so rely on KeyboardInterrupt handling
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_stop)
        except NotImplementedError:
            pass

    try:
        await run_all(engines)
    finally:
        if shutdown:
            await shutdown[0]
        else:
            await stop_all(engines)
        log.info("Closing connections...")
        for c in closeables:
            await c.close()
        log.info("Shutdown complete")
    return 0


def run() -> None:
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        print("\nStopped by user")
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    run()
