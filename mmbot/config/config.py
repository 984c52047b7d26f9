"""
Environment-driven configuration with validation.

Engine configs are frozen dataclasses: an engine holds one value at a time and
swaps it wholesale at the start of a cycle. Partial updates go through
with_updates(), which coerces, validates and returns a new value.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import typing
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping

from dotenv import load_dotenv

from mmbot.core.enums import MarketMakingStrategy, VolumeStrategy
from mmbot.core.errors import ConfigInvalid
from mmbot.core.rounding import to_decimal
from mmbot.infra.logging_cfg import log_event

load_dotenv()


def env_bool(key: str, default: bool) -> bool:
    val = os.getenv(key)
    if val is None or val == "":
        return default
    return val.lower() in {"1", "true", "yes", "y"}


def _int_env(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    return int(raw)


def _float_env(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    return float(raw)


def _decimal_env(key: str, default: str) -> Decimal:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return Decimal(default)
    return to_decimal(raw)


def _coerce(name: str, hint: Any, value: Any) -> Any:
    """Coerce a raw override (env string, YAML scalar, JSON number) to the field's type."""
    try:
        if hint is bool:
            if isinstance(value, str):
                return value.strip().lower() in {"1", "true", "yes", "y"}
            return bool(value)
        if hint is int:
            if isinstance(value, bool):
                raise TypeError("bool is not an int")
            if isinstance(value, float) and not value.is_integer():
                raise ValueError("not an integer")
            return int(value)
        if hint is float:
            return float(value)
        if hint is Decimal:
            return to_decimal(value)
        if isinstance(hint, type) and issubclass(hint, Enum):
            return hint(str(value).upper())
    except (TypeError, ValueError) as exc:
        raise ConfigInvalid(name, f"cannot interpret {value!r}: {exc}") from exc
    return value


class _EngineConfig:
    """Shared update/serialization behaviour for frozen engine configs."""

    def validate(self) -> None:  # pragma: no cover - overridden
        raise NotImplementedError

    def with_updates(self, partial: Mapping[str, Any]) -> "_EngineConfig":
        """
        Return a validated copy with `partial` applied.

        Unknown keys and values that fail coercion raise ConfigInvalid; the
        current value is never touched.
        """
        hints = typing.get_type_hints(type(self))
        names = {f.name for f in dataclasses.fields(self)}
        changes: Dict[str, Any] = {}
        for key, raw in partial.items():
            if key not in names:
                raise ConfigInvalid(key, "unknown configuration key")
            changes[key] = _coerce(key, hints[key], raw)
        updated = dataclasses.replace(self, **changes)
        updated.validate()
        return updated

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in dataclasses.fields(self):
            val = getattr(self, f.name)
            if isinstance(val, Enum):
                val = val.value
            elif isinstance(val, Decimal):
                val = str(val)
            out[f.name] = val
        return out


@dataclass(frozen=True)
class MarketMakingConfig(_EngineConfig):
    enabled: bool = False
    monitoring_mode: bool = True
    strategy: MarketMakingStrategy = MarketMakingStrategy.BALANCED
    order_size: Decimal = Decimal("200")
    max_orders: int = 8
    levels: int = 5
    max_levels: int = 20
    level_distance_pct: Decimal = Decimal("0.5")
    max_rebalance_distance_pct: Decimal = Decimal("2.0")
    min_rebalance_age_sec: float = 120.0
    refresh_interval_sec: float = 30.0
    cancel_on_stop: bool = False

    def validate(self) -> None:
        if self.order_size <= 0:
            raise ConfigInvalid("order_size", "must be > 0")
        if self.max_orders < 0:
            raise ConfigInvalid("max_orders", "must be >= 0")
        if self.levels < 0:
            raise ConfigInvalid("levels", "must be >= 0")
        if self.max_levels < 1:
            raise ConfigInvalid("max_levels", "must be >= 1")
        if self.level_distance_pct <= 0:
            raise ConfigInvalid("level_distance_pct", "must be > 0")
        if self.max_rebalance_distance_pct <= 0:
            raise ConfigInvalid("max_rebalance_distance_pct", "must be > 0")
        if self.min_rebalance_age_sec < 0:
            raise ConfigInvalid("min_rebalance_age_sec", "must be >= 0")
        if self.refresh_interval_sec <= 0:
            raise ConfigInvalid("refresh_interval_sec", "must be > 0")

    @classmethod
    def from_env(cls) -> "MarketMakingConfig":
        cfg = cls(
            enabled=env_bool("MM_ENABLED", False),
            monitoring_mode=env_bool("MONITORING_MODE", True),
            strategy=_coerce("strategy", MarketMakingStrategy, os.getenv("MM_STRATEGY", "BALANCED")),
            order_size=_decimal_env("MM_ORDER_SIZE", "200"),
            max_orders=_int_env("MM_MAX_ORDERS", 8),
            levels=_int_env("MM_LEVELS", 5),
            max_levels=_int_env("MM_MAX_LEVELS", 20),
            level_distance_pct=_decimal_env("MM_LEVEL_DISTANCE", "0.5"),
            max_rebalance_distance_pct=_decimal_env("MM_MAX_REBALANCE_DISTANCE", "2.0"),
            min_rebalance_age_sec=_float_env("MM_MIN_REBALANCE_AGE_SEC", 120.0),
            refresh_interval_sec=_float_env("MM_REFRESH_INTERVAL", 30.0),
            cancel_on_stop=env_bool("MM_CANCEL_ON_STOP", False),
        )
        cfg.validate()
        return cfg


@dataclass(frozen=True)
class VolumeBoosterConfig(_EngineConfig):
    enabled: bool = False
    monitoring_mode: bool = True
    strategy: VolumeStrategy = VolumeStrategy.BALANCED
    min_trade_size: Decimal = Decimal("150")
    max_trade_size: Decimal = Decimal("300")
    size_step: Decimal = Decimal("1")
    cycle_interval_min_sec: float = 60.0
    cycle_interval_max_sec: float = 300.0
    balance_window: int = 20
    max_consecutive_side: int = 3
    burst_min_volume: Decimal = Decimal("500")
    burst_max_volume: Decimal = Decimal("6000")
    burst_min_executions: int = 15
    burst_max_executions: int = 30
    burst_max_trade_size: Decimal = Decimal("150")
    burst_price_spread_units: int = 20
    price_unit: Decimal = Decimal("0.000001")
    burst_micro_delay_min_sec: float = 0.05
    burst_micro_delay_max_sec: float = 0.2
    burst_max_spread_pct: Decimal = Decimal("5")

    def validate(self) -> None:
        if self.min_trade_size <= 0:
            raise ConfigInvalid("min_trade_size", "must be > 0")
        if self.max_trade_size < self.min_trade_size:
            raise ConfigInvalid("max_trade_size", "must be >= min_trade_size")
        if self.size_step <= 0:
            raise ConfigInvalid("size_step", "must be > 0")
        if self.cycle_interval_min_sec < 0:
            raise ConfigInvalid("cycle_interval_min_sec", "must be >= 0")
        if self.cycle_interval_max_sec < self.cycle_interval_min_sec:
            raise ConfigInvalid("cycle_interval_max_sec", "must be >= cycle_interval_min_sec")
        if self.balance_window < 1:
            raise ConfigInvalid("balance_window", "must be >= 1")
        if self.max_consecutive_side < 1:
            raise ConfigInvalid("max_consecutive_side", "must be >= 1")
        if self.burst_min_volume <= 0:
            raise ConfigInvalid("burst_min_volume", "must be > 0")
        if self.burst_max_volume < self.burst_min_volume:
            raise ConfigInvalid("burst_max_volume", "must be >= burst_min_volume")
        if self.burst_min_executions < 1:
            raise ConfigInvalid("burst_min_executions", "must be >= 1")
        if self.burst_max_executions < self.burst_min_executions:
            raise ConfigInvalid("burst_max_executions", "must be >= burst_min_executions")
        if self.burst_max_trade_size <= 0:
            raise ConfigInvalid("burst_max_trade_size", "must be > 0")
        if self.burst_price_spread_units < 0:
            raise ConfigInvalid("burst_price_spread_units", "must be >= 0")
        if self.price_unit <= 0:
            raise ConfigInvalid("price_unit", "must be > 0")
        if self.burst_micro_delay_min_sec < 0:
            raise ConfigInvalid("burst_micro_delay_min_sec", "must be >= 0")
        if self.burst_micro_delay_max_sec < self.burst_micro_delay_min_sec:
            raise ConfigInvalid("burst_micro_delay_max_sec", "must be >= burst_micro_delay_min_sec")
        if self.burst_max_spread_pct <= 0:
            raise ConfigInvalid("burst_max_spread_pct", "must be > 0")

    @classmethod
    def from_env(cls) -> "VolumeBoosterConfig":
        cfg = cls(
            enabled=env_bool("VB_ENABLED", False),
            monitoring_mode=env_bool("MONITORING_MODE", True),
            strategy=_coerce("strategy", VolumeStrategy, os.getenv("VB_STRATEGY", "BALANCED")),
            min_trade_size=_decimal_env("VB_MIN_TRADE_SIZE", "150"),
            max_trade_size=_decimal_env("VB_MAX_TRADE_SIZE", "300"),
            size_step=_decimal_env("VB_SIZE_STEP", "1"),
            cycle_interval_min_sec=_float_env("VB_CYCLE_INTERVAL_MIN", 60.0),
            cycle_interval_max_sec=_float_env("VB_CYCLE_INTERVAL_MAX", 300.0),
            balance_window=_int_env("VB_BALANCE_WINDOW", 20),
            max_consecutive_side=_int_env("VB_MAX_CONSECUTIVE_SIDE", 3),
            burst_min_volume=_decimal_env("VB_BURST_MIN_VOLUME", "500"),
            burst_max_volume=_decimal_env("VB_BURST_MAX_VOLUME", "6000"),
            burst_min_executions=_int_env("VB_BURST_MIN_EXECUTIONS", 15),
            burst_max_executions=_int_env("VB_BURST_MAX_EXECUTIONS", 30),
            burst_max_trade_size=_decimal_env("VB_BURST_MAX_TRADE_SIZE", "150"),
            burst_price_spread_units=_int_env("VB_BURST_PRICE_SPREAD_UNITS", 20),
            price_unit=_decimal_env("VB_PRICE_UNIT", "0.000001"),
            burst_micro_delay_min_sec=_float_env("VB_BURST_MICRO_DELAY_MIN", 0.05),
            burst_micro_delay_max_sec=_float_env("VB_BURST_MICRO_DELAY_MAX", 0.2),
            burst_max_spread_pct=_decimal_env("VB_BURST_MAX_SPREAD_PCT", "5"),
        )
        cfg.validate()
        return cfg


@dataclass(frozen=True)
class Settings:
    pairs: List[str]
    mexc_api_key: str | None
    mexc_secret_key: str | None
    mexc_base_url: str
    http_timeout: float
    log_level: str
    log_file: str | None
    metrics_port: int
    pair_config_path: str
    market_making: MarketMakingConfig = field(default_factory=MarketMakingConfig)
    volume_booster: VolumeBoosterConfig = field(default_factory=VolumeBoosterConfig)

    def dump(self) -> dict:
        """Return a dict of settings for sanity checks/logging, secrets masked."""
        out = {
            "pairs": list(self.pairs),
            "mexc_api_key": _mask(self.mexc_api_key),
            "mexc_secret_key": _mask(self.mexc_secret_key),
            "mexc_base_url": self.mexc_base_url,
            "http_timeout": self.http_timeout,
            "log_level": self.log_level,
            "log_file": self.log_file,
            "metrics_port": self.metrics_port,
            "pair_config_path": self.pair_config_path,
            "market_making": self.market_making.to_dict(),
            "volume_booster": self.volume_booster.to_dict(),
        }
        return out

    @property
    def has_credentials(self) -> bool:
        return bool(self.mexc_api_key and self.mexc_secret_key)

    @staticmethod
    def _pairs() -> List[str]:
        raw = os.getenv("PAIRS")
        if not raw:
            return [os.getenv("PAIR", "ILMTUSDT")]
        return [p.strip().upper() for p in raw.split(",") if p.strip()]

    @classmethod
    def load(cls) -> "Settings":
        try:
            cfg = cls(
                pairs=cls._pairs(),
                mexc_api_key=os.getenv("MEXC_API_KEY") or None,
                mexc_secret_key=os.getenv("MEXC_SECRET_KEY") or None,
                mexc_base_url=os.getenv("MEXC_BASE_URL", "https://api.mexc.com"),
                http_timeout=_float_env("HTTP_TIMEOUT", 10.0),
                log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
                log_file=os.getenv("LOG_FILE", "mmbot.log") or None,
                metrics_port=_int_env("METRICS_PORT", 0),
                pair_config_path=os.getenv("PAIR_CONFIG", "configs/pairs.yaml"),
                market_making=MarketMakingConfig.from_env(),
                volume_booster=VolumeBoosterConfig.from_env(),
            )
        except ValueError as exc:
            if isinstance(exc, ConfigInvalid):
                raise
            raise ConfigInvalid("env", str(exc)) from exc
        cfg._validate()
        _sanity_check(cfg)
        return cfg

    def _validate(self) -> None:
        if not self.pairs:
            raise ConfigInvalid("pairs", "at least one trading pair is required")
        if self.http_timeout <= 0:
            raise ConfigInvalid("http_timeout", "must be > 0")
        if self.metrics_port < 0:
            raise ConfigInvalid("metrics_port", "must be >= 0")
        live = (
            (self.market_making.enabled and not self.market_making.monitoring_mode)
            or (self.volume_booster.enabled and not self.volume_booster.monitoring_mode)
        )
        if live and not self.has_credentials:
            raise ConfigInvalid("mexc_api_key", "live trading requires MEXC_API_KEY and MEXC_SECRET_KEY")


def _mask(secret: str | None) -> str | None:
    if not secret:
        return None
    return f"{secret[:4]}..."


def _sanity_check(cfg: Settings) -> None:
    """
    Log critical settings once at startup so overrides are obvious.
    """
    logger = logging.getLogger("mmbot")
    log_event(
        logger,
        "config_loaded",
        pairs=cfg.pairs,
        mm_enabled=cfg.market_making.enabled,
        mm_levels=cfg.market_making.levels,
        mm_level_distance_pct=str(cfg.market_making.level_distance_pct),
        mm_max_rebalance_distance_pct=str(cfg.market_making.max_rebalance_distance_pct),
        vb_enabled=cfg.volume_booster.enabled,
        vb_strategy=cfg.volume_booster.strategy.value,
        monitoring_mode=cfg.market_making.monitoring_mode or cfg.volume_booster.monitoring_mode,
    )
