"""
Configuration package.

This package contains configuration loading, validation, and per-pair overrides.
"""

from mmbot.config.config import MarketMakingConfig, Settings, VolumeBoosterConfig
from mmbot.config.config_validator import ConfigValidator, validate_and_log
from mmbot.config.pair_config import load_pair_overrides, resolve_pair_configs

__all__ = [
    "MarketMakingConfig",
    "VolumeBoosterConfig",
    "Settings",
    "ConfigValidator",
    "validate_and_log",
    "load_pair_overrides",
    "resolve_pair_configs",
]
