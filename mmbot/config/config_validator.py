"""
Configuration validation for startup safety.

Settings.load() already rejects values that would break the engines outright
(ConfigInvalid). This module applies the operational range checks on top:
values that are legal but outside what the exchange setup was tuned for are
reported as ERROR, and risky-but-usable ones as WARNING.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum, auto
from typing import Any, Callable, Dict, List, Optional, Tuple

from mmbot.core.enums import VolumeStrategy
from mmbot.gateway.symbols import spec_for

logger = logging.getLogger("mmbot.config")


class ValidationSeverity(Enum):
    """Severity levels for validation issues."""
    ERROR = auto()    # Blocks startup
    WARNING = auto()  # Logs warning but allows startup
    INFO = auto()


@dataclass
class ValidationIssue:
    """A single validation issue."""
    field: str
    message: str
    severity: ValidationSeverity
    value: Any = None
    suggestion: Optional[str] = None


@dataclass
class ValidationResult:
    """Result of config validation."""
    valid: bool
    issues: List[ValidationIssue] = field(default_factory=list)

    def has_errors(self) -> bool:
        return any(i.severity == ValidationSeverity.ERROR for i in self.issues)

    def has_warnings(self) -> bool:
        return any(i.severity == ValidationSeverity.WARNING for i in self.issues)

    def get_errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.ERROR]

    def get_warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.WARNING]


class ConfigValidator:
    """
    Validates Settings for operational safety.

    Checks:
    - Market-making numeric ranges (only when market making is enabled)
    - Volume-booster numeric ranges (only when the booster is enabled)
    - Credentials for live trading
    - Order sizes against each pair's exchange minimum
    - Risky but valid combinations
    """

    # (min, max) per dotted field path
    MM_RANGES: Dict[str, Tuple[float, float]] = {
        "levels": (1, 20),
        "level_distance_pct": (0.1, 5.0),
        "max_orders": (1, 50),
        "refresh_interval_sec": (10.0, 300.0),
        "order_size": (1.0, 1000.0),
        "max_rebalance_distance_pct": (1.0, 20.0),
        "min_rebalance_age_sec": (0.0, 3600.0),
    }

    VB_RANGES: Dict[str, Tuple[float, float]] = {
        "min_trade_size": (1.0, 100_000.0),
        "max_trade_size": (1.0, 100_000.0),
        "cycle_interval_min_sec": (1.0, 3600.0),
        "cycle_interval_max_sec": (1.0, 7200.0),
        "balance_window": (2, 200),
        "max_consecutive_side": (1, 20),
        "burst_min_executions": (1, 200),
        "burst_max_executions": (1, 200),
        "burst_price_spread_units": (0, 1000),
        "burst_max_spread_pct": (0.1, 50.0),
    }

    def __init__(self) -> None:
        self._custom_validators: List[Callable[[Any], List[ValidationIssue]]] = []

    def register_validator(self, validator: Callable[[Any], List[ValidationIssue]]) -> None:
        """Register a custom validation function."""
        self._custom_validators.append(validator)

    def validate(self, cfg) -> ValidationResult:
        issues: List[ValidationIssue] = []

        if cfg.market_making.enabled:
            issues.extend(self._validate_ranges("market_making", cfg.market_making, self.MM_RANGES))
        if cfg.volume_booster.enabled:
            issues.extend(self._validate_ranges("volume_booster", cfg.volume_booster, self.VB_RANGES))
        issues.extend(self._validate_pairs(cfg))
        issues.extend(self._validate_credentials(cfg))
        issues.extend(self._validate_symbol_minimums(cfg))
        issues.extend(self._check_risky_configs(cfg))

        for validator in self._custom_validators:
            try:
                custom_issues = validator(cfg)
                if custom_issues:
                    issues.extend(custom_issues)
            except Exception as e:
                logger.warning(f"Custom validator error: {e}")

        has_errors = any(i.severity == ValidationSeverity.ERROR for i in issues)
        return ValidationResult(valid=not has_errors, issues=issues)

    def _validate_ranges(self, section: str, sub_cfg, ranges: Dict[str, Tuple[float, float]]) -> List[ValidationIssue]:
        issues = []
        for field_name, (min_val, max_val) in ranges.items():
            path = f"{section}.{field_name}"
            value = getattr(sub_cfg, field_name, None)
            try:
                num_value = float(value)
            except (TypeError, ValueError):
                issues.append(ValidationIssue(
                    field=path,
                    message=f"'{path}' has invalid numeric value: {value}",
                    severity=ValidationSeverity.ERROR,
                    value=value,
                ))
                continue
            if num_value < min_val:
                issues.append(ValidationIssue(
                    field=path,
                    message=f"'{path}' value {num_value} is below minimum {min_val}",
                    severity=ValidationSeverity.ERROR,
                    value=num_value,
                    suggestion=f"Set to at least {min_val}",
                ))
            elif num_value > max_val:
                issues.append(ValidationIssue(
                    field=path,
                    message=f"'{path}' value {num_value} is above maximum {max_val}",
                    severity=ValidationSeverity.ERROR,
                    value=num_value,
                    suggestion=f"Set to at most {max_val}",
                ))
        return issues

    def _validate_pairs(self, cfg) -> List[ValidationIssue]:
        issues = []
        pairs = getattr(cfg, "pairs", None)
        if not pairs:
            issues.append(ValidationIssue(
                field="pairs",
                message="No trading pairs configured",
                severity=ValidationSeverity.ERROR,
                suggestion="Set PAIRS (comma separated, e.g. ILMTUSDT)",
            ))
            return issues
        for pair in pairs:
            if not pair.isalnum():
                issues.append(ValidationIssue(
                    field="pairs",
                    message=f"Invalid pair format '{pair}', expected an exchange symbol such as 'ILMTUSDT'",
                    severity=ValidationSeverity.ERROR,
                    value=pair,
                ))
        if len(pairs) > 10:
            issues.append(ValidationIssue(
                field="pairs",
                message=f"Trading {len(pairs)} pairs may hit exchange rate limits",
                severity=ValidationSeverity.WARNING,
                value=len(pairs),
            ))
        return issues

    def _validate_credentials(self, cfg) -> List[ValidationIssue]:
        issues = []
        live = (
            (cfg.market_making.enabled and not cfg.market_making.monitoring_mode)
            or (cfg.volume_booster.enabled and not cfg.volume_booster.monitoring_mode)
        )
        if live and not (cfg.mexc_api_key and cfg.mexc_secret_key):
            issues.append(ValidationIssue(
                field="mexc_api_key",
                message="Live trading enabled without exchange credentials",
                severity=ValidationSeverity.ERROR,
                suggestion="Set MEXC_API_KEY and MEXC_SECRET_KEY or enable MONITORING_MODE",
            ))
        return issues

    def _validate_symbol_minimums(self, cfg) -> List[ValidationIssue]:
        """Sizes the exchange would refuse on every order for a configured pair."""
        issues = []
        mm = cfg.market_making
        vb = cfg.volume_booster
        sizes = []
        if mm.enabled:
            sizes.append(("market_making.order_size", mm.order_size, ValidationSeverity.ERROR, "order size"))
        if vb.enabled:
            sizes.append(("volume_booster.min_trade_size", vb.min_trade_size, ValidationSeverity.ERROR, "minimum trade size"))
            if vb.strategy == VolumeStrategy.HIGH_VOLUME_BURST:
                smallest = min(vb.burst_min_volume / vb.burst_max_executions, vb.burst_max_trade_size)
                sizes.append((
                    "volume_booster.burst_min_volume",
                    smallest.quantize(Decimal("0.01")),
                    ValidationSeverity.WARNING,
                    "smallest planned burst trade (burst_min_volume / burst_max_executions)",
                ))
        for pair in cfg.pairs or []:
            minimum = spec_for(pair).min_quantity
            for path, size, severity, what in sizes:
                if size < minimum:
                    issues.append(ValidationIssue(
                        field=path,
                        message=f"{pair}: {what} {size} is below the exchange minimum quantity {minimum}, such orders are rejected",
                        severity=severity,
                        value=str(size),
                    ))
        return issues

    def _check_risky_configs(self, cfg) -> List[ValidationIssue]:
        """Check for risky but valid configurations."""
        issues = []
        mm = cfg.market_making
        vb = cfg.volume_booster

        if not mm.enabled and not vb.enabled:
            issues.append(ValidationIssue(
                field="enabled",
                message="Neither market making nor volume booster is enabled",
                severity=ValidationSeverity.WARNING,
                suggestion="Set MM_ENABLED=true or VB_ENABLED=true",
            ))

        if mm.enabled and mm.max_rebalance_distance_pct <= mm.level_distance_pct:
            # outer rungs sit beyond the rebalance threshold right after placement
            issues.append(ValidationIssue(
                field="market_making.max_rebalance_distance_pct",
                message=(
                    f"Rebalance distance ({mm.max_rebalance_distance_pct}%) is not wider than "
                    f"level spacing ({mm.level_distance_pct}%), ladder will churn"
                ),
                severity=ValidationSeverity.WARNING,
                value=str(mm.max_rebalance_distance_pct),
            ))

        if mm.enabled and mm.min_rebalance_age_sec < mm.refresh_interval_sec:
            issues.append(ValidationIssue(
                field="market_making.min_rebalance_age_sec",
                message="Rebalance age guard shorter than one refresh interval",
                severity=ValidationSeverity.WARNING,
                value=mm.min_rebalance_age_sec,
            ))

        if vb.enabled and vb.strategy == VolumeStrategy.HIGH_VOLUME_BURST and vb.burst_max_volume > vb.burst_max_trade_size * vb.burst_max_executions:
            issues.append(ValidationIssue(
                field="volume_booster.burst_max_volume",
                message="Burst volume target cannot be reached within burst_max_executions at burst_max_trade_size",
                severity=ValidationSeverity.WARNING,
                value=str(vb.burst_max_volume),
            ))

        if (mm.enabled and not mm.monitoring_mode) or (vb.enabled and not vb.monitoring_mode):
            issues.append(ValidationIssue(
                field="monitoring_mode",
                message="Live trading enabled, orders will reach the exchange",
                severity=ValidationSeverity.WARNING,
            ))

        return issues


def validate_config(cfg) -> ValidationResult:
    validator = ConfigValidator()
    return validator.validate(cfg)


def validate_and_log(cfg, logger_instance=None) -> bool:
    """
    Validate config and log all issues.

    Returns:
        True if config is valid (no errors), False otherwise
    """
    log = logger_instance or logger
    result = validate_config(cfg)

    for issue in result.get_errors():
        msg = f"CONFIG ERROR: {issue.message}"
        if issue.suggestion:
            msg += f" (suggestion: {issue.suggestion})"
        log.error(msg)

    for issue in result.get_warnings():
        msg = f"CONFIG WARNING: {issue.message}"
        if issue.suggestion:
            msg += f" (suggestion: {issue.suggestion})"
        log.warning(msg)

    if result.valid:
        log.info("Configuration validation passed")
    else:
        log.error(f"Configuration validation failed with {len(result.get_errors())} error(s)")

    return result.valid
