"""Load per-pair configuration overrides from YAML.

Optional file path via env `PAIR_CONFIG`, default `configs/pairs.yaml`.
Returns a dict mapping pair -> {"market_making": {...}, "volume_booster": {...}}.

Example file:

    ILMTUSDT:
      market_making:
        levels: 3
        level_distance_pct: 0.3
      volume_booster:
        enabled: true
        strategy: SMART_SPREAD
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Tuple

import yaml

from mmbot.config.config import MarketMakingConfig, VolumeBoosterConfig

log = logging.getLogger("mmbot.config")

SECTIONS = ("market_making", "volume_booster")


def load_pair_overrides(path: str | None = None) -> Dict[str, Dict[str, Dict[str, Any]]]:
    if path is None:
        path = os.getenv("PAIR_CONFIG", "configs/pairs.yaml")
    p = Path(path)
    if not p.exists():
        return {}
    try:
        with p.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        log.warning(f"pair config {path} unreadable: {exc}")
        return {}
    if not isinstance(data, dict):
        return {}
    out: Dict[str, Dict[str, Dict[str, Any]]] = {}
    for pair, sections in data.items():
        if not isinstance(sections, dict):
            continue
        entry = {}
        for name in SECTIONS:
            section = sections.get(name)
            if isinstance(section, dict):
                entry[name] = dict(section)
        out[str(pair).upper()] = entry
    return out


def resolve_pair_configs(
    pair: str,
    mm_base: MarketMakingConfig,
    vb_base: VolumeBoosterConfig,
    overrides: Dict[str, Dict[str, Dict[str, Any]]],
) -> Tuple[MarketMakingConfig, VolumeBoosterConfig]:
    """Apply a pair's overrides on top of the env-level configs. Raises ConfigInvalid."""
    entry = overrides.get(pair.upper(), {})
    mm = mm_base.with_updates(entry["market_making"]) if entry.get("market_making") else mm_base
    vb = vb_base.with_updates(entry["volume_booster"]) if entry.get("volume_booster") else vb_base
    return mm, vb
