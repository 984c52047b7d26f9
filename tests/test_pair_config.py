from decimal import Decimal

import pytest

from mmbot.config.config import MarketMakingConfig, VolumeBoosterConfig
from mmbot.config.pair_config import load_pair_overrides, resolve_pair_configs
from mmbot.core.enums import VolumeStrategy
from mmbot.core.errors import ConfigInvalid

YAML = """
ilmtusdt:
  market_making:
    levels: 3
    level_distance_pct: 0.3
  volume_booster:
    enabled: true
    strategy: smart_spread
BTCUSDT:
  market_making:
    enabled: false
JUNK: 42
"""


def test_load_pair_overrides_from_env(tmp_path, monkeypatch):
    p = tmp_path / "pairs.yaml"
    p.write_text(YAML)
    monkeypatch.setenv("PAIR_CONFIG", str(p))

    overrides = load_pair_overrides()

    assert set(overrides) == {"ILMTUSDT", "BTCUSDT"}
    assert overrides["ILMTUSDT"]["market_making"] == {"levels": 3, "level_distance_pct": 0.3}
    assert "volume_booster" not in overrides["BTCUSDT"]


def test_missing_file_is_empty(tmp_path):
    assert load_pair_overrides(str(tmp_path / "absent.yaml")) == {}


def test_unparseable_file_is_empty(tmp_path):
    p = tmp_path / "bad.yaml"
    p.write_text("ILMTUSDT: [unclosed\n")
    assert load_pair_overrides(str(p)) == {}


def test_resolve_applies_overrides(tmp_path):
    p = tmp_path / "pairs.yaml"
    p.write_text(YAML)
    overrides = load_pair_overrides(str(p))

    mm, vb = resolve_pair_configs("ILMTUSDT", MarketMakingConfig(enabled=True), VolumeBoosterConfig(), overrides)

    assert mm.enabled is True
    assert mm.levels == 3
    assert mm.level_distance_pct == Decimal("0.3")
    assert vb.enabled is True
    assert vb.strategy is VolumeStrategy.SMART_SPREAD


def test_resolve_without_entry_returns_base():
    mm_base, vb_base = MarketMakingConfig(), VolumeBoosterConfig()
    assert resolve_pair_configs("ETHUSDT", mm_base, vb_base, {}) == (mm_base, vb_base)


def test_invalid_override_raises():
    overrides = {"ILMTUSDT": {"market_making": {"levels": -2}}}
    with pytest.raises(ConfigInvalid):
        resolve_pair_configs("ILMTUSDT", MarketMakingConfig(), VolumeBoosterConfig(), overrides)
