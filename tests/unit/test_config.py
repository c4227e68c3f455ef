"""Unit tests for config loading, env interpolation, and validation."""
from __future__ import annotations

from pathlib import Path

import pytest

from blend_pnl.config import (
    BLND_TOKEN_ADDRESS,
    AppConfig,
    AssetConfig,
    RefreshConfig,
    TokensConfig,
    _as_bool,
    _interpolate_env,
    load_config,
)
from factories import ACCOUNT, USDC, XLM

MINIMAL_API = """\
api:
  endpoints: ["https://api.test.com"]
"""


def _write(tmp_path: Path, content: str) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(content)
    return cfg_file


class TestInterpolateEnv:
    def test_simple_substitution(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MY_VAR", "hello")
        assert _interpolate_env("${MY_VAR}") == "hello"

    def test_missing_var_becomes_empty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NONEXISTENT_VAR_XYZ", raising=False)
        assert _interpolate_env("${NONEXISTENT_VAR_XYZ}") == ""

    def test_nested(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("A", "x")
        assert _interpolate_env({"k": ["${A}", "y"]}) == {"k": ["x", "y"]}

    def test_non_string_passthrough(self) -> None:
        assert _interpolate_env(42) == 42
        assert _interpolate_env(True) is True


class TestAsBool:
    @pytest.mark.parametrize("value", ["true", "TRUE", "1", "yes", "on", True])
    def test_truthy(self, value) -> None:
        assert _as_bool(value, False) is True

    @pytest.mark.parametrize("value", ["false", "0", "no", False])
    def test_falsy(self, value) -> None:
        assert _as_bool(value, True) is False

    def test_empty_uses_default(self) -> None:
        assert _as_bool("", True) is True
        assert _as_bool(None, False) is False


class TestLoadConfig:
    def test_loads_valid_yaml(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        assert isinstance(cfg, AppConfig)
        assert cfg.accounts[0].address == ACCOUNT
        assert cfg.api.timeout == 10
        assert cfg.api.page_size == 500
        assert cfg.tokens.assets[USDC].pegged_currency == "USD"
        assert cfg.tokens.assets[XLM].decimals is None
        assert cfg.tokens.blnd_address == BLND_TOKEN_ADDRESS
        assert cfg.preferences.show_price_changes is True
        assert cfg.preferences.use_historical_blnd_prices is False
        assert cfg.refresh.interval_minutes == 10
        assert cfg.refresh.snapshot_max_lag_seconds == 120

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nonexistent.yaml")

    def test_env_interpolation_in_yaml(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("TEST_ADDR", "GABCDEF")
        monkeypatch.setenv("SHOW_PRICES", "true")
        cfg = load_config(
            _write(
                tmp_path,
                "accounts:\n  - label: a\n    address: \"${TEST_ADDR}\"\n"
                + MINIMAL_API
                + "preferences:\n  show_price_changes: \"${SHOW_PRICES}\"\n",
            )
        )
        assert cfg.accounts[0].address == "GABCDEF"
        assert cfg.preferences.show_price_changes is True

    def test_defaults(self, tmp_path: Path) -> None:
        cfg = load_config(
            _write(tmp_path, "accounts:\n  - label: a\n    address: G1\n" + MINIMAL_API)
        )
        assert cfg.tokens.default_decimals == 7
        assert cfg.tokens.display_currency == "USD"
        assert cfg.preferences.show_price_changes is False
        assert cfg.refresh == RefreshConfig()


class TestValidation:
    def test_no_accounts_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="At least one account"):
            load_config(_write(tmp_path, "accounts: []\n" + MINIMAL_API))

    def test_empty_address_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="no address"):
            load_config(
                _write(tmp_path, "accounts:\n  - label: a\n    address: \"\"\n" + MINIMAL_API)
            )

    def test_no_endpoints_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="API endpoint"):
            load_config(_write(tmp_path, "accounts:\n  - label: a\n    address: G1\n"))

    def test_bad_interval_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="interval_minutes"):
            load_config(
                _write(
                    tmp_path,
                    "accounts:\n  - label: a\n    address: G1\n"
                    + MINIMAL_API
                    + "refresh:\n  interval_minutes: 0\n",
                )
            )

    def test_empty_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            load_config(_write(tmp_path, ""))


class TestTokensConfig:
    def test_pegged_assets_match_display_currency(self) -> None:
        tokens = TokensConfig(
            assets={
                USDC: AssetConfig("USDC", 7, "usd"),
                "CEURC": AssetConfig("EURC", 7, "EUR"),
                XLM: AssetConfig("XLM"),
            }
        )
        assert tokens.pegged_assets() == frozenset({USDC})

    def test_pegged_assets_follow_currency(self) -> None:
        tokens = TokensConfig(
            display_currency="EUR",
            assets={USDC: AssetConfig("USDC", 7, "USD"), "CEURC": AssetConfig("EURC", 7, "EUR")},
        )
        assert tokens.pegged_assets() == frozenset({"CEURC"})

    def test_immutable(self) -> None:
        with pytest.raises(AttributeError):
            TokensConfig().default_decimals = 6  # type: ignore[misc]
