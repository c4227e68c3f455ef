"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .models import PricePreferences

logger = logging.getLogger(__name__)

BLND_TOKEN_ADDRESS = "CD25MNVTZDL4Y3XBCPCJXGXATV5WUHHOWMYFF4YBEGU5FCPGMYTVG5JY"
LP_TOKEN_ADDRESS = "CDMHROXQ75GEMEJ4LJCT4TUFKY7PH5Z7V5RCVS4KKGU2CQLQRN35DKFT"

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccountConfig:
    label: str = ""
    address: str = ""


@dataclass(frozen=True)
class ApiConfig:
    endpoints: tuple[str, ...] = ()
    timeout: int = 30
    page_size: int = 500


@dataclass(frozen=True)
class AssetConfig:
    symbol: str = ""
    decimals: int | None = None
    pegged_currency: str | None = None


@dataclass(frozen=True)
class TokensConfig:
    blnd_address: str = BLND_TOKEN_ADDRESS
    lp_address: str = LP_TOKEN_ADDRESS
    default_decimals: int = 7
    display_currency: str = "USD"
    assets: dict[str, AssetConfig] = field(default_factory=dict)

    def pegged_assets(self) -> frozenset[str]:
        """Addresses whose value is defined as 1 unit of the display currency."""
        currency = self.display_currency.upper()
        return frozenset(
            address
            for address, asset in self.assets.items()
            if asset.pegged_currency and asset.pegged_currency.upper() == currency
        )


@dataclass(frozen=True)
class RefreshConfig:
    interval_minutes: int = 5
    snapshot_max_lag_seconds: int = 120


@dataclass(frozen=True)
class AppConfig:
    accounts: tuple[AccountConfig, ...] = ()
    api: ApiConfig = field(default_factory=ApiConfig)
    tokens: TokensConfig = field(default_factory=TokensConfig)
    preferences: PricePreferences = field(default_factory=PricePreferences)
    refresh: RefreshConfig = field(default_factory=RefreshConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


def _as_bool(value: Any, default: bool) -> bool:
    """YAML gives real booleans; env interpolation gives strings."""
    if value is None or value == "":
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_accounts(raw: list[dict[str, Any]]) -> tuple[AccountConfig, ...]:
    accounts: list[AccountConfig] = []
    for a in raw:
        accounts.append(
            AccountConfig(
                label=a.get("label", ""),
                address=a.get("address", ""),
            )
        )
    return tuple(accounts)


def _build_api(raw: dict[str, Any]) -> ApiConfig:
    return ApiConfig(
        endpoints=tuple(raw.get("endpoints", [])),
        timeout=int(raw.get("timeout", 30)),
        page_size=int(raw.get("page_size", 500)),
    )


def _build_assets(raw: dict[str, Any]) -> dict[str, AssetConfig]:
    assets: dict[str, AssetConfig] = {}
    for address, cfg in raw.items():
        decimals = cfg.get("decimals")
        assets[address] = AssetConfig(
            symbol=cfg.get("symbol", ""),
            decimals=int(decimals) if decimals is not None else None,
            pegged_currency=cfg.get("pegged_currency") or None,
        )
    return assets


def _build_tokens(raw: dict[str, Any]) -> TokensConfig:
    return TokensConfig(
        blnd_address=raw.get("blnd_address", BLND_TOKEN_ADDRESS),
        lp_address=raw.get("lp_address", LP_TOKEN_ADDRESS),
        default_decimals=int(raw.get("default_decimals", 7)),
        display_currency=raw.get("display_currency", "USD"),
        assets=_build_assets(raw.get("assets", {})),
    )


def _build_preferences(raw: dict[str, Any]) -> PricePreferences:
    return PricePreferences(
        show_price_changes=_as_bool(raw.get("show_price_changes"), False),
        use_historical_blnd_prices=_as_bool(
            raw.get("use_historical_blnd_prices"), True
        ),
    )


def _build_refresh(raw: dict[str, Any]) -> RefreshConfig:
    return RefreshConfig(
        interval_minutes=int(raw.get("interval_minutes", 5)),
        snapshot_max_lag_seconds=int(raw.get("snapshot_max_lag_seconds", 120)),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (two levels up from this file).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        accounts=_build_accounts(raw.get("accounts", [])),
        api=_build_api(raw.get("api", {})),
        tokens=_build_tokens(raw.get("tokens", {})),
        preferences=_build_preferences(raw.get("preferences", {})),
        refresh=_build_refresh(raw.get("refresh", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.accounts:
        raise ValueError("At least one account must be configured")

    for account in cfg.accounts:
        if not account.address:
            raise ValueError(f"Account '{account.label}' has no address")

    if not cfg.api.endpoints:
        raise ValueError("At least one API endpoint must be configured")

    if cfg.tokens.default_decimals < 0:
        raise ValueError("tokens.default_decimals must not be negative")

    if cfg.refresh.interval_minutes <= 0:
        raise ValueError("refresh.interval_minutes must be positive")
