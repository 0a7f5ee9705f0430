"""Configuration for explorer API access and normalization.

Settings are resolved from environment variables, then
``config/ledgerlens.yaml``, then defaults. All settings are exposed via the
``ExplorerConfig`` dataclass.
"""
from __future__ import annotations

import os
import pathlib
from dataclasses import dataclass, field, fields
from typing import Optional, Union

import yaml

EXPLORER_MAINNET_URL = "https://explorerapi.avax.network"
EXPLORER_TESTNET_URL = "https://explorerapi.avax-test.network"

# Native asset of the primary network; transaction fees are charged in it.
MAINNET_FEE_ASSET_ID = "FvwEAhmxKfeiG8SnEvq42hc6whRyY3EFYAvebMqDNDGCgxN5Z"

DEFAULT_CONFIG_PATH = pathlib.Path("config/ledgerlens.yaml")

DEFAULT_REQUEST_TIMEOUT_SECONDS = 10.0
DEFAULT_RETRY_BASE_SECONDS = 0.5
DEFAULT_RETRY_MAX_SECONDS = 8.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_ASSET_CACHE_TTL_SECONDS = 3600.0

_ENV_VARS = {
    "api_url": "LEDGERLENS_API_URL",
    "transactions_endpoint": "LEDGERLENS_TRANSACTIONS_ENDPOINT",
    "assets_endpoint": "LEDGERLENS_ASSETS_ENDPOINT",
    "blocks_endpoint": "LEDGERLENS_BLOCKS_ENDPOINT",
    "fee_asset_id": "LEDGERLENS_FEE_ASSET_ID",
}


@dataclass(frozen=True)
class ExplorerConfig:
    """Immutable configuration for an explorer API session."""

    api_url: str = field(
        default_factory=lambda: os.environ.get(
            "LEDGERLENS_API_URL", EXPLORER_MAINNET_URL
        )
    )
    transactions_endpoint: str = field(
        default_factory=lambda: os.environ.get(
            "LEDGERLENS_TRANSACTIONS_ENDPOINT", "/v2/transactions"
        )
    )
    assets_endpoint: str = field(
        default_factory=lambda: os.environ.get(
            "LEDGERLENS_ASSETS_ENDPOINT", "/v2/assets"
        )
    )
    blocks_endpoint: str = field(
        default_factory=lambda: os.environ.get(
            "LEDGERLENS_BLOCKS_ENDPOINT", "/v2/blocks"
        )
    )
    fee_asset_id: Optional[str] = field(
        default_factory=lambda: os.environ.get(
            "LEDGERLENS_FEE_ASSET_ID", MAINNET_FEE_ASSET_ID
        )
    )
    request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    retry_base_seconds: float = DEFAULT_RETRY_BASE_SECONDS
    retry_max_seconds: float = DEFAULT_RETRY_MAX_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES
    asset_cache_ttl_seconds: float = DEFAULT_ASSET_CACHE_TTL_SECONDS
    degrade_unknown_outputs: bool = True


def load_config(path: Union[str, pathlib.Path, None] = None) -> ExplorerConfig:
    """Build an ``ExplorerConfig``, preferring env vars over the YAML file.

    The YAML file is expected to hold an ``explorer`` mapping whose keys are
    ``ExplorerConfig`` field names. Unknown keys are ignored.
    """
    config_path = pathlib.Path(path) if path is not None else DEFAULT_CONFIG_PATH
    if not config_path.exists():
        return ExplorerConfig()

    with open(config_path) as f:
        cfg = yaml.safe_load(f) or {}
    section = cfg.get("explorer", {}) or {}

    known = {f.name for f in fields(ExplorerConfig)}
    kwargs = {}
    for key, value in section.items():
        if key not in known:
            continue
        env_var = _ENV_VARS.get(key)
        if env_var and os.environ.get(env_var):
            continue
        kwargs[key] = value
    return ExplorerConfig(**kwargs)
