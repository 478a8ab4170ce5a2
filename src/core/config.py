"""Config loading — env vars for secrets, config.toml for everything else."""

from __future__ import annotations

import os
import tomllib
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from src.core.errors import ConfigError

# ── Enums ──────────────────────────────────────────────────────────────


class Network(str, Enum):
    BEPOLIA = "bepolia"
    ARTIO = "artio"
    LOCAL = "local"


# ── Network presets ────────────────────────────────────────────────────

NATIVE_ADDRESS = "0x0000000000000000000000000000000000000000"

_PRESETS: dict[Network, dict[str, Any]] = {
    Network.BEPOLIA: {
        "chain_id": 80069,
        "rpc_url": "https://bepolia.rpc.berachain.com",
        "bundle_factory": "0x7833346181fAA24a77b3D8484a8B00703AfE1E53",
        "router": "0x19D1666f543D42ef17F66E376944A22aEa1a8E46",
        "wrapped_native": "0x6969696969696969696969696969696969696969",
        "pricing_token": "0x93B0c7AF3A1772919b56b1A2bE9966204dD39082",
        "native_symbol": "BERA",
    },
    Network.ARTIO: {
        "chain_id": 80085,
        "rpc_url": "https://artio.rpc.berachain.com",
        "bundle_factory": "0x7833346181fAA24a77b3D8484a8B00703AfE1E53",
        "router": "0x19D1666f543D42ef17F66E376944A22aEa1a8E46",
        "wrapped_native": "0x7507c1dc16935B82698e4C63f2746A2fCf994dF8",
        "pricing_token": "0x93B0c7AF3A1772919b56b1A2bE9966204dD39082",
        "native_symbol": "BERA",
    },
    Network.LOCAL: {
        "chain_id": 31337,
        "rpc_url": "http://127.0.0.1:8545",
        "bundle_factory": NATIVE_ADDRESS,
        "router": NATIVE_ADDRESS,
        "wrapped_native": NATIVE_ADDRESS,
        "pricing_token": NATIVE_ADDRESS,
        "native_symbol": "ETH",
    },
}


# ── Models ─────────────────────────────────────────────────────────────


class ChainConfig(BaseModel):
    """Where the ledger lives and which account signs.

    Any field left empty is filled from the network preset.
    """

    network: Network = Network.BEPOLIA
    chain_id: int = 0
    rpc_url: str = ""
    account: str = Field(default="", description="Address the signing agent signs for")
    bundle_factory: str = ""
    router: str = Field(default="", description="UniswapV2-style router used as quote oracle")
    wrapped_native: str = ""
    pricing_token: str = Field(default="", description="Token NAV is denominated in")
    native_address: str = NATIVE_ADDRESS
    native_symbol: str = ""

    @model_validator(mode="after")
    def _apply_preset(self) -> "ChainConfig":
        preset = _PRESETS[self.network]
        for key, value in preset.items():
            if not getattr(self, key):
                setattr(self, key, value)
        return self


class TokenTable(BaseModel):
    """Injected address → display symbol table (``[tokens.symbols]``)."""

    symbols: dict[str, str] = Field(default_factory=dict)

    @field_validator("symbols", mode="after")
    @classmethod
    def _lowercase_keys(cls, v: dict[str, str]) -> dict[str, str]:
        return {addr.lower(): sym for addr, sym in v.items()}


class OrchestratorConfig(BaseModel):
    """Settings for mint/redeem orchestration."""

    slippage_bps: int = Field(
        default=200, ge=0, lt=10_000,
        description="Buffer between expected and minimum-acceptable shares",
    )
    swap_slippage_bps: int = Field(
        default=100, ge=0, lt=10_000,
        description="Per-swap tolerance below the router quote",
    )
    receipt_timeout_secs: float = Field(
        default=120.0, gt=0, description="How long to wait for one receipt",
    )
    poll_interval_secs: float = Field(
        default=1.0, gt=0, description="Receipt / batch-status polling interval",
    )
    swap_deadline_secs: int = Field(
        default=1200, gt=0, description="Router deadline offset for swaps",
    )


class Settings(BaseModel):
    chain: ChainConfig = Field(default_factory=ChainConfig)
    tokens: TokenTable = Field(default_factory=TokenTable)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)


# ── Loading ────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_DEFAULT_CONFIG_PATH = _PROJECT_ROOT / "config.toml"


def _load_dotenv(dotenv_path: Path) -> None:
    """Minimal .env loader — no extra dependencies."""
    if not dotenv_path.exists():
        return
    for line in dotenv_path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, _, value = line.partition("=")
        key, value = key.strip(), value.strip()
        if not key:
            continue
        os.environ.setdefault(key, value)


def load_settings(config_path: Path | None = None) -> Settings:
    """Build Settings from .env (secrets) + env vars + config.toml (tuning)."""
    _load_dotenv(_PROJECT_ROOT / ".env")

    path = config_path or _DEFAULT_CONFIG_PATH
    file_cfg: dict = {}
    if path.exists():
        try:
            file_cfg = tomllib.loads(path.read_text())
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Cannot parse {path}: {exc}") from exc

    raw_chain = dict(file_cfg.get("chain", {}))
    for field, env_key in (
        ("network", "BUNDLE_NETWORK"),
        ("rpc_url", "BUNDLE_RPC_URL"),
        ("account", "BUNDLE_ACCOUNT"),
    ):
        if env_key in os.environ:
            raw_chain[field] = os.environ[env_key]

    try:
        return Settings(
            chain=ChainConfig(**raw_chain),
            tokens=TokenTable(**file_cfg.get("tokens", {})),
            orchestrator=OrchestratorConfig(**file_cfg.get("orchestrator", {})),
        )
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc
