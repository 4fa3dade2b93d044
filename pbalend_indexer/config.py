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

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChainConfig:
    rpc_endpoints: tuple[str, ...] = ()
    rpc_timeout: int = 30


@dataclass(frozen=True)
class ContractConfig:
    name: str = "PBALend"
    address: str = ""
    start_block: int = 0


@dataclass(frozen=True)
class IndexerConfig:
    batch_size: int = 2000
    confirmations: int = 0
    poll_interval_seconds: int = 12
    max_ltv: int | None = None


@dataclass(frozen=True)
class StoreConfig:
    backend: str = "sqlite"
    path: str = "ledger.db"


@dataclass(frozen=True)
class AppConfig:
    chain: ChainConfig = field(default_factory=ChainConfig)
    contract: ContractConfig = field(default_factory=ContractConfig)
    indexer: IndexerConfig = field(default_factory=IndexerConfig)
    store: StoreConfig = field(default_factory=StoreConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

STORE_BACKENDS = ("memory", "sqlite")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


def _int(value: Any, default: int | None) -> int | None:
    """Coerce to int; empty strings (unset env vars) fall back to *default*."""
    if value is None or value == "":
        return default
    return int(value)


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_chain(raw: dict[str, Any]) -> ChainConfig:
    return ChainConfig(
        rpc_endpoints=tuple(e for e in raw.get("rpc_endpoints", []) if e),
        rpc_timeout=_int(raw.get("rpc_timeout"), 30),
    )


def _build_contract(raw: dict[str, Any]) -> ContractConfig:
    return ContractConfig(
        name=raw.get("name") or "PBALend",
        address=raw.get("address", ""),
        start_block=_int(raw.get("start_block"), 0),
    )


def _build_indexer(raw: dict[str, Any]) -> IndexerConfig:
    return IndexerConfig(
        batch_size=_int(raw.get("batch_size"), 2000),
        confirmations=_int(raw.get("confirmations"), 0),
        poll_interval_seconds=_int(raw.get("poll_interval_seconds"), 12),
        max_ltv=_int(raw.get("max_ltv"), None),
    )


def _build_store(raw: dict[str, Any]) -> StoreConfig:
    return StoreConfig(
        backend=raw.get("backend", "sqlite"),
        path=raw.get("path") or "ledger.db",
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from the package).
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
        chain=_build_chain(raw.get("chain", {})),
        contract=_build_contract(raw.get("contract", {})),
        indexer=_build_indexer(raw.get("indexer", {})),
        store=_build_store(raw.get("store", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.chain.rpc_endpoints:
        raise ValueError("At least one RPC endpoint must be configured")

    if not _ADDRESS_RE.match(cfg.contract.address):
        raise ValueError(
            f"Contract '{cfg.contract.name}' has no valid address: {cfg.contract.address!r}"
        )
    if cfg.contract.start_block < 0:
        raise ValueError("contract.start_block must be >= 0")

    if cfg.indexer.batch_size <= 0:
        raise ValueError("indexer.batch_size must be positive")
    if cfg.indexer.confirmations < 0:
        raise ValueError("indexer.confirmations must be >= 0")

    if cfg.store.backend not in STORE_BACKENDS:
        raise ValueError(f"Unknown store backend '{cfg.store.backend}'")
