"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from pbalend_indexer.config import (
    AppConfig,
    ChainConfig,
    ContractConfig,
    IndexerConfig,
    StoreConfig,
)
from pbalend_indexer.projection import ProjectionEngine
from pbalend_indexer.stores import InMemoryLedgerStore

from tests.sample_data import CONTRACT

# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_chain_config() -> ChainConfig:
    return ChainConfig(
        rpc_endpoints=("https://rpc1.example.com", "https://rpc2.example.com"),
        rpc_timeout=10,
    )


@pytest.fixture()
def sample_contract_config() -> ContractConfig:
    return ContractConfig(name="PBALend", address=CONTRACT, start_block=100)


@pytest.fixture()
def sample_app_config(
    sample_chain_config: ChainConfig,
    sample_contract_config: ContractConfig,
) -> AppConfig:
    return AppConfig(
        chain=sample_chain_config,
        contract=sample_contract_config,
        indexer=IndexerConfig(batch_size=10, confirmations=0, poll_interval_seconds=1),
        store=StoreConfig(backend="memory"),
    )


# ---------------------------------------------------------------------------
# Store / engine fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture()
def engine(store: InMemoryLedgerStore) -> ProjectionEngine:
    return ProjectionEngine(store)


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent(f"""\
    chain:
      rpc_endpoints: ["https://rpc.example.com"]
      rpc_timeout: 10
    contract:
      name: PBALend
      address: "{CONTRACT}"
      start_block: 42
    indexer:
      batch_size: 500
      confirmations: 3
      poll_interval_seconds: 6
      max_ltv: 100
    store:
      backend: memory
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
