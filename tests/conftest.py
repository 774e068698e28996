"""Pytest fixtures shared across all swaplist tests."""

from __future__ import annotations

import pytest

from swaplist.config import (
    ExplorerConfig,
    LogConfig,
    OutputConfig,
    RPCConfig,
    SwaplistConfig,
)
from tests.fakes import SENDER_A, SENDER_B, FakeNode

RPC_ENDPOINT = "https://node.example/rpc"


# ── Config fixtures ───────────────────────────────────────────────────────────


@pytest.fixture
def sample_config(tmp_path) -> SwaplistConfig:
    """Minimal valid SwaplistConfig for tests."""
    return SwaplistConfig(
        rpc=RPCConfig(
            endpoint=RPC_ENDPOINT,
            max_requests_per_second=0,
            block_range_limit=5,
            timeout_seconds=5.0,
        ),
        explorer=ExplorerConfig(api_key="test_explorer_key_12345"),
        output=OutputConfig(path=str(tmp_path / "transactions.txt"), default_format="json"),
        log=LogConfig(level="WARNING"),
    )


# ── Node fixtures ─────────────────────────────────────────────────────────────


@pytest.fixture
def node() -> FakeNode:
    """Node with two senders in block 100 and one in each of 103 and 107."""
    n = FakeNode()
    n.add_block(100, 1_700_000_000, [SENDER_A, SENDER_B])
    n.add_block(103, 1_700_000_015, [SENDER_B])
    n.add_block(107, 1_700_000_035, [SENDER_A])
    return n
