"""
Fetcher layer for swaplist.

Two ways to find who called a contract:
- RPCClient: talks JSON-RPC to a node; used by the full, chunked scan.
- ExplorerClient: one call to an explorer API; bounded to 10,000 rows.

Usage:
    from swaplist.fetchers import get_rpc_client
    async with get_rpc_client(config) as ec:
        ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from swaplist.fetchers.base import EthClient
from swaplist.fetchers.explorer import ExplorerClient
from swaplist.fetchers.rpc import RPCClient, TokenBucket

if TYPE_CHECKING:
    from swaplist.config import SwaplistConfig

__all__ = [
    "EthClient",
    "ExplorerClient",
    "RPCClient",
    "TokenBucket",
    "get_explorer_client",
    "get_rpc_client",
]


def get_rpc_client(config: SwaplistConfig) -> RPCClient:
    """
    Factory: node client configured from `config.rpc`.

    The client is not connected yet; use it with `async with`.
    """
    return RPCClient(
        endpoint=config.rpc.endpoint,
        requests_per_second=config.rpc.max_requests_per_second or None,
        timeout=config.rpc.timeout_seconds,
    )


def get_explorer_client(config: SwaplistConfig) -> ExplorerClient:
    """Factory: explorer client configured from `config.explorer`."""
    return ExplorerClient(base_url=config.explorer.base_url)
