"""Node protocol consumed by the retrieval pipeline."""

from __future__ import annotations

import asyncio
from typing import Protocol, runtime_checkable

from swaplist.models import Block, ChainTransaction, Log


@runtime_checkable
class EthClient(Protocol):
    """
    Protocol that any node client handed to FullClient must implement.

    Implementations are responsible for:
    - Talking to the node (rate limiting, serializing access)
    - Normalizing node responses into Log/Block/ChainTransaction
    - Observing the caller's cancellation event while they wait

    They are NOT responsible for:
    - Chunking block ranges (that's full.py)
    - Caching blocks (that's blockcache.py)
    - Writing results anywhere (that's filestore.py)
    """

    async def filter_logs(
        self,
        addresses: list[str],
        from_block: int,
        to_block: int,
        cancel: asyncio.Event | None = None,
    ) -> list[Log]:
        """
        Return the logs emitted by `addresses` in [from_block, to_block].

        Raises:
            RPCError: The node rejected the query (e.g. range too large)
            RetrievalCancelledError: `cancel` fired while waiting
        """
        ...

    async def block_by_hash(
        self, block_hash: str, cancel: asyncio.Event | None = None
    ) -> Block:
        """
        Return the block with its full transaction list.

        Raises:
            NotFoundError: Node does not know the block
        """
        ...

    async def transaction_by_hash(
        self, tx_hash: str, cancel: asyncio.Event | None = None
    ) -> tuple[ChainTransaction, bool]:
        """
        Return (transaction, is_pending).

        Raises:
            NotFoundError: Node does not know the transaction
        """
        ...

    async def transaction_sender(
        self,
        tx: ChainTransaction,
        block_hash: str,
        index: int,
        cancel: asyncio.Event | None = None,
    ) -> str:
        """Return the address that signed `tx`, mined at `index` in `block_hash`."""
        ...
