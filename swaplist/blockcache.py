"""
Single-slot block cache.

Log entries inside one chunk usually come in runs that share a block, so
remembering only the most recently fetched block removes nearly all repeat
eth_getBlockByHash calls. Capacity is exactly one: set() replaces the entry,
there is nothing to evict.
"""

from __future__ import annotations

import threading

from swaplist.models import Block, same_hash


class BlockCache:
    """Holds at most one Block, keyed by its hash. Safe to share between threads."""

    def __init__(self) -> None:
        self._block: Block | None = None
        self._lock = threading.Lock()

    def set(self, block: Block) -> None:
        with self._lock:
            self._block = block

    def get(self, block_hash: str) -> Block | None:
        """Return the cached block if its hash is `block_hash`, else None."""
        with self._lock:
            if self._block is not None and same_hash(self._block.hash, block_hash):
                return self._block
            return None
