"""
Shared data models for swaplist.

These dataclasses are the canonical data shapes used across all modules:
the RPC client produces Log/Block/ChainTransaction, the pipeline turns them
into Transaction results, and filestore writes those out.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from eth_utils import to_checksum_address

# Open-ended requests scan up to this block.
UNBOUNDED_END_BLOCK = 99_999_999

# ETH address regex (0x + 40 hex chars)
ETH_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

EXPLORER_MAX_AMOUNT = 10_000
EXPLORER_ORDERS = ("asc", "desc")


def hex_to_int(value: str | int | None) -> int | None:
    """Parse a JSON-RPC hex quantity; None stays None."""
    if value is None:
        return None
    if isinstance(value, int):
        return value
    return int(value, 16)


def same_hash(a: str | None, b: str | None) -> bool:
    """Compare two hex hashes ignoring case."""
    if a is None or b is None:
        return False
    return a.lower() == b.lower()


@dataclass(frozen=True)
class Transaction:
    """A sender paired with the timestamp of the block that mined its transaction."""

    sender: str
    timestamp: str  # decimal unix seconds

    def to_line(self) -> str:
        """Render the `<sender>:<timestamp>` line written to the output file."""
        return f"{self.sender}:{self.timestamp}"

    @classmethod
    def from_explorer(cls, raw: dict[str, Any]) -> Transaction:
        """Build from one row of an explorer `txlist` response."""
        return cls(sender=raw["from"], timestamp=str(raw["timeStamp"]))


@dataclass
class TransactionsRequest:
    """
    Input of a full retrieval.

    end_block=None means "up to the latest block"; it is resolved to
    UNBOUNDED_END_BLOCK before chunking. A literal 0 is a real (if useless)
    block number and is kept as such.
    """

    address: str
    start_block: int = 0
    end_block: int | None = None

    def resolved_end_block(self) -> int:
        if self.end_block is None:
            return UNBOUNDED_END_BLOCK
        return self.end_block


@dataclass
class ExplorerRequest:
    """Input of a bounded explorer retrieval."""

    address: str
    amount: int
    order: str
    api_key: str
    start_block: int = 0
    end_block: int | None = None

    def resolved_end_block(self) -> int:
        if self.end_block is None:
            return UNBOUNDED_END_BLOCK
        return self.end_block


@dataclass(frozen=True)
class ChunkWindow:
    """Inclusive block range queried by one eth_getLogs call."""

    from_block: int
    to_block: int

    def __len__(self) -> int:
        return self.to_block - self.from_block + 1


@dataclass(frozen=True)
class Log:
    """An event log entry as reported by eth_getLogs."""

    tx_hash: str
    block_hash: str
    block_number: int
    log_index: int
    address: str = ""

    @classmethod
    def from_rpc(cls, raw: dict[str, Any]) -> Log:
        return cls(
            tx_hash=raw["transactionHash"],
            block_hash=raw["blockHash"],
            block_number=hex_to_int(raw["blockNumber"]),
            log_index=hex_to_int(raw.get("logIndex", "0x0")),
            address=raw.get("address", ""),
        )


@dataclass(frozen=True)
class ChainTransaction:
    """A transaction object as returned by the node."""

    hash: str
    block_hash: str | None          # None while pending
    block_number: int | None        # None while pending
    transaction_index: int | None
    sender: str | None              # node-reported `from`
    to: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.block_number is None

    @classmethod
    def from_rpc(cls, raw: dict[str, Any]) -> ChainTransaction:
        sender = raw.get("from")
        return cls(
            hash=raw["hash"],
            block_hash=raw.get("blockHash"),
            block_number=hex_to_int(raw.get("blockNumber")),
            transaction_index=hex_to_int(raw.get("transactionIndex")),
            sender=to_checksum_address(sender) if sender else None,
            to=raw.get("to"),
        )


@dataclass(frozen=True)
class Block:
    """A mined block with its ordered transaction list."""

    hash: str
    number: int
    timestamp: int
    transactions: tuple[ChainTransaction, ...] = field(default_factory=tuple)

    def time(self) -> int:
        return self.timestamp

    def index_of(self, tx_hash: str) -> int | None:
        """Position of tx_hash in this block, or None when absent."""
        for i, tx in enumerate(self.transactions):
            if same_hash(tx.hash, tx_hash):
                return i
        return None

    @classmethod
    def from_rpc(cls, raw: dict[str, Any]) -> Block:
        number = hex_to_int(raw["number"])
        # Nodes return bare hashes unless full transaction objects were requested.
        txs = tuple(
            ChainTransaction.from_rpc(tx)
            if isinstance(tx, dict)
            else ChainTransaction(tx, raw["hash"], number, i, None)
            for i, tx in enumerate(raw.get("transactions", []))
        )
        return cls(
            hash=raw["hash"],
            number=number,
            timestamp=hex_to_int(raw["timestamp"]),
            transactions=txs,
        )
