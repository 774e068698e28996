"""
Full retrieval: every sender that triggered a contract's logs in a block range.

Two stages connected by a bounded channel:

  fetch   — splits [start, end] into windows of at most `block_range_limit`
            blocks and calls eth_getLogs once per window, in ascending order,
            forwarding entries one at a time.
  resolve — for each entry: transaction → (cached) block → index in block →
            sender, then emits Transaction(sender, block timestamp).

Windows are never fetched concurrently. That keeps output in block order and
keeps the single-slot block cache hot, since consecutive entries mostly share
a block.

Failure policy is fail-fast: the first error stops both stages and is the
only error reported. Results already emitted stay valid.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator

from swaplist.blockcache import BlockCache
from swaplist.channel import Channel, ChannelClosed
from swaplist.exceptions import (
    ConfigInvalidError,
    SwaplistError,
    TransactionNotFoundInBlockError,
    ValidationError,
)
from swaplist.fetchers.base import EthClient
from swaplist.models import (
    ETH_ADDRESS_RE,
    ChunkWindow,
    Log,
    Transaction,
    TransactionsRequest,
)

logger = logging.getLogger(__name__)

# Results buffered between the pipeline and its caller.
RESULT_BUFFER_SIZE = 10
# Log entries buffered between the fetch and resolve stages.
LOG_BUFFER_SIZE = 1

STAGE_VALIDATION = "validation"
STAGE_LOG_FETCH = "log_fetch"
STAGE_RESOLVE = "resolve"


def iter_chunks(start: int, end: int, limit: int) -> Iterator[ChunkWindow]:
    """
    Split the inclusive range [start, end] into windows of at most `limit` blocks.

    >>> list(iter_chunks(100, 109, 5))
    [ChunkWindow(from_block=100, to_block=104), ChunkWindow(from_block=105, to_block=109)]
    """
    if limit <= 0:
        raise ConfigInvalidError(f"block range limit must be positive, got {limit}")
    while start <= end:
        yield ChunkWindow(start, min(start + limit - 1, end))
        start += limit


def validate_request(req: TransactionsRequest) -> None:
    """Raise ValidationError unless `req` describes a scannable range."""
    if not req.address:
        raise ValidationError("address is required", details={"stage": STAGE_VALIDATION})
    if not ETH_ADDRESS_RE.match(req.address):
        raise ValidationError(
            f"invalid address {req.address!r}: must be 0x + 40 hex chars",
            details={"stage": STAGE_VALIDATION, "address": req.address},
        )
    if req.start_block < 0:
        raise ValidationError(
            f"start block must be non-negative, got {req.start_block}",
            details={"stage": STAGE_VALIDATION},
        )
    if req.end_block is not None and req.start_block > req.end_block:
        raise ValidationError(
            "start block should be less than or equal to end block",
            details={
                "stage": STAGE_VALIDATION,
                "start_block": req.start_block,
                "end_block": req.end_block,
            },
        )


def _at_stage(err: SwaplistError, stage: str) -> SwaplistError:
    """Tag `err` with the stage it came from, once."""
    if "stage" in err.details and err.message.startswith(f"{err.details['stage']}: "):
        return err
    stage = err.details.setdefault("stage", stage)
    err.message = f"{stage}: {err.message}"
    err.args = (err.message,)
    return err


class TransactionStream:
    """
    Handle returned by FullClient.get_transactions().

    `transactions` yields results until the work ends; `errors` carries at
    most one terminal error. Both are closed when the pipeline finishes.

        stream = client.get_transactions(request, cancel)
        async for tx in stream.transactions:
            ...
        if (err := await stream.error()) is not None:
            ...
    """

    def __init__(
        self,
        transactions: Channel[Transaction],
        errors: Channel[Exception],
        task: asyncio.Task | None = None,
    ) -> None:
        self.transactions = transactions
        self.errors = errors
        self._task = task

    async def error(self) -> Exception | None:
        """Wait for the pipeline to fail or finish; return the error, if any."""
        try:
            return await self.errors.receive()
        except ChannelClosed:
            return None

    async def collect(self) -> list[Transaction]:
        """Drain every result, then raise the terminal error if there was one."""
        txns = [tx async for tx in self.transactions]
        err = await self.error()
        if err is not None:
            raise err
        return txns

    async def aclose(self) -> None:
        """Stop background work without reporting an error."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        self.transactions.close()
        self.errors.close()


class FullClient:
    """
    Retrieval pipeline over an EthClient.

    One instance per session; it owns the block cache and may serve several
    requests one after another.
    """

    def __init__(
        self,
        eth: EthClient,
        block_range_limit: int,
        cache: BlockCache | None = None,
    ) -> None:
        if block_range_limit <= 0:
            raise ConfigInvalidError(
                f"block range limit must be positive, got {block_range_limit}"
            )
        self._eth = eth
        self._limit = block_range_limit
        self._cache = cache if cache is not None else BlockCache()

    @property
    def block_range_limit(self) -> int:
        return self._limit

    def get_transactions(
        self,
        request: TransactionsRequest,
        cancel: asyncio.Event | None = None,
    ) -> TransactionStream:
        """
        Start streaming the senders for `request`.

        Must be called from a running event loop. Returns at once; results and
        the terminal error arrive on the returned stream. An invalid request
        produces one ValidationError and no results, without touching the node.
        """
        transactions: Channel[Transaction] = Channel(RESULT_BUFFER_SIZE)
        errors: Channel[Exception] = Channel(1)

        try:
            validate_request(request)
        except ValidationError as e:
            logger.warning("rejected request: %s", e.message)
            errors.send_nowait(_at_stage(e, STAGE_VALIDATION))
            errors.close()
            transactions.close()
            return TransactionStream(transactions, errors)

        task = asyncio.create_task(self._run(request, transactions, errors, cancel))
        return TransactionStream(transactions, errors, task)

    # ──────────────────────────────────────────────────────────────
    # Pipeline stages
    # ──────────────────────────────────────────────────────────────

    async def _run(
        self,
        request: TransactionsRequest,
        transactions: Channel[Transaction],
        errors: Channel[Exception],
        cancel: asyncio.Event | None,
    ) -> None:
        logs: Channel[Log] = Channel(LOG_BUFFER_SIZE)
        end = request.resolved_end_block()
        fetch = asyncio.create_task(
            self._fetch_logs(request.address, request.start_block, end, logs, cancel)
        )
        count = 0
        try:
            count = await self._resolve(logs, fetch, transactions, cancel)
            # Re-raises the fetch stage's error, if that is why the log channel closed.
            await fetch
            logger.debug(
                "retrieved %d transactions for %s in blocks %d-%d",
                count, request.address, request.start_block, end,
            )
        except Exception as e:  # noqa: BLE001
            logger.warning("retrieval for %s stopped: %s", request.address, e)
            errors.send_nowait(e)
        finally:
            if not fetch.done():
                fetch.cancel()
            await asyncio.gather(fetch, return_exceptions=True)
            transactions.close()
            errors.close()

    async def _fetch_logs(
        self,
        address: str,
        start: int,
        end: int,
        logs: Channel[Log],
        cancel: asyncio.Event | None,
    ) -> None:
        try:
            for window in iter_chunks(start, end, self._limit):
                logger.debug("filtering logs in blocks %d-%d", window.from_block, window.to_block)
                try:
                    entries = await self._eth.filter_logs(
                        [address], window.from_block, window.to_block, cancel
                    )
                    for entry in entries:
                        await logs.send(entry, cancel)
                except SwaplistError as e:
                    e.details.setdefault("from_block", window.from_block)
                    e.details.setdefault("to_block", window.to_block)
                    raise _at_stage(e, STAGE_LOG_FETCH)
        finally:
            logs.close()

    async def _resolve(
        self,
        logs: Channel[Log],
        fetch: asyncio.Task,
        transactions: Channel[Transaction],
        cancel: asyncio.Event | None,
    ) -> int:
        count = 0
        while True:
            if fetch.done() and not fetch.cancelled() and fetch.exception() is not None:
                return count
            try:
                entry = await logs.receive(cancel)
            except ChannelClosed:
                return count

            try:
                result = await self._resolve_one(entry, cancel)
                if result is None:
                    continue
                await transactions.send(result, cancel)
            except SwaplistError as e:
                e.details.setdefault("tx_hash", entry.tx_hash)
                raise _at_stage(e, STAGE_RESOLVE)
            count += 1

    async def _resolve_one(self, entry: Log, cancel: asyncio.Event | None) -> Transaction | None:
        tx, is_pending = await self._eth.transaction_by_hash(entry.tx_hash, cancel)
        if is_pending:
            logger.debug("skipping pending transaction %s", entry.tx_hash)
            return None

        block = self._cache.get(entry.block_hash)
        if block is None:
            block = await self._eth.block_by_hash(entry.block_hash, cancel)
            self._cache.set(block)

        index = block.index_of(tx.hash)
        if index is None:
            raise TransactionNotFoundInBlockError(
                f"transaction {tx.hash} not found in block {block.hash}",
                details={"block_hash": block.hash, "block_number": block.number},
            )

        sender = await self._eth.transaction_sender(tx, block.hash, index, cancel)
        return Transaction(sender=sender, timestamp=str(block.time()))
