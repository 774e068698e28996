"""
Ethereum JSON-RPC client with optional rate limiting.

Talks plain JSON-RPC 2.0 over HTTP to any EVM node (Gnosis Chain by default).

Design decisions:
- Uses async httpx for all HTTP calls.
- One asyncio.Lock serializes every call: the connection is never used by
  two requests at once.
- Token bucket rate limiting (burst = rate), applied while holding the lock.
- Every wait observes the caller's cancellation event.
- Node errors are raised as-is (RPCError with the node's message); there is
  no retry. A result of the wrong shape is raised as RPCError too.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator, Callable
from typing import Any, TypeVar

import httpx

from swaplist.channel import run_cancellable
from swaplist.exceptions import (
    ConnectionFailedError,
    ConsistencyError,
    NetworkTimeoutError,
    NotFoundError,
    RateLimitCancelledError,
    RateLimitError,
    RetrievalCancelledError,
    RPCError,
    SwaplistError,
)
from swaplist.models import Block, ChainTransaction, Log, hex_to_int, same_hash

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT = 30.0


def _decode(method: str, parse: Callable[[Any], T], raw: Any) -> T:
    """Apply `parse` to a node result; a reply of the wrong shape becomes RPCError."""
    try:
        return parse(raw)
    except (KeyError, ValueError, TypeError, AttributeError) as e:
        raise RPCError(
            f"{method} returned a malformed result: {e!r}",
            details={"method": method},
        ) from e


class TokenBucket:
    """Token bucket rate limiter: `rate` tokens per second, holding at most `burst`."""

    def __init__(self, rate: float, burst: int | None = None) -> None:
        if rate <= 0:
            raise ValueError(f"rate must be positive, got {rate}")
        self._rate = float(rate)
        self._burst = float(burst if burst is not None else max(1, int(rate)))
        self._tokens: float = self._burst
        self._last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self, cancel: asyncio.Event | None = None) -> None:
        """
        Take one token, sleeping until one is available.

        Raises:
            RateLimitCancelledError: `cancel` fired while waiting.
        """
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_refill
            # Refill tokens proportional to elapsed time
            self._tokens = min(self._burst, self._tokens + elapsed * self._rate)
            self._last_refill = now

            if self._tokens < 1:
                wait = (1 - self._tokens) / self._rate
                try:
                    await run_cancellable(asyncio.sleep(wait), cancel)
                except RetrievalCancelledError as e:
                    raise RateLimitCancelledError("cancelled while waiting for rate limiter") from e
                self._tokens = 0
                self._last_refill = time.monotonic()
            else:
                self._tokens -= 1


class RPCClient:
    """
    Async JSON-RPC client for an EVM node.

    Implements the EthClient protocol. Use as an async context manager, or
    call connect()/close() explicitly:

        async with RPCClient(endpoint, requests_per_second=15) as ec:
            logs = await ec.filter_logs([address], 100, 104)
    """

    def __init__(
        self,
        endpoint: str,
        requests_per_second: int | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None
        self._limiter = TokenBucket(requests_per_second) if requests_per_second else None
        self._lock = asyncio.Lock()
        self._request_id = 0
        self.chain_id: int | None = None

    @property
    def endpoint(self) -> str:
        return self._endpoint

    async def connect(self, cancel: asyncio.Event | None = None) -> None:
        """
        Open the HTTP client and check the node answers eth_chainId.

        Raises:
            ConnectionFailedError: Node unreachable or not speaking JSON-RPC.
        """
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        try:
            result = await run_cancellable(self._request("eth_chainId", []), cancel)
            self.chain_id = _decode("eth_chainId", hex_to_int, result)
        except RetrievalCancelledError:
            await self.close()
            raise
        except SwaplistError as e:
            await self.close()
            raise ConnectionFailedError(
                f"Cannot connect to node at {self._endpoint}: {e.message}",
                details={"endpoint": self._endpoint},
            ) from e
        logger.debug("connected to %s (chain id %s)", self._endpoint, self.chain_id)

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> RPCClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ──────────────────────────────────────────────────────────────
    # EthClient protocol
    # ──────────────────────────────────────────────────────────────

    async def filter_logs(
        self,
        addresses: list[str],
        from_block: int,
        to_block: int,
        cancel: asyncio.Event | None = None,
    ) -> list[Log]:
        query = {
            "address": addresses,
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block),
        }
        result = await self._call("eth_getLogs", [query], cancel)
        return _decode(
            "eth_getLogs", lambda raw: [Log.from_rpc(entry) for entry in raw], result or []
        )

    async def block_by_hash(
        self, block_hash: str, cancel: asyncio.Event | None = None
    ) -> Block:
        result = await self._call("eth_getBlockByHash", [block_hash, True], cancel)
        if result is None:
            raise NotFoundError(f"block {block_hash} not found", details={"block_hash": block_hash})
        return _decode("eth_getBlockByHash", Block.from_rpc, result)

    async def transaction_by_hash(
        self, tx_hash: str, cancel: asyncio.Event | None = None
    ) -> tuple[ChainTransaction, bool]:
        result = await self._call("eth_getTransactionByHash", [tx_hash], cancel)
        if result is None:
            raise NotFoundError(f"transaction {tx_hash} not found", details={"tx_hash": tx_hash})
        tx = _decode("eth_getTransactionByHash", ChainTransaction.from_rpc, result)
        return tx, tx.is_pending

    async def transaction_sender(
        self,
        tx: ChainTransaction,
        block_hash: str,
        index: int,
        cancel: asyncio.Event | None = None,
    ) -> str:
        """
        Sender of `tx`, mined at `index` in `block_hash`.

        The node already reported `from` when the transaction was fetched; that
        value is trusted only if it was reported for this same block. Otherwise
        the node is asked for the transaction at (block, index).
        """
        if tx.sender and same_hash(tx.block_hash, block_hash):
            return tx.sender
        method = "eth_getTransactionByBlockHashAndIndex"
        result = await self._call(method, [block_hash, hex(index)], cancel)
        found = None if result is None else _decode(method, ChainTransaction.from_rpc, result)
        if found is None or not same_hash(found.hash, tx.hash):
            raise ConsistencyError(
                "wrong inclusion block/index",
                details={"tx_hash": tx.hash, "block_hash": block_hash, "index": index},
            )
        if not found.sender:
            raise RPCError(
                "node returned no sender",
                details={"method": method, "tx_hash": tx.hash},
            )
        return found.sender

    # ──────────────────────────────────────────────────────────────
    # Private helpers
    # ──────────────────────────────────────────────────────────────

    @contextlib.asynccontextmanager
    async def _slot(self, cancel: asyncio.Event | None) -> AsyncIterator[None]:
        """Exclusive use of the connection, after paying one rate limiter token."""
        async with self._lock:
            if self._limiter is not None:
                await self._limiter.acquire(cancel)
            yield

    async def _call(self, method: str, params: list[Any], cancel: asyncio.Event | None) -> Any:
        async with self._slot(cancel):
            return await run_cancellable(self._request(method, params), cancel)

    async def _request(self, method: str, params: list[Any]) -> Any:
        if self._client is None:
            raise RPCError("client is not connected", details={"method": method})

        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }
        try:
            resp = await self._client.post(self._endpoint, json=payload)
        except httpx.TimeoutException as e:
            raise NetworkTimeoutError(f"{method} timed out: {e}", details={"method": method}) from e
        except httpx.HTTPError as e:
            raise RPCError(f"{method} failed: {e}", details={"method": method}) from e

        if resp.status_code == 429:
            raise RateLimitError("Node rate limit exceeded", retry_after=1)
        if resp.status_code != 200:
            raise RPCError(
                f"{method} failed: unexpected HTTP status {resp.status_code}",
                details={"method": method, "status": resp.status_code},
            )

        try:
            body = resp.json()
        except ValueError as e:
            raise RPCError(f"{method} returned invalid JSON: {e}", details={"method": method}) from e

        if not isinstance(body, dict):
            raise RPCError(f"{method} returned a malformed response", details={"method": method})
        error = body.get("error")
        if error:
            if not isinstance(error, dict):
                error = {"message": str(error)}
            raise RPCError(
                f"{method} failed: {error.get('message', 'unknown error')}",
                details={"method": method, "code": error.get("code")},
            )
        return body.get("result")
