"""
Bounded channels and cancellation for the retrieval pipeline.

A cancellation signal is a plain asyncio.Event owned by the caller. Every
blocking await in the pipeline goes through run_cancellable() so that setting
the event interrupts it with RetrievalCancelledError instead of leaving work
running in the background.

Channel wraps an asyncio.Queue with close semantics: the producer closes it
when done, and consumers iterate with `async for` until it drains.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import Generic, TypeVar

from swaplist.exceptions import RetrievalCancelledError

T = TypeVar("T")

_CLOSED = object()


class ChannelClosed(Exception):
    """Raised by Channel.receive() once the channel is closed and drained."""


async def run_cancellable(aw: Awaitable[T], cancel: asyncio.Event | None) -> T:
    """
    Await `aw`, giving up as soon as `cancel` is set.

    Raises:
        RetrievalCancelledError: `cancel` fired first. `aw` is cancelled.
    """
    if cancel is None:
        return await aw

    task = asyncio.ensure_future(aw)
    if cancel.is_set():
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise RetrievalCancelledError("operation cancelled")

    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    raise RetrievalCancelledError("operation cancelled")


class Channel(Generic[T]):
    """Single-producer bounded channel with explicit close."""

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"channel capacity must be at least 1, got {capacity}")
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=capacity)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, item: T, cancel: asyncio.Event | None = None) -> None:
        """Block until there is room for `item` or `cancel` fires."""
        if self._closed:
            raise RuntimeError("send on closed channel")
        await run_cancellable(self._queue.put(item), cancel)

    def send_nowait(self, item: T) -> None:
        if self._closed:
            raise RuntimeError("send on closed channel")
        self._queue.put_nowait(item)

    def close(self) -> None:
        """Mark the channel closed. Buffered items stay readable. Idempotent."""
        if self._closed:
            return
        self._closed = True
        # With a full buffer no reader is blocked; they see `closed` after draining.
        if not self._queue.full():
            self._queue.put_nowait(_CLOSED)

    async def receive(self, cancel: asyncio.Event | None = None) -> T:
        """
        Next item in send order.

        Raises:
            ChannelClosed: channel closed and drained.
            RetrievalCancelledError: `cancel` fired while waiting.
        """
        if self._closed and self._queue.empty():
            raise ChannelClosed()
        item = await run_cancellable(self._queue.get(), cancel)
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            raise ChannelClosed()
        return item

    def __aiter__(self) -> Channel[T]:
        return self

    async def __anext__(self) -> T:
        try:
            return await self.receive()
        except ChannelClosed:
            raise StopAsyncIteration from None
