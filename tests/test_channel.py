"""Tests for swaplist/channel.py — bounded channels and cancellation."""

from __future__ import annotations

import asyncio

import pytest

from swaplist.channel import Channel, ChannelClosed, run_cancellable
from swaplist.exceptions import RetrievalCancelledError

# ── run_cancellable ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_run_cancellable_without_event() -> None:
    assert await run_cancellable(asyncio.sleep(0, result=7), None) == 7


@pytest.mark.asyncio
async def test_run_cancellable_completes_first() -> None:
    cancel = asyncio.Event()
    assert await run_cancellable(asyncio.sleep(0, result="done"), cancel) == "done"


@pytest.mark.asyncio
async def test_run_cancellable_preset_event() -> None:
    cancel = asyncio.Event()
    cancel.set()
    with pytest.raises(RetrievalCancelledError):
        await run_cancellable(asyncio.sleep(10), cancel)


@pytest.mark.asyncio
async def test_run_cancellable_interrupts_wait() -> None:
    cancel = asyncio.Event()
    started = asyncio.Event()

    async def slow() -> None:
        started.set()
        await asyncio.sleep(10)

    task = asyncio.create_task(run_cancellable(slow(), cancel))
    await started.wait()
    cancel.set()
    with pytest.raises(RetrievalCancelledError):
        await asyncio.wait_for(task, timeout=1)


@pytest.mark.asyncio
async def test_run_cancellable_propagates_errors() -> None:
    async def boom() -> None:
        raise KeyError("x")

    with pytest.raises(KeyError):
        await run_cancellable(boom(), asyncio.Event())


# ── Channel ──────────────────────────────────────────────────────────────────


def test_channel_rejects_zero_capacity() -> None:
    with pytest.raises(ValueError):
        Channel(0)


@pytest.mark.asyncio
async def test_channel_preserves_order_and_drains_after_close() -> None:
    ch: Channel[int] = Channel(3)
    for i in range(3):
        await ch.send(i)
    ch.close()

    assert [i async for i in ch] == [0, 1, 2]
    with pytest.raises(ChannelClosed):
        await ch.receive()


@pytest.mark.asyncio
async def test_close_wakes_blocked_reader() -> None:
    ch: Channel[int] = Channel(1)
    reader = asyncio.create_task(ch.receive())
    await asyncio.sleep(0)
    ch.close()
    with pytest.raises(ChannelClosed):
        await asyncio.wait_for(reader, timeout=1)


@pytest.mark.asyncio
async def test_close_is_idempotent() -> None:
    ch: Channel[int] = Channel(1)
    ch.close()
    ch.close()
    assert ch.closed
    assert [i async for i in ch] == []


@pytest.mark.asyncio
async def test_send_on_closed_channel() -> None:
    ch: Channel[int] = Channel(1)
    ch.close()
    with pytest.raises(RuntimeError):
        await ch.send(1)
    with pytest.raises(RuntimeError):
        ch.send_nowait(1)


@pytest.mark.asyncio
async def test_send_blocks_when_full_until_cancelled() -> None:
    ch: Channel[int] = Channel(1)
    ch.send_nowait(1)
    cancel = asyncio.Event()
    asyncio.get_running_loop().call_later(0.01, cancel.set)
    with pytest.raises(RetrievalCancelledError):
        await ch.send(2, cancel)
    assert await ch.receive() == 1


@pytest.mark.asyncio
async def test_receive_cancelled() -> None:
    ch: Channel[int] = Channel(1)
    cancel = asyncio.Event()
    cancel.set()
    with pytest.raises(RetrievalCancelledError):
        await ch.receive(cancel)


@pytest.mark.asyncio
async def test_several_readers_all_see_close() -> None:
    ch: Channel[int] = Channel(2)
    readers = [asyncio.create_task(ch.receive()) for _ in range(3)]
    await asyncio.sleep(0)
    ch.close()
    results = await asyncio.gather(*readers, return_exceptions=True)
    assert all(isinstance(r, ChannelClosed) for r in results)
