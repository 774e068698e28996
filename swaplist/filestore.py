"""
Plain-text persistence of results.

One record per line, `<sender>:<timestamp>`. The file is created (or
truncated) on open. The streaming writer flushes after every line so an
interrupted run leaves every record it received on disk, though records still
buffered upstream at the moment of cancellation are lost.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from pathlib import Path

from swaplist.channel import Channel, ChannelClosed
from swaplist.exceptions import RetrievalCancelledError, StorageError
from swaplist.models import Transaction

logger = logging.getLogger(__name__)


def save_transactions(transactions: Iterable[Transaction], file_path: str | Path) -> int:
    """
    Write a finite collection of transactions to `file_path`.

    Returns the number of lines written.

    Raises:
        StorageError: File cannot be created or written.
    """
    count = 0
    try:
        with open(file_path, "w", encoding="utf-8") as f:
            for tx in transactions:
                f.write(tx.to_line() + "\n")
                count += 1
    except OSError as e:
        raise StorageError(
            f"error writing transactions to {file_path}: {e}",
            details={"path": str(file_path)},
        ) from e
    return count


async def save_transactions_async(
    transactions: Channel[Transaction],
    file_path: str | Path,
    cancel: asyncio.Event | None = None,
) -> int:
    """
    Write transactions to `file_path` as they arrive, until the channel closes.

    Returns the number of lines written.

    Raises:
        RetrievalCancelledError: `cancel` fired first; the file holds only
            what was received so far.
        StorageError: File cannot be created or written.
    """
    count = 0
    try:
        f = open(file_path, "w", encoding="utf-8")
    except OSError as e:
        raise StorageError(
            f"error creating file {file_path}: {e}", details={"path": str(file_path)}
        ) from e

    with f:
        while True:
            try:
                tx = await transactions.receive(cancel)
            except ChannelClosed:
                return count
            except RetrievalCancelledError as e:
                raise RetrievalCancelledError(
                    f"not all transactions have been saved ({count} written to {file_path})",
                    details={"path": str(file_path), "saved": count},
                ) from e

            try:
                f.write(tx.to_line() + "\n")
                f.flush()
            except OSError as e:
                raise StorageError(
                    f"error writing transaction to file: {e}",
                    details={"path": str(file_path), "saved": count},
                ) from e
            count += 1
            logger.debug("saved %s", tx.to_line())
