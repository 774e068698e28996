"""Using swaplist as a library.

Streams senders for a block range straight from the pipeline, stopping after
the first ten results.
"""

import asyncio

from swaplist.fetchers import RPCClient
from swaplist.full import FullClient
from swaplist.models import TransactionsRequest

ENDPOINT = "https://rpc.gnosischain.com"
CONTRACT = "0xc2d5a532cf69aa9a1378737d8ccdef884b6e7420"


async def main():
    cancel = asyncio.Event()
    request = TransactionsRequest(address=CONTRACT, start_block=19475474, end_block=19475574)

    async with RPCClient(ENDPOINT, requests_per_second=15) as ec:
        stream = FullClient(ec, block_range_limit=5).get_transactions(request, cancel)

        seen = 0
        async for tx in stream.transactions:
            print(tx.to_line())
            seen += 1
            if seen == 10:
                cancel.set()
                break

        await stream.aclose()
        err = await stream.error()
        if err is not None and not cancel.is_set():
            raise err


if __name__ == "__main__":
    asyncio.run(main())
