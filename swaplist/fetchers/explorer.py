"""
Block-explorer fetcher — Etherscan-compatible `txlist` client.

Bounded alternative to the full RPC scan: a single request returns up to
10,000 transactions of an address, oldest or newest first. Defaults to the
Gnosisscan API.

API docs: https://docs.gnosisscan.io/api-endpoints/accounts

Design decisions:
- Uses async httpx, one GET per call, no pagination beyond the first page.
- The request is validated before anything goes over the wire.
- Senders are returned exactly as the explorer reports them.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from swaplist.config import DEFAULT_EXPLORER_URL
from swaplist.exceptions import (
    APIError,
    ConnectionFailedError,
    InvalidAPIKeyError,
    NetworkTimeoutError,
    RateLimitError,
    ValidationError,
)
from swaplist.models import (
    EXPLORER_MAX_AMOUNT,
    EXPLORER_ORDERS,
    ExplorerRequest,
    Transaction,
)

logger = logging.getLogger(__name__)


def validate_explorer_request(req: ExplorerRequest) -> None:
    """Raise ValidationError unless `req` can be sent as-is."""
    if not req.address:
        raise ValidationError("address is required", details={"stage": "validation"})
    if not 1 <= req.amount <= EXPLORER_MAX_AMOUNT:
        raise ValidationError(
            f"amount must be between 1 and {EXPLORER_MAX_AMOUNT}, got {req.amount}",
            details={"stage": "validation", "amount": req.amount},
        )
    if req.order not in EXPLORER_ORDERS:
        raise ValidationError(
            f"order must be one of {EXPLORER_ORDERS}, got {req.order!r}",
            details={"stage": "validation", "order": req.order},
        )
    if not req.api_key:
        raise ValidationError("api key is required", details={"stage": "validation"})
    if req.start_block > req.resolved_end_block():
        raise ValidationError(
            "start block should be less than or equal to end block",
            details={
                "stage": "validation",
                "start_block": req.start_block,
                "end_block": req.end_block,
            },
        )


class ExplorerClient:
    """Async client for an Etherscan-compatible explorer API."""

    def __init__(
        self,
        base_url: str = DEFAULT_EXPLORER_URL,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url
        self._client = http_client or httpx.AsyncClient(timeout=30.0)

    async def get_transactions(self, req: ExplorerRequest) -> list[Transaction]:
        """
        Fetch up to `req.amount` transactions of `req.address`.

        Returns:
            Transactions in explorer order (`req.order`). Empty if none found.

        Raises:
            ValidationError: Request rejected before sending
            InvalidAPIKeyError: Explorer rejected the API key
            RateLimitError: Explorer rate limit hit
            APIError: Any other non-OK response
        """
        validate_explorer_request(req)

        # Explorers reject page * offset > 10000, and page=0 is read as "no paging".
        page = 0 if req.amount == EXPLORER_MAX_AMOUNT else 1

        params = {
            "module": "account",
            "action": "txlist",
            "address": req.address,
            "startblock": req.start_block,
            "endblock": req.resolved_end_block(),
            "page": page,
            "offset": req.amount,
            "sort": req.order,
            "apikey": req.api_key,
        }
        try:
            resp = await self._client.get(self._base_url, params=params)
        except httpx.TimeoutException as e:
            raise NetworkTimeoutError(f"Explorer timeout: {e}") from e
        except httpx.ConnectError as e:
            raise ConnectionFailedError(f"Cannot connect to explorer: {e}") from e

        if resp.status_code == 429:
            raise RateLimitError("Explorer rate limit exceeded", retry_after=60)
        if resp.status_code != 200:
            raise APIError(
                f"unexpected HTTP status: {resp.status_code}",
                details={"status": resp.status_code},
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise APIError(f"error decoding response body: {e}") from e

        return self._parse_results(data)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ExplorerClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ──────────────────────────────────────────────────────────────
    # Private helpers
    # ──────────────────────────────────────────────────────────────

    def _parse_results(self, data: dict[str, Any]) -> list[Transaction]:
        result = data.get("result", [])
        if data.get("status") == "0":
            msg = data.get("message", "")
            if "Invalid API Key" in str(result):
                raise InvalidAPIKeyError("Explorer API key is invalid")
            if msg == "No transactions found":
                return []  # Empty, not an error
            if "rate limit" in str(result).lower():
                raise RateLimitError("Explorer rate limit exceeded", retry_after=60)
            raise APIError(f"Explorer error: {msg} {result}".strip(), details={"message": msg})

        if not isinstance(result, list):
            raise APIError("Explorer returned an unexpected result", details={"result": str(result)})

        txns: list[Transaction] = []
        for raw in result:
            try:
                txns.append(Transaction.from_explorer(raw))
            except (KeyError, TypeError):
                logger.debug("skipping malformed explorer row: %r", raw)
        return txns
