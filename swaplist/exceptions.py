"""
Custom exception hierarchy for swaplist.

Each exception maps to a specific CLI exit code and JSON error_code field.
cli.py catches all SwaplistError subclasses and formats them as JSON output.

Exit code mapping:
  1   — SwaplistError (generic CLI error)
  2   — APIError (node RPC error, explorer error, rate limit)
  3   — NetworkError (cannot connect, timeout)
  4   — DataError (invalid request, chain data inconsistency)
  5   — ConfigError (malformed config or bad setting)
  6   — StorageError (output file failure)
  130 — RetrievalCancelledError (interrupted by the user)
"""


class SwaplistError(Exception):
    """Base exception for all swaplist errors."""

    exit_code: int = 1
    error_code: str = "unknown_error"

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class APIError(SwaplistError):
    """Upstream node or explorer returned an error response."""

    exit_code = 2
    error_code = "api_error"


class RPCError(APIError):
    """A JSON-RPC call to the node failed."""

    error_code = "rpc_error"


class NotFoundError(RPCError):
    """The node has no record of the requested block or transaction."""

    error_code = "not_found"


class InvalidAPIKeyError(APIError):
    """Explorer API key is invalid or missing."""

    error_code = "invalid_api_key"


class RateLimitError(APIError):
    """Upstream rate limit exceeded."""

    error_code = "rate_limited"

    def __init__(self, message: str, retry_after: int = 60, **kwargs) -> None:
        super().__init__(message, details={"retry_after_seconds": retry_after})
        self.retry_after = retry_after


class NetworkError(SwaplistError):
    """Network connectivity issue — timeout or connection failure."""

    exit_code = 3
    error_code = "network_error"


class NetworkTimeoutError(NetworkError):
    """Request timed out."""

    error_code = "network_timeout"


class ConnectionFailedError(NetworkError):
    """Could not establish the initial connection to the node."""

    error_code = "connection_failed"


class DataError(SwaplistError):
    """Request validation or chain data error."""

    exit_code = 4
    error_code = "data_error"


class ValidationError(DataError):
    """Request is malformed or contradictory; nothing was sent to the node."""

    error_code = "validation_error"


class ConsistencyError(DataError):
    """Chain data disagrees with itself, usually a reorg between two calls."""

    error_code = "consistency_error"


class TransactionNotFoundInBlockError(ConsistencyError):
    """A mined transaction is missing from the block that should contain it."""

    error_code = "transaction_not_in_block"


class ConfigError(SwaplistError):
    """Configuration cannot be used."""

    exit_code = 5
    error_code = "config_error"


class ConfigInvalidError(ConfigError):
    """Invalid TOML, unknown key, or out-of-range value (file, env or flag)."""

    error_code = "config_invalid"


class StorageError(SwaplistError):
    """Writing results to the output file failed."""

    exit_code = 6
    error_code = "storage_error"


class RetrievalCancelledError(SwaplistError):
    """The caller's cancellation signal fired before the work finished."""

    exit_code = 130
    error_code = "cancelled"


class RateLimitCancelledError(RetrievalCancelledError):
    """Cancelled while waiting for a rate limiter token."""

    error_code = "rate_limit_cancelled"
