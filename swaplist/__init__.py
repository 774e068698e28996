"""swaplist — collect the senders of transactions that touched a contract."""

__version__ = "0.1.0"
