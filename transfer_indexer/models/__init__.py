"""Database model exports."""

from .ledger import Account, HistoricalBalance, Transfer, UNKNOWN_PRICE

__all__ = [
    "Account",
    "HistoricalBalance",
    "Transfer",
    "UNKNOWN_PRICE",
]
