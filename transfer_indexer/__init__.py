"""Balance accumulation and price enrichment for ledger transfer events."""

__version__ = "0.1.0"
