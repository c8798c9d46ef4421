"""Configuration package for the transfer indexer."""

from .settings import IndexerSettings, PriceStrategy, get_settings

__all__ = ["IndexerSettings", "PriceStrategy", "get_settings"]
