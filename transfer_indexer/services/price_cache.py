"""Process-lifetime cache of daily quotes."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import date
from decimal import Decimal


class PriceCache:
    """Map of UTC day -> quote shared by every cycle of a run.

    Entries are only removed when a fetch for that day fails, so the size is
    bounded by the number of days since the asset was listed.
    """

    def __init__(self) -> None:
        self._quotes: dict[date, Decimal] = {}

    def __contains__(self, day: object) -> bool:
        return day in self._quotes

    def __iter__(self) -> Iterator[date]:
        return iter(self._quotes)

    def get(self, day: date) -> Decimal | None:
        return self._quotes.get(day)

    def set(self, day: date, price: Decimal) -> None:
        self._quotes[day] = price

    def set_missing(self, day: date, price: Decimal) -> bool:
        """Store ``price`` unless ``day`` is already cached; report whether it was stored."""

        if day in self._quotes:
            return False
        self._quotes[day] = price
        return True

    def evict(self, day: date) -> None:
        self._quotes.pop(day, None)


__all__ = ["PriceCache"]
