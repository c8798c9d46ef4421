"""HTTP client for daily asset quotes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from email.utils import parsedate_to_datetime
from typing import Any, Protocol

import httpx

from transfer_indexer.core.errors import (
    PriceProviderFailure,
    ProviderMalformedResponse,
    ProviderUnavailable,
    RateLimited,
)


@dataclass(frozen=True)
class DailyQuote:
    """One daily candle reduced to the values the indexer prices with."""

    day: date
    open: Decimal
    close: Decimal


class PriceProvider(Protocol):
    """Upstream source of asset quotes."""

    async def quote(self, asset: str, day: date) -> Decimal | None:
        """Return the quote for ``day`` or ``None`` when the provider has none."""
        ...

    async def daily_quotes(self, market: str) -> list[DailyQuote]:
        """Return the provider's full daily range for ``market``."""
        ...


def _to_decimal(value: Any, what: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ProviderMalformedResponse(f"Missing numeric {what} in price payload")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ProviderMalformedResponse(f"Invalid {what} in price payload: {value!r}") from exc


def _candle_day(open_time: Any) -> date:
    try:
        return datetime.fromtimestamp(int(open_time), tz=timezone.utc).date()
    except (TypeError, ValueError, OverflowError, OSError) as exc:
        raise ProviderMalformedResponse(f"Invalid candle open time: {open_time!r}") from exc


def parse_daily_candles(payload: Any) -> list[DailyQuote]:
    """Parse ``result["1d"]`` candles given as objects or positional arrays."""

    if not isinstance(payload, dict) or not isinstance(payload.get("result"), dict):
        raise ProviderMalformedResponse("Price range payload has no result object")
    candles = payload["result"].get("1d")
    if not isinstance(candles, list):
        raise ProviderMalformedResponse("Price range payload has no daily candles")

    quotes: list[DailyQuote] = []
    for candle in candles:
        if isinstance(candle, dict):
            open_time = candle.get("ot", candle.get("open_time"))
            open_value = candle.get("o", candle.get("open"))
            close_value = candle.get("c", candle.get("close", open_value))
        elif isinstance(candle, (list, tuple)) and len(candle) >= 5:
            open_time, open_value, close_value = candle[0], candle[1], candle[4]
        else:
            raise ProviderMalformedResponse(f"Unrecognised candle: {candle!r}")
        quotes.append(
            DailyQuote(
                day=_candle_day(open_time),
                open=_to_decimal(open_value, "open"),
                close=_to_decimal(close_value, "close"),
            )
        )
    return quotes


def parse_point_quote(payload: Any, currency: str) -> Decimal | None:
    """Extract ``market_data.current_price.<currency>``; ``None`` when unlisted."""

    if not isinstance(payload, dict):
        raise ProviderMalformedResponse("Price payload is not an object")
    market_data = payload.get("market_data")
    if market_data is None:
        return None
    if not isinstance(market_data, dict) or not isinstance(market_data.get("current_price"), dict):
        raise ProviderMalformedResponse("Price payload has no current_price object")
    return _to_decimal(market_data["current_price"].get(currency), f"{currency} price")


class PriceFeedClient:
    """Async quote client exposing a point endpoint and a daily range endpoint."""

    def __init__(
        self,
        *,
        point_base_url: str,
        range_base_url: str,
        currency: str = "usd",
        timeout_seconds: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._point_base_url = point_base_url.rstrip("/")
        self._range_base_url = range_base_url.rstrip("/")
        self._currency = currency.lower()
        self._timeout = httpx.Timeout(timeout_seconds)
        self._client = client or httpx.AsyncClient(timeout=self._timeout)

    async def quote(self, asset: str, day: date) -> Decimal | None:
        url = f"{self._point_base_url}/coins/{asset}/history"
        payload = await self._get_json(url, {"date": day.strftime("%d-%m-%Y"), "localization": "false"})
        return parse_point_quote(payload, self._currency)

    async def daily_quotes(self, market: str) -> list[DailyQuote]:
        url = f"{self._range_base_url}/markets/{market}/ohlc/1d"
        payload = await self._get_json(url, {})
        return parse_daily_candles(payload)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get_json(self, url: str, params: dict[str, Any]) -> Any:
        try:
            response = await self._client.get(url, params=params, timeout=self._timeout)
        except httpx.TimeoutException as exc:
            raise ProviderUnavailable(f"Price provider timed out: {url}") from exc
        except httpx.HTTPError as exc:
            raise ProviderUnavailable(f"Failed to reach price provider: {exc}") from exc

        if response.status_code == 429:
            raise RateLimited(
                f"Price provider rate limited {url}",
                retry_after=_retry_after(response.headers.get("retry-after")),
            )
        if response.status_code >= 500:
            raise ProviderUnavailable(f"Price provider error {response.status_code}: {response.text}")
        if response.status_code >= 400:
            raise PriceProviderFailure(f"Price provider rejected request {response.status_code}: {response.text}")

        try:
            return response.json()
        except ValueError as exc:
            raise ProviderMalformedResponse("Price provider returned invalid JSON payload") from exc


def _retry_after(raw: str | None, *, now: datetime | None = None) -> float:
    """Seconds to wait from a Retry-After header given as seconds or an HTTP date."""

    if not raw:
        return 0.0
    try:
        return max(0.0, float(raw))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        return 0.0
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - (now or datetime.now(timezone.utc))).total_seconds())


__all__ = [
    "DailyQuote",
    "PriceFeedClient",
    "PriceProvider",
    "parse_daily_candles",
    "parse_point_quote",
]
