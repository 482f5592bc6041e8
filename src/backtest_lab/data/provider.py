"""Historical candle sources: Binance REST, CSV files and in-memory fixtures."""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Any, Iterable, Optional, Protocol, Sequence

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from backtest_lab.config.models import ProviderConfig
from backtest_lab.data.intervals import interval_to_ms
from backtest_lab.errors import DataProviderError
from backtest_lab.simulator.models import Candle

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class HistoricalDataProvider(Protocol):
    async def get_candles(
        self,
        symbol: str,
        interval: str,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
        limit: int = 1000,
    ) -> list[Candle]: ...

    async def list_symbols(self) -> list[str]: ...


def parse_kline(row: Sequence[Any]) -> Candle:
    """Binance kline array -> Candle. Prices arrive as strings."""
    return Candle(
        open_time=int(row[0]),
        open=float(row[1]),
        high=float(row[2]),
        low=float(row[3]),
        close=float(row[4]),
        volume=float(row[5]),
        close_time=int(row[6]),
        quote_asset_volume=float(row[7]) if len(row) > 7 else 0.0,
        number_of_trades=int(row[8]) if len(row) > 8 else 0,
        taker_buy_base_volume=float(row[9]) if len(row) > 9 else 0.0,
        taker_buy_quote_volume=float(row[10]) if len(row) > 10 else 0.0,
    )


def _should_retry(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS
    return False


def _merge(candles: Iterable[Candle]) -> list[Candle]:
    by_time = {candle.open_time: candle for candle in candles}
    return [by_time[key] for key in sorted(by_time)]


class BinanceProvider:
    """Spot klines and symbols from the Binance public REST API.

    Requests larger than one page are split: with ``start_time`` the provider
    pages forward, otherwise it pages backward from ``end_time`` (or now).
    """

    def __init__(self, config: Optional[ProviderConfig] = None, client: Optional[httpx.AsyncClient] = None) -> None:
        self.config = config or ProviderConfig()
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(base_url=self.config.base_url, timeout=self.config.timeout_seconds)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def _get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        client = self._get_client()
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.max_attempts),
            wait=wait_exponential(
                multiplier=1, min=self.config.backoff_min_seconds, max=self.config.backoff_max_seconds
            ),
            retry=retry_if_exception(_should_retry),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await client.get(path, params=params or {})
                    response.raise_for_status()
                    return response.json()
        except httpx.HTTPStatusError as exc:
            raise DataProviderError(
                f"{path} returned HTTP {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except (httpx.HTTPError, RetryError, ValueError) as exc:
            raise DataProviderError(f"{path} request failed: {exc}") from exc

    async def _klines(
        self, symbol: str, interval: str, limit: int, start_time: Optional[int], end_time: Optional[int]
    ) -> list[Candle]:
        params: dict[str, Any] = {"symbol": symbol.upper(), "interval": interval, "limit": limit}
        if start_time is not None:
            params["startTime"] = start_time
        if end_time is not None:
            params["endTime"] = end_time
        payload = await self._get("/klines", params)
        return [parse_kline(row) for row in payload]

    async def get_candles(
        self,
        symbol: str,
        interval: str,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
        limit: int = 1000,
    ) -> list[Candle]:
        page_limit = self.config.page_limit
        collected: list[Candle] = []
        forward = start_time is not None
        cursor_start, cursor_end = start_time, end_time
        while len(collected) < limit:
            requested = min(page_limit, limit - len(collected))
            page = await self._klines(symbol, interval, requested, cursor_start, cursor_end)
            collected.extend(page)
            if len(page) < requested:
                break
            if forward:
                cursor_start = page[-1].open_time + 1
                if end_time is not None and cursor_start > end_time:
                    break
            else:
                cursor_end = page[0].open_time - 1
        candles = _merge(collected)
        candles = candles[:limit] if forward else candles[-limit:]
        logger.info("Fetched %d historical candles for %s %s", len(candles), symbol.upper(), interval)
        return candles

    async def list_symbols(self) -> list[str]:
        payload = await self._get("/exchangeInfo")
        return [item["symbol"] for item in payload.get("symbols", []) if item.get("status") == "TRADING"]


class InMemoryProvider:
    """Serves a fixed candle list, filtered like the exchange would."""

    def __init__(self, candles: Sequence[Candle], symbols: Optional[Sequence[str]] = None) -> None:
        self.candles = _merge(candles)
        self.symbols = list(symbols or [])
        self.requests: list[dict[str, Any]] = []

    async def get_candles(
        self,
        symbol: str,
        interval: str,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
        limit: int = 1000,
    ) -> list[Candle]:
        self.requests.append(
            {"symbol": symbol, "interval": interval, "start_time": start_time, "end_time": end_time, "limit": limit}
        )
        selected = [
            candle
            for candle in self.candles
            if (start_time is None or candle.open_time >= start_time)
            and (end_time is None or candle.open_time <= end_time)
        ]
        return selected[:limit] if start_time is not None else selected[-limit:]

    async def list_symbols(self) -> list[str]:
        return list(self.symbols)


def _parse_row(row: dict, interval_ms: int) -> Optional[Candle]:
    raw_time = row.get("open_time") or row.get("openTime") or row.get("timestamp")
    if not raw_time:
        return None
    open_time = int(float(raw_time))
    close = float(row["close"])
    raw_close_time = row.get("close_time") or row.get("closeTime")
    return Candle(
        open_time=open_time,
        open=float(row.get("open") or close),
        high=float(row.get("high") or close),
        low=float(row.get("low") or close),
        close=close,
        volume=float(row.get("volume") or 0.0),
        close_time=int(float(raw_close_time)) if raw_close_time else open_time + interval_ms - 1,
    )


def load_candles_csv(path: str | Path, interval: str = "1m") -> list[Candle]:
    """Read ``open_time,open,high,low,close,volume[,close_time]`` rows (epoch ms)."""
    interval_ms = interval_to_ms(interval)
    candles: list[Candle] = []
    with Path(path).open("r", encoding="utf-8", newline="") as handle:
        for row in csv.DictReader(handle):
            candle = _parse_row(row, interval_ms)
            if candle:
                candles.append(candle)
    return _merge(candles)


class CsvCandleProvider(InMemoryProvider):
    def __init__(self, path: str | Path, symbol: str = "CSV", interval: str = "1m") -> None:
        self.path = Path(path)
        super().__init__(load_candles_csv(self.path, interval), symbols=[symbol])
