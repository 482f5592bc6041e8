"""Historical market data providers."""

from backtest_lab.data.intervals import INTERVAL_MS, interval_to_ms
from backtest_lab.data.provider import (
    BinanceProvider,
    CsvCandleProvider,
    HistoricalDataProvider,
    InMemoryProvider,
    load_candles_csv,
    parse_kline,
)

__all__ = [
    "INTERVAL_MS",
    "BinanceProvider",
    "CsvCandleProvider",
    "HistoricalDataProvider",
    "InMemoryProvider",
    "interval_to_ms",
    "load_candles_csv",
    "parse_kline",
]
