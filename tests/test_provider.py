import asyncio

import httpx
import pytest

from backtest_lab.config.models import ProviderConfig
from backtest_lab.data import BinanceProvider, CsvCandleProvider, InMemoryProvider, interval_to_ms, load_candles_csv
from backtest_lab.errors import DataProviderError

from support import HOUR_MS, START_MS, make_candles

FAST_RETRY = ProviderConfig(base_url="https://api.test/api/v3", max_attempts=3, backoff_min_seconds=0, backoff_max_seconds=0)


def kline(open_time, close=100.0):
    return [open_time, "99.5", "101.0", "99.0", str(close), "12.5", open_time + 59_999, "1250.0", 42, "6.0", "600.0"]


def make_provider(handler, config=FAST_RETRY):
    client = httpx.AsyncClient(base_url=config.base_url, transport=httpx.MockTransport(handler))
    return BinanceProvider(config, client=client)


def test_interval_lengths():
    assert interval_to_ms("1m") == 60_000
    assert interval_to_ms("4h") == 4 * HOUR_MS
    assert interval_to_ms("1M") == 30 * 24 * HOUR_MS
    assert interval_to_ms("7x") == 60_000


def test_get_candles_parses_klines():
    seen = []

    def handler(request):
        seen.append(dict(request.url.params))
        return httpx.Response(200, json=[kline(START_MS), kline(START_MS + 60_000, close=101.0)])

    candles = asyncio.run(make_provider(handler).get_candles("btcusdt", "1m", limit=2))

    assert seen[0]["symbol"] == "BTCUSDT"
    assert seen[0]["interval"] == "1m"
    assert seen[0]["limit"] == "2"
    assert [candle.close for candle in candles] == [100.0, 101.0]
    assert candles[0].number_of_trades == 42
    assert candles[0].close_time == START_MS + 59_999


def test_get_candles_pages_forward_from_start_time():
    calls = []

    def handler(request):
        params = request.url.params
        offset = int(params["startTime"]) - START_MS
        start = START_MS + -(-offset // 60_000) * 60_000
        limit = int(params["limit"])
        calls.append((start, limit))
        return httpx.Response(200, json=[kline(start + i * 60_000) for i in range(limit)])

    config = ProviderConfig(base_url="https://api.test/api/v3", page_limit=3)
    candles = asyncio.run(make_provider(handler, config).get_candles("ETHUSDT", "1m", start_time=START_MS, limit=7))

    assert len(candles) == 7
    assert [start for start, _ in calls] == [START_MS, START_MS + 3 * 60_000, START_MS + 6 * 60_000]
    assert [limit for _, limit in calls] == [3, 3, 1]
    assert [candle.open_time for candle in candles] == [START_MS + i * 60_000 for i in range(7)]


def test_get_candles_pages_backward_and_stops_on_short_page():
    calls = []
    available = [START_MS + i * 60_000 for i in range(5)]

    def handler(request):
        params = request.url.params
        limit = int(params["limit"])
        end = int(params["endTime"]) if "endTime" in params else available[-1]
        rows = [kline(t) for t in available if t <= end][-limit:]
        calls.append(limit)
        return httpx.Response(200, json=rows)

    config = ProviderConfig(base_url="https://api.test/api/v3", page_limit=2)
    candles = asyncio.run(make_provider(handler, config).get_candles("ETHUSDT", "1m", limit=10))

    assert [candle.open_time for candle in candles] == available
    assert calls == [2, 2, 2]


def test_transient_errors_are_retried():
    attempts = []

    def handler(request):
        attempts.append(1)
        if len(attempts) < 3:
            return httpx.Response(503, text="busy")
        return httpx.Response(200, json=[kline(START_MS)])

    candles = asyncio.run(make_provider(handler).get_candles("BTCUSDT", "1m", limit=1))
    assert len(attempts) == 3
    assert len(candles) == 1


def test_client_errors_fail_without_retry():
    attempts = []

    def handler(request):
        attempts.append(1)
        return httpx.Response(400, json={"code": -1121, "msg": "Invalid symbol."})

    with pytest.raises(DataProviderError, match="HTTP 400"):
        asyncio.run(make_provider(handler).get_candles("NOPE", "1m", limit=1))
    assert len(attempts) == 1


def test_exhausted_retries_raise_provider_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(DataProviderError, match="request failed"):
        asyncio.run(make_provider(handler).get_candles("BTCUSDT", "1m", limit=1))


def test_list_symbols_keeps_trading_pairs():
    def handler(request):
        assert request.url.path.endswith("/exchangeInfo")
        return httpx.Response(
            200,
            json={
                "symbols": [
                    {"symbol": "BTCUSDT", "status": "TRADING"},
                    {"symbol": "OLDUSDT", "status": "BREAK"},
                    {"symbol": "ETHBTC", "status": "TRADING"},
                ]
            },
        )

    assert asyncio.run(make_provider(handler).list_symbols()) == ["BTCUSDT", "ETHBTC"]


def test_in_memory_provider_filters_like_the_exchange():
    provider = InMemoryProvider(make_candles([100.0 + i for i in range(10)]), symbols=["BTCUSDT"])

    latest = asyncio.run(provider.get_candles("BTCUSDT", "1h", limit=3))
    assert [candle.close for candle in latest] == [107.0, 108.0, 109.0]

    window = asyncio.run(provider.get_candles("BTCUSDT", "1h", start_time=START_MS + 2 * HOUR_MS, limit=2))
    assert [candle.close for candle in window] == [102.0, 103.0]
    assert provider.requests[-1]["limit"] == 2


def test_csv_provider_reads_rows(tmp_path):
    path = tmp_path / "candles.csv"
    path.write_text(
        "open_time,open,high,low,close,volume\n"
        f"{START_MS + HOUR_MS},101,102,100,101.5,10\n"
        f"{START_MS},100,101,99,100.5,12\n",
        encoding="utf-8",
    )
    candles = load_candles_csv(path, interval="1h")
    assert [candle.open_time for candle in candles] == [START_MS, START_MS + HOUR_MS]
    assert candles[0].close_time == START_MS + HOUR_MS - 1

    provider = CsvCandleProvider(path, symbol="BTCUSDT", interval="1h")
    assert asyncio.run(provider.list_symbols()) == ["BTCUSDT"]
    assert len(asyncio.run(provider.get_candles("BTCUSDT", "1h"))) == 2
