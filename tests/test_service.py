import asyncio

import pytest

from backtest_lab.config.loader import default_config
from backtest_lab.data import InMemoryProvider
from backtest_lab.errors import DataProviderError
from backtest_lab.monitoring import AuditLog
from backtest_lab.service import BacktestService, popular_symbols

from support import cycle_registry, make_candles, wave_closes

SYMBOLS = ["BTCUSDT", "ETHUSDT", "ETHBTC", "DOGEUSDT", "SOLUSDT"]


def make_service(candles=None, registry=None, audit_log=None, provider=None):
    candles = candles if candles is not None else make_candles(wave_closes(1200))
    return BacktestService(
        provider=provider or InMemoryProvider(candles, symbols=SYMBOLS),
        config=default_config(),
        registry=registry,
        audit_log=audit_log,
    )


def request(**extra):
    payload = {"symbol": "btcusdt", "interval": "1h", "strategy": "CYCLE", "config": {}}
    payload.update(extra)
    return payload


def run(coro):
    return asyncio.run(coro)


class FailingProvider:
    async def get_candles(self, symbol, interval, start_time=None, end_time=None, limit=1000):
        raise DataProviderError("/klines request failed: timeout")

    async def list_symbols(self):
        raise DataProviderError("/exchangeInfo request failed: timeout")


def test_missing_fields_message():
    service = make_service()
    response = run(service.run_backtest({"symbol": "BTCUSDT", "interval": "1h"}))
    assert not response.success
    assert response.error == "Missing required fields: symbol, interval, strategy, config"


@pytest.mark.parametrize(
    "config, message",
    [
        ({"stopLoss": 0}, "Stop loss and take profit must be greater than 0"),
        ({"positionSize": 150}, "Position size must be between 0 and 100"),
        ({"initialBalance": 0}, "Initial balance must be greater than 0"),
    ],
)
def test_config_bounds_are_checked_before_fetching(config, message):
    provider = InMemoryProvider(make_candles(wave_closes(100)))
    service = make_service(provider=provider, registry=cycle_registry())
    response = run(service.run_backtest(request(config=config)))
    assert response.error == message
    assert provider.requests == []


def test_empty_config_object_takes_defaults():
    service = make_service(registry=cycle_registry())
    response = run(service.run_backtest(request(config={})))
    assert response.success
    assert response.data.trades[0].quantity > 0

    blank_symbol = run(service.run_backtest(request(symbol="")))
    assert blank_symbol.error == "Missing required fields: symbol, interval, strategy, config"
    no_config = run(service.run_backtest(request(config=None)))
    assert no_config.error == blank_symbol.error


def test_unknown_strategy_then_insufficient_data():
    provider = InMemoryProvider(make_candles(wave_closes(30)))
    service = make_service(provider=provider)
    response = run(service.run_backtest(request(strategy="NOPE")))
    assert response.error.startswith("Strategy 'NOPE' not found. Available strategies:")
    assert provider.requests == []

    response = run(service.run_backtest(request(strategy="RSI_EMA50")))
    assert response.error == "Insufficient data. Need at least 50 candles, got 30"
    assert provider.requests[-1]["limit"] == 1000


def test_run_backtest_returns_camel_case_payload():
    service = make_service(registry=cycle_registry())
    response = run(service.run_backtest(request(config={"positionSize": 20})))
    assert response.success

    body = response.to_dict()
    data = body["data"]
    assert "error" not in body
    assert data["strategy"] == "CYCLE"
    assert data["trades"]
    trade = data["trades"][0]
    assert trade["side"] == "BUY"
    assert trade["exitReason"] in {"SIGNAL", "STOP_LOSS", "TAKE_PROFIT", "END_OF_DATA"}
    assert data["performance"]["totalTrades"] == len(data["trades"])
    assert "netSharpeRatio" in data["performance"]


def test_provider_failure_is_wrapped():
    service = make_service(provider=FailingProvider(), registry=cycle_registry())
    response = run(service.run_backtest(request()))
    assert not response.success
    assert response.error.startswith("Failed to fetch historical data:")


def test_list_strategies_and_info():
    service = make_service()
    listed = run(service.list_strategies())
    assert {item["name"] for item in listed.data} >= {"RSI_EMA50", "SUPPORT_RESISTANCE"}

    info = run(service.get_strategy_info("BB_RSI"))
    assert info.data["requiredCandles"] == 20
    assert "bollinger_window" in info.data["parameters"]
    assert not run(service.get_strategy_info("NOPE")).success


def test_symbols_split_popular():
    response = run(make_service().list_symbols())
    assert response.data["all"] == SYMBOLS
    assert response.data["popular"] == ["BTCUSDT", "ETHUSDT", "SOLUSDT"]
    assert popular_symbols(["LINKUSDT", "LINKBTC"]) == ["LINKUSDT"]


def test_historical_data():
    response = run(make_service().get_historical_data("btcusdt", "1h", limit=5))
    assert response.data["symbol"] == "BTCUSDT"
    assert response.data["count"] == 5
    assert set(response.to_dict()["data"]["candles"][0]) >= {"openTime", "close", "closeTime"}


def test_optimize_uses_param_ranges():
    service = make_service(registry=cycle_registry())
    response = run(service.optimize(request(paramRanges={"stopLoss": [1, 2], "hold": [2, 4]})))
    assert response.success
    assert len(response.data.all_results) == 4
    assert set(response.data.best_params) == {"stopLoss", "hold"}


def test_optimize_rejects_empty_ranges():
    service = make_service(registry=cycle_registry())
    response = run(service.optimize(request(paramRanges={"stopLoss": []})))
    assert response.error == "paramRanges.stopLoss must be a non-empty list"


def test_monte_carlo_is_seeded():
    service = make_service(registry=cycle_registry())
    first = run(service.monte_carlo(request(simulations=300, seed=5)))
    second = run(service.monte_carlo(request(simulations=300, seed=5)))
    assert first.success
    assert first.data == second.data
    assert first.data.simulations == 300
    assert set(first.to_dict()["data"]["percentiles"]) == {"p95", "p90", "p75", "p50", "p25", "p10", "p5"}


def test_monte_carlo_without_trades_fails():
    service = make_service(registry=cycle_registry())
    response = run(service.monte_carlo(request(parameters={"period": 10_000})))
    assert response.error == "No trades found for Monte Carlo simulation"


def test_walk_forward_over_service():
    service = make_service(registry=cycle_registry())
    response = run(
        service.walk_forward(request(windowSize=10, stepSize=5, paramRanges={"stopLoss": [1, 3]}))
    )
    assert response.success
    assert response.data.periods
    assert service.provider.requests[-1]["limit"] == 10000
    payload = response.to_dict()["data"]
    assert {"periods", "averageOutOfSample", "stabilityScore", "skippedPeriods"} <= set(payload)


def test_compare_ranks_strategies():
    service = make_service()
    response = run(service.compare({"symbol": "BTCUSDT", "interval": "1h", "config": {}, "strategies": ["BB_RSI", "RSI_EMA50"]}))
    assert response.success
    assert sorted(ranking.strategy for ranking in response.data.rankings) == ["BB_RSI", "RSI_EMA50"]

    missing = run(service.compare({"symbol": "BTCUSDT", "interval": "1h", "config": {}, "strategies": []}))
    assert missing.error == "strategies must be a non-empty list"


def test_risk_metrics_over_service():
    service = make_service(registry=cycle_registry())
    response = run(service.risk_metrics(request(confidenceLevel=0.9)))
    assert response.success
    assert response.data["riskMetrics"].confidence_level == 0.9
    assert response.data["tradeCount"] > 0

    invalid = run(service.risk_metrics(request(confidenceLevel=1.5)))
    assert invalid.error == "Confidence level must be between 0 and 1"


def test_audit_log_records_outcomes(tmp_path):
    audit_log = AuditLog(tmp_path / "audit" / "events.jsonl", run_id="test")
    service = make_service(registry=cycle_registry(), audit_log=audit_log)

    run(service.run_backtest(request()))
    run(service.run_backtest(request(config={"stopLoss": 0})))

    completed = audit_log.records("backtest_completed")
    assert len(completed) == 1
    assert completed[0]["run_id"] == "test"
    assert completed[0]["payload"]["symbol"] == "BTCUSDT"
    assert completed[0]["payload"]["strategy"] == "CYCLE"
    assert "net_return_pct" in completed[0]["payload"]
    failed = audit_log.records("request_failed")
    assert failed[0]["payload"]["operation"] == "backtest_completed"
