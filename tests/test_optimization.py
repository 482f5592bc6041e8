import time

import pytest

from backtest_lab.config.models import BacktestConfig
from backtest_lab.errors import BatchCancelled, InvalidRequestError, OptimizationError
from backtest_lab.optimization.compare import compare_strategies
from backtest_lab.optimization.grid import build_job, combinations, grid_search
from backtest_lab.optimization.monte_carlo import run_monte_carlo
from backtest_lab.optimization.parallel import CancelToken, run_batch
from backtest_lab.optimization.walk_forward import _slice, walk_forward

from support import DAY_MS, HOUR_MS, cycle_registry, make_candles, wave_closes


def test_combinations_are_lazy_and_complete():
    generator = combinations({"a": [1, 2], "b": ["x", "y", "z"]})
    assert next(generator) == {"a": 1, "b": "x"}
    rest = list(generator)
    assert len(rest) == 5
    assert rest[-1] == {"a": 2, "b": "z"}


def test_run_batch_keeps_submission_order_and_records_failures():
    def work(value):
        if value == 3:
            raise ValueError("three")
        time.sleep(0.01 * (5 - value))
        return value * 10

    results = run_batch(work, range(5), max_workers=4)
    assert [result.index for result in results] == [0, 1, 2, 3, 4]
    assert [result.value for result in results if result.ok] == [0, 10, 20, 40]
    assert results[3].error == "three"


def test_run_batch_honours_cancel_token():
    token = CancelToken()
    token.cancel()
    with pytest.raises(BatchCancelled):
        run_batch(lambda value: value, range(10), max_workers=2, cancel_token=token)


def test_run_batch_times_out():
    def slow(value):
        time.sleep(0.3)
        return value

    with pytest.raises(BatchCancelled, match="timed out"):
        run_batch(slow, range(6), max_workers=2, timeout=0.05)


def test_grid_search_picks_max_net_sharpe():
    candles = make_candles(wave_closes(240))
    result = grid_search(
        candles,
        "CYCLE",
        BacktestConfig(),
        {"stopLoss": [1, 3, 5], "takeProfit": [2, 4], "hold": [2, 3]},
        registry=cycle_registry(),
        max_workers=2,
    )

    assert len(result.all_results) == 12
    assert result.failures == []
    best = max(run.performance.net_sharpe_ratio for run in result.all_results)
    assert result.best_performance.net_sharpe_ratio == best
    first_best = next(run for run in result.all_results if run.performance.net_sharpe_ratio == best)
    assert result.best_params == first_best.params

    rerun = build_job(candles, "CYCLE", BacktestConfig(), registry=cycle_registry())(result.best_params)
    assert rerun.net_sharpe_ratio == pytest.approx(best)


def test_grid_search_skips_invalid_combinations():
    candles = make_candles(wave_closes(120))
    result = grid_search(
        candles,
        "CYCLE",
        BacktestConfig(),
        {"positionSize": [10, 150]},
        registry=cycle_registry(),
        max_workers=1,
    )
    assert [run.params for run in result.all_results] == [{"positionSize": 10}]
    assert result.failures[0].params == {"positionSize": 150}
    assert "Position size must be between 0 and 100" in result.failures[0].error


def test_grid_search_rejects_unknown_strategy_parameter():
    candles = make_candles(wave_closes(60))
    with pytest.raises(InvalidRequestError, match="Unknown parameter"):
        grid_search(candles, "CYCLE", BacktestConfig(), {"bogus": [1, 2]}, registry=cycle_registry())


def test_grid_search_with_no_successes_raises():
    candles = make_candles(wave_closes(60))
    with pytest.raises(OptimizationError):
        grid_search(candles, "CYCLE", BacktestConfig(), {"stopLoss": [0, -1]}, registry=cycle_registry())


def test_monte_carlo_mean_converges_to_expected_sum():
    returns = [1.0, -0.5, 2.0]
    result = run_monte_carlo(returns, simulations=4000, seed=7)

    assert result.simulations == 4000
    assert result.trade_count == 3
    assert result.expected_value == pytest.approx(sum(returns), abs=0.15)
    ladder = [result.percentiles[key] for key in ("p5", "p10", "p25", "p50", "p75", "p90", "p95")]
    assert ladder == sorted(ladder)
    assert result.worst_case <= ladder[0]
    assert result.best_case >= ladder[-1]


def test_monte_carlo_seed_is_independent_of_worker_count():
    returns = [0.5, -1.0, 1.5, 2.5, -0.25]
    inline = run_monte_carlo(returns, simulations=900, seed=42, max_workers=1)
    pooled = run_monte_carlo(returns, simulations=900, seed=42, max_workers=4)
    assert inline == pooled


def test_monte_carlo_without_trades_raises():
    with pytest.raises(OptimizationError, match="No trades found for Monte Carlo simulation"):
        run_monte_carlo([], simulations=10)


def test_walk_forward_slices_do_not_overlap():
    candles = make_candles(wave_closes(24 * 20))
    open_times = [candle.open_time for candle in candles]
    start = open_times[0]
    in_lo, in_hi = _slice(open_times, start, start + 5 * DAY_MS)
    out_lo, out_hi = _slice(open_times, start + 5 * DAY_MS, start + 7 * DAY_MS)

    assert (in_lo, in_hi) == (0, 120)
    assert (out_lo, out_hi) == (120, 168)


def test_walk_forward_runs_every_period():
    candles = make_candles(wave_closes(24 * 20))
    result = walk_forward(
        candles,
        "CYCLE",
        BacktestConfig(),
        window_days=5,
        step_days=2,
        param_ranges={"stopLoss": [1, 3], "takeProfit": [2, 4]},
        registry=cycle_registry(),
        max_workers=1,
    )

    assert len(result.periods) == 8
    assert result.skipped_periods == []
    window_ms = 5 * DAY_MS
    step_ms = 2 * DAY_MS
    for index, period in enumerate(result.periods):
        assert period.start_date == candles[0].open_time + index * step_ms
        assert period.start_date + window_ms < period.end_date <= period.start_date + window_ms + step_ms
        assert set(period.params) == {"stopLoss", "takeProfit"}
    for period in result.periods[:-1]:
        assert period.out_of_sample_candles == 48
    last = result.periods[-1]
    assert last.end_date == candles[-1].open_time
    # candles 456..479, the final candle included
    assert last.out_of_sample_candles == 24


def test_walk_forward_skips_short_out_of_sample_slices():
    candles = make_candles(wave_closes(24 * 6))
    result = walk_forward(
        candles,
        "CYCLE",
        BacktestConfig(),
        window_days=5,
        step_days=1,
        param_ranges={"stopLoss": [2]},
        strategy_params={"required_candles": 30},
        registry=cycle_registry(),
        max_workers=1,
    )
    assert result.periods == []
    assert len(result.skipped_periods) == 1
    assert "Out-of-sample slice" in result.skipped_periods[0].reason
    assert result.stability_score == 0.0


def test_walk_forward_rejects_bad_window():
    with pytest.raises(InvalidRequestError):
        walk_forward(make_candles([100.0] * 10), "CYCLE", BacktestConfig(), window_days=0, registry=cycle_registry())


def test_compare_ranks_by_net_sharpe_and_records_failures():
    candles = make_candles(wave_closes(120))
    registry = cycle_registry()
    result = compare_strategies(candles, ["CYCLE", "NOPE"], BacktestConfig(), registry=registry, max_workers=1)

    assert [ranking.strategy for ranking in result.rankings] == ["CYCLE"]
    assert result.failures[0].strategy == "NOPE"
    assert "not found" in result.failures[0].error


def test_compare_sorts_descending():
    candles = make_candles(wave_closes(400), step=HOUR_MS)
    result = compare_strategies(
        candles, ["RSI_EMA50", "BB_RSI", "MACD_VOLUME"], BacktestConfig(), max_workers=1
    )
    sharpes = [ranking.performance.net_sharpe_ratio for ranking in result.rankings]
    assert sharpes == sorted(sharpes, reverse=True)
    assert result.best is result.rankings[0]
