import math
from dataclasses import fields

import pytest

from backtest_lab.analysis.aggregate import average_metrics, stability_score
from backtest_lab.analysis.metrics import (
    MS_PER_DAY,
    PerformanceMetrics,
    calculate_performance,
    max_drawdown,
    sharpe_ratio,
    sortino_ratio,
    streak_stats,
)
from backtest_lab.config.models import BacktestConfig

from support import START_MS, make_trade


def test_zero_trades_gives_all_zero_metrics():
    metrics = calculate_performance([], BacktestConfig())
    assert metrics == PerformanceMetrics.empty()
    for item in fields(PerformanceMetrics):
        assert getattr(metrics, item.name) == 0


def test_basic_counts_and_returns():
    trades = [make_trade(100.0, fees=2.0), make_trade(-50.0, fees=2.0), make_trade(30.0, fees=2.0)]
    metrics = calculate_performance(trades, BacktestConfig(initial_balance=1000.0))

    assert metrics.total_trades == 3
    assert metrics.winning_trades == 2
    assert metrics.losing_trades == 1
    assert metrics.win_rate == pytest.approx(200.0 / 3)
    assert metrics.net_win_rate == metrics.win_rate
    assert metrics.net_total_return == pytest.approx(80.0)
    assert metrics.total_return == pytest.approx(86.0)
    assert metrics.net_total_return_percentage == pytest.approx(8.0)
    assert metrics.total_fees == pytest.approx(6.0)
    assert metrics.net_average_win == pytest.approx(65.0)
    assert metrics.net_average_loss == pytest.approx(50.0)
    assert metrics.net_profit_factor == pytest.approx(65.0 / 50.0)
    assert metrics.average_win == pytest.approx(67.0)
    assert metrics.average_loss == pytest.approx(48.0)


def test_profit_factor_is_zero_without_losses():
    metrics = calculate_performance([make_trade(10.0), make_trade(20.0)], BacktestConfig())
    assert metrics.net_profit_factor == 0.0
    assert metrics.losing_trades == 0


def test_max_drawdown_tracks_peak_to_trough():
    assert max_drawdown([100.0, -30.0, -40.0, 50.0, -10.0], 1000.0) == pytest.approx(70.0)
    assert max_drawdown([10.0, 20.0], 1000.0) == 0.0

    trades = [make_trade(pnl) for pnl in (100.0, -30.0, -40.0, 50.0)]
    metrics = calculate_performance(trades, BacktestConfig(initial_balance=1000.0))
    assert metrics.net_max_drawdown == pytest.approx(70.0)
    assert metrics.net_max_drawdown_percentage == pytest.approx(7.0)


def test_sharpe_uses_population_stdev():
    returns = [1.0, 3.0]
    assert sharpe_ratio(returns) == pytest.approx(2.0 / 1.0)
    assert sharpe_ratio([2.0, 2.0, 2.0]) == 0.0
    assert sharpe_ratio([]) == 0.0


def test_sortino_uses_downside_only():
    returns = [4.0, -2.0, 1.0]
    downside = math.sqrt(4.0 / 1)
    assert sortino_ratio(returns) == pytest.approx(1.0 / downside)
    assert sortino_ratio([1.0, 2.0]) == 0.0


def test_streaks_zero_pnl_breaks_wins_but_not_losses():
    stats = streak_stats([1.0, 1.0, 0.0, -1.0, 0.0, -1.0, 1.0])

    assert stats.max_wins == 2
    assert stats.average_wins == pytest.approx(1.5)
    assert stats.max_losses == 2
    assert stats.average_losses == pytest.approx(2.0)


def test_streaks_record_trailing_runs():
    stats = streak_stats([-1.0, 1.0, 1.0, 1.0, -1.0, -1.0])
    assert stats.max_wins == 3
    assert stats.max_losses == 2
    assert stats.average_losses == pytest.approx(1.5)


def test_calmar_annualises_net_return_over_drawdown():
    day = MS_PER_DAY
    trades = [
        make_trade(200.0, entry_time=START_MS, exit_time=START_MS + day),
        make_trade(-100.0, entry_time=START_MS + day, exit_time=START_MS + 2 * day),
        make_trade(100.0, entry_time=START_MS + 2 * day, exit_time=START_MS + 10 * day),
    ]
    metrics = calculate_performance(trades, BacktestConfig(initial_balance=10000.0))

    annualized = 200.0 / 10000.0 * 365.0 / 10.0
    assert metrics.calmar_ratio == pytest.approx(annualized / (100.0 / 10000.0))
    assert metrics.average_trade_duration == pytest.approx((day + day + 8 * day) / 3)


def test_metrics_never_contain_non_finite_values():
    trades = [make_trade(5.0, exit_time=START_MS), make_trade(5.0, exit_time=START_MS)]
    metrics = calculate_performance(trades, BacktestConfig())
    for item in fields(PerformanceMetrics):
        assert math.isfinite(getattr(metrics, item.name))


def test_average_metrics_is_field_wise_mean():
    first = calculate_performance([make_trade(100.0)], BacktestConfig(initial_balance=1000.0))
    second = calculate_performance([make_trade(-50.0), make_trade(-50.0)], BacktestConfig(initial_balance=1000.0))
    average = average_metrics([first, second])

    assert average.total_trades == pytest.approx(1.5)
    assert average.net_total_return == pytest.approx(0.0)
    assert average_metrics([]) == PerformanceMetrics.empty()


def test_stability_score():
    assert stability_score([1.0]) == 0.0
    assert stability_score([2.0, 2.0]) == 0.0
    assert stability_score([1.0, 3.0]) == pytest.approx(2.0)
