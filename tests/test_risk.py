import math

import pytest

from backtest_lab.analysis.risk import (
    calculate_risk_metrics,
    expected_shortfall,
    omega_ratio,
    ulcer_index,
    value_at_risk,
)
from backtest_lab.config.models import BacktestConfig
from backtest_lab.serialization import to_payload

from support import make_trade


def test_value_at_risk_and_expected_shortfall_include_cutoff():
    returns = [3.0, -2.0, 1.0, -4.0]
    assert value_at_risk(returns, 0.75) == pytest.approx(2.0)
    assert expected_shortfall(returns, 0.75) == pytest.approx(3.0)


def test_value_at_risk_clamps_small_samples():
    assert value_at_risk([-1.5], 0.95) == pytest.approx(1.5)
    assert expected_shortfall([-1.5], 0.95) == pytest.approx(1.5)
    assert value_at_risk([], 0.95) == 0.0


def test_omega_ratio():
    assert omega_ratio([3.0, -2.0, 1.0, -4.0]) == pytest.approx(4.0 / 6.0)
    assert omega_ratio([3.0, 1.0], threshold=2.0) == pytest.approx(1.0)
    assert omega_ratio([1.0, 2.0]) == math.inf
    assert omega_ratio([0.0, 0.0]) == 0.0


def test_ulcer_index_is_percent_drawdown():
    expected = math.sqrt((0.0 + (200.0 / 1100.0 * 100.0) ** 2) / 2)
    assert ulcer_index([100.0, -200.0], 1000.0) == pytest.approx(expected)
    assert ulcer_index([50.0, 50.0], 1000.0) == 0.0


def test_calculate_risk_metrics_over_trades():
    config = BacktestConfig(initial_balance=1000.0)
    trades = [make_trade(30.0), make_trade(-20.0), make_trade(10.0), make_trade(-40.0)]
    risk = calculate_risk_metrics(trades, config, confidence_level=0.75)

    assert risk.value_at_risk == pytest.approx(2.0)
    assert risk.expected_shortfall == pytest.approx(3.0)
    assert risk.omega_ratio == pytest.approx(4.0 / 6.0)
    assert risk.ulcer_index > 0
    assert risk.confidence_level == 0.75


def test_risk_metrics_empty_and_invalid_level():
    risk = calculate_risk_metrics([], BacktestConfig())
    assert (risk.value_at_risk, risk.expected_shortfall, risk.omega_ratio, risk.ulcer_index) == (0, 0, 0, 0)
    with pytest.raises(ValueError):
        calculate_risk_metrics([], BacktestConfig(), confidence_level=1.0)


def test_infinite_omega_is_serialised_as_string():
    risk = calculate_risk_metrics([make_trade(10.0), make_trade(5.0)], BacktestConfig())
    payload = to_payload(risk)
    assert payload["omegaRatio"] == "Infinity"
    assert payload["valueAtRisk"] == pytest.approx(0.5)
