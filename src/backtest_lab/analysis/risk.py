"""Tail-risk metrics over per-trade net returns."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from backtest_lab.config.models import BacktestConfig
from backtest_lab.simulator.models import Trade


@dataclass(frozen=True)
class RiskMetrics:
    value_at_risk: float
    expected_shortfall: float
    omega_ratio: float
    ulcer_index: float
    confidence_level: float
    threshold: float


def _cutoff_index(count: int, confidence_level: float) -> int:
    index = math.floor(count * (1.0 - confidence_level))
    return min(max(index, 0), count - 1)


def value_at_risk(returns: Sequence[float], confidence_level: float = 0.95) -> float:
    if not returns:
        return 0.0
    ordered = sorted(returns)
    return abs(ordered[_cutoff_index(len(ordered), confidence_level)])


def expected_shortfall(returns: Sequence[float], confidence_level: float = 0.95) -> float:
    """Mean magnitude of the tail up to and including the VaR observation."""
    if not returns:
        return 0.0
    ordered = sorted(returns)
    tail = ordered[: _cutoff_index(len(ordered), confidence_level) + 1]
    return sum(abs(value) for value in tail) / len(tail)


def omega_ratio(returns: Sequence[float], threshold: float = 0.0) -> float:
    """Gains over losses relative to ``threshold``; ``inf`` when nothing falls below it."""
    gains = sum(max(value - threshold, 0.0) for value in returns)
    losses = sum(max(threshold - value, 0.0) for value in returns)
    if losses == 0:
        return math.inf if gains > 0 else 0.0
    return gains / losses


def ulcer_index(net_pnls: Sequence[float], initial_balance: float) -> float:
    if not net_pnls:
        return 0.0
    peak = initial_balance
    running = initial_balance
    squares = []
    for pnl in net_pnls:
        running += pnl
        peak = max(peak, running)
        drawdown = (peak - running) / peak * 100.0 if peak > 0 else 0.0
        squares.append(drawdown * drawdown)
    return math.sqrt(sum(squares) / len(squares))


def calculate_risk_metrics(
    trades: Sequence[Trade],
    config: BacktestConfig,
    confidence_level: float = 0.95,
    threshold: float = 0.0,
) -> RiskMetrics:
    if not 0.0 < confidence_level < 1.0:
        raise ValueError("confidence_level must be between 0 and 1")
    returns = [trade.net_pnl_percentage for trade in trades]
    if not returns:
        return RiskMetrics(0.0, 0.0, 0.0, 0.0, confidence_level, threshold)
    return RiskMetrics(
        value_at_risk=value_at_risk(returns, confidence_level),
        expected_shortfall=expected_shortfall(returns, confidence_level),
        omega_ratio=omega_ratio(returns, threshold),
        ulcer_index=ulcer_index([trade.net_pnl for trade in trades], config.initial_balance),
        confidence_level=confidence_level,
        threshold=threshold,
    )
