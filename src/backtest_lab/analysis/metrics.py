"""Performance metrics over a closed-trade list."""

from __future__ import annotations

import math
from dataclasses import dataclass, fields
from typing import Sequence

from backtest_lab.config.models import BacktestConfig
from backtest_lab.simulator.models import Trade

MS_PER_DAY = 86_400_000


@dataclass(frozen=True)
class PerformanceMetrics:
    total_return: float
    total_return_percentage: float
    win_rate: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    average_win: float
    average_loss: float
    profit_factor: float
    max_drawdown: float
    max_drawdown_percentage: float
    sharpe_ratio: float
    sortino_ratio: float
    average_trade_duration: float
    total_fees: float
    total_slippage: float
    net_total_return: float
    net_total_return_percentage: float
    net_win_rate: float
    net_average_win: float
    net_average_loss: float
    net_profit_factor: float
    net_max_drawdown: float
    net_max_drawdown_percentage: float
    net_sharpe_ratio: float
    net_sortino_ratio: float
    calmar_ratio: float
    max_consecutive_wins: int
    max_consecutive_losses: int
    average_consecutive_wins: float
    average_consecutive_losses: float

    @staticmethod
    def empty() -> "PerformanceMetrics":
        values = {item.name: 0 if item.type in ("int", int) else 0.0 for item in fields(PerformanceMetrics)}
        return PerformanceMetrics(**values)


@dataclass(frozen=True)
class StreakStats:
    max_wins: int = 0
    max_losses: int = 0
    average_wins: float = 0.0
    average_losses: float = 0.0


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _finite(value: float) -> float:
    return value if math.isfinite(value) else 0.0


def sharpe_ratio(returns: Sequence[float]) -> float:
    """Mean over population standard deviation of per-trade returns."""
    if not returns:
        return 0.0
    mean = _mean(returns)
    variance = sum((value - mean) ** 2 for value in returns) / len(returns)
    if variance <= 0:
        return 0.0
    return _finite(mean / math.sqrt(variance))


def sortino_ratio(returns: Sequence[float]) -> float:
    downside = [value for value in returns if value < 0]
    if not downside:
        return 0.0
    deviation = math.sqrt(sum(value * value for value in downside) / len(downside))
    if deviation <= 0:
        return 0.0
    return _finite(_mean(returns) / deviation)


def max_drawdown(pnls: Sequence[float], initial_balance: float) -> float:
    """Largest peak-to-trough fall of the running balance, in currency."""
    peak = initial_balance
    running = initial_balance
    worst = 0.0
    for pnl in pnls:
        running += pnl
        peak = max(peak, running)
        worst = max(worst, peak - running)
    return worst


def streak_stats(net_pnls: Sequence[float]) -> StreakStats:
    """Win/loss streaks in trade order.

    A breakeven trade ends a win streak but leaves a loss streak running.
    """
    win_streaks: list[int] = []
    loss_streaks: list[int] = []
    wins = 0
    losses = 0
    for pnl in net_pnls:
        if pnl > 0:
            if losses > 0:
                loss_streaks.append(losses)
            losses = 0
            wins += 1
        elif pnl < 0:
            if wins > 0:
                win_streaks.append(wins)
            wins = 0
            losses += 1
        else:
            if wins > 0:
                win_streaks.append(wins)
            wins = 0
    if wins > 0:
        win_streaks.append(wins)
    if losses > 0:
        loss_streaks.append(losses)
    return StreakStats(
        max_wins=max(win_streaks, default=0),
        max_losses=max(loss_streaks, default=0),
        average_wins=_mean(win_streaks),
        average_losses=_mean(loss_streaks),
    )


def calmar_ratio(trades: Sequence[Trade], net_total_return: float, net_drawdown: float, initial_balance: float) -> float:
    if not trades or net_drawdown <= 0:
        return 0.0
    days = (trades[-1].exit_time - trades[0].entry_time) / MS_PER_DAY
    if days <= 0:
        return 0.0
    annualized = net_total_return / initial_balance * (365.0 / days)
    return _finite(annualized / (net_drawdown / initial_balance))


def calculate_performance(trades: Sequence[Trade], config: BacktestConfig) -> PerformanceMetrics:
    if not trades:
        return PerformanceMetrics.empty()

    initial = config.initial_balance
    count = len(trades)
    winners = [trade for trade in trades if trade.net_pnl > 0]
    losers = [trade for trade in trades if trade.net_pnl < 0]

    total_return = sum(trade.pnl for trade in trades)
    net_total_return = sum(trade.net_pnl for trade in trades)
    win_rate = len(winners) / count * 100.0

    average_win = _mean([trade.pnl for trade in winners])
    average_loss = abs(_mean([trade.pnl for trade in losers]))
    net_average_win = _mean([trade.net_pnl for trade in winners])
    net_average_loss = abs(_mean([trade.net_pnl for trade in losers]))

    gross_drawdown = max_drawdown([trade.pnl for trade in trades], initial)
    net_drawdown = max_drawdown([trade.net_pnl for trade in trades], initial)

    returns = [trade.pnl_percentage for trade in trades]
    net_returns = [trade.net_pnl_percentage for trade in trades]
    streaks = streak_stats([trade.net_pnl for trade in trades])

    return PerformanceMetrics(
        total_return=total_return,
        total_return_percentage=total_return / initial * 100.0,
        win_rate=win_rate,
        total_trades=count,
        winning_trades=len(winners),
        losing_trades=len(losers),
        average_win=average_win,
        average_loss=average_loss,
        profit_factor=average_win / average_loss if average_loss > 0 else 0.0,
        max_drawdown=gross_drawdown,
        max_drawdown_percentage=gross_drawdown / initial * 100.0,
        sharpe_ratio=sharpe_ratio(returns),
        sortino_ratio=sortino_ratio(returns),
        average_trade_duration=_mean([trade.duration for trade in trades]),
        total_fees=sum(trade.entry_fees + trade.exit_fees for trade in trades),
        total_slippage=sum(trade.entry_slippage + trade.exit_slippage for trade in trades),
        net_total_return=net_total_return,
        net_total_return_percentage=net_total_return / initial * 100.0,
        net_win_rate=win_rate,
        net_average_win=net_average_win,
        net_average_loss=net_average_loss,
        net_profit_factor=net_average_win / net_average_loss if net_average_loss > 0 else 0.0,
        net_max_drawdown=net_drawdown,
        net_max_drawdown_percentage=net_drawdown / initial * 100.0,
        net_sharpe_ratio=sharpe_ratio(net_returns),
        net_sortino_ratio=sortino_ratio(net_returns),
        calmar_ratio=calmar_ratio(trades, net_total_return, net_drawdown, initial),
        max_consecutive_wins=streaks.max_wins,
        max_consecutive_losses=streaks.max_losses,
        average_consecutive_wins=streaks.average_wins,
        average_consecutive_losses=streaks.average_losses,
    )
