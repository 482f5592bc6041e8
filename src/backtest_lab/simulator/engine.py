"""Candle-by-candle execution simulator."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from backtest_lab.analysis.metrics import calculate_performance
from backtest_lab.config.models import BacktestConfig
from backtest_lab.errors import InsufficientDataError
from backtest_lab.simulator.models import (
    BacktestResult,
    Candle,
    ExitReason,
    Position,
    Signal,
    SignalAction,
    Trade,
)
from backtest_lab.strategy.base import Strategy
from backtest_lab.strategy.indicators import snapshot_series
from backtest_lab.strategy.models import IndicatorSnapshot

logger = logging.getLogger(__name__)

DEFAULT_ACTIVATION_THRESHOLD = 0.5


class ExecutionSimulator:
    """Long-only, single-position replay of a strategy over a candle series.

    Each candle is processed in a fixed order: protective stop/take-profit
    check on the unslipped close, then a SELL signal exit, then a BUY entry.
    A candle that closed a position never opens a new one. Fills are slipped
    against the trader and fees are charged on both legs; trade prices are the
    candle closes, with the fill offset kept in the slippage fields.
    """

    def __init__(self, config: BacktestConfig, activation_threshold: float = DEFAULT_ACTIVATION_THRESHOLD) -> None:
        self.config = config
        self.activation_threshold = activation_threshold

    def run(
        self,
        candles: Sequence[Candle],
        strategy: Strategy,
        snapshots: Optional[Sequence[IndicatorSnapshot]] = None,
    ) -> BacktestResult:
        if len(candles) < strategy.min_window:
            raise InsufficientDataError(strategy.min_window, len(candles))
        if snapshots is None:
            snapshots = snapshot_series(candles)
        elif len(snapshots) != len(candles):
            raise ValueError("Snapshot series must align with the candle series")

        config = self.config
        fee_rate = config.fee_rate
        balance = config.initial_balance
        position: Optional[Position] = None
        signals: list[Signal] = []
        trades: list[Trade] = []
        lookback = strategy.lookback

        for index in range(max(strategy.min_window - 1, 0), len(candles)):
            candle = candles[index]
            window = candles[max(0, index + 1 - lookback) : index + 1]
            signal = strategy.analyze(window, snapshots[index])
            signals.append(signal)
            closed = False

            if position is not None:
                move = (candle.close - position.entry_price) / position.entry_price * 100.0
                reason = None
                if move <= -config.stop_loss:
                    reason = ExitReason.STOP_LOSS
                elif move >= config.take_profit:
                    reason = ExitReason.TAKE_PROFIT
                elif signal.action == SignalAction.SELL and signal.confidence >= self.activation_threshold:
                    reason = ExitReason.SIGNAL
                if reason is not None:
                    trade = self._close(position, candle, reason)
                    trades.append(trade)
                    balance += trade.net_pnl
                    position = None
                    closed = True

            if (
                position is None
                and not closed
                and signal.action == SignalAction.BUY
                and signal.confidence >= self.activation_threshold
            ):
                position = self._open(candle, balance)

        if position is not None:
            trade = self._close(position, candles[-1], ExitReason.END_OF_DATA)
            trades.append(trade)
            balance += trade.net_pnl

        logger.debug(
            "Simulated %s over %d candles: %d signals, %d trades",
            strategy.name,
            len(candles),
            len(signals),
            len(trades),
        )
        return BacktestResult(
            strategy=strategy.name,
            signals=signals,
            trades=trades,
            performance=calculate_performance(trades, config),
            candles_processed=len(signals),
            final_balance=balance,
            first_candle_time=candles[0].open_time if candles else None,
            last_candle_time=candles[-1].open_time if candles else None,
        )

    def _open(self, candle: Candle, balance: float) -> Position:
        config = self.config
        fill = candle.close * (1.0 + config.slippage / 100.0)
        notional = balance * config.position_size / 100.0
        entry_fees = notional * config.fee_rate / 100.0
        return Position(
            entry_time=candle.open_time,
            entry_price=candle.close,
            quantity=(notional - entry_fees) / fill,
            entry_fees=entry_fees,
            entry_slippage=fill - candle.close,
        )

    def _close(self, position: Position, candle: Candle, reason: ExitReason) -> Trade:
        config = self.config
        fill = candle.close * (1.0 - config.slippage / 100.0)
        pnl = (fill - position.entry_price) * position.quantity
        exit_fees = fill * position.quantity * config.fee_rate / 100.0
        net_pnl = pnl - position.entry_fees - exit_fees
        if reason in (ExitReason.STOP_LOSS, ExitReason.TAKE_PROFIT):
            pnl_percentage = (candle.close - position.entry_price) / position.entry_price * 100.0
        else:
            pnl_percentage = (fill - position.entry_price) / position.entry_price * 100.0
        cost_basis = position.entry_price * position.quantity
        return Trade(
            entry_time=position.entry_time,
            exit_time=candle.open_time,
            entry_price=position.entry_price,
            exit_price=candle.close,
            side=position.side,
            quantity=position.quantity,
            pnl=pnl,
            pnl_percentage=pnl_percentage,
            entry_fees=position.entry_fees,
            exit_fees=exit_fees,
            entry_slippage=position.entry_slippage,
            exit_slippage=candle.close - fill,
            net_pnl=net_pnl,
            net_pnl_percentage=net_pnl / cost_basis * 100.0 if cost_basis else 0.0,
            exit_reason=reason,
        )
