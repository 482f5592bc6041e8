"""Simulation records. The engine lives in ``backtest_lab.simulator.engine``."""

from backtest_lab.simulator.models import (
    BacktestResult,
    Candle,
    ExitReason,
    Position,
    Signal,
    SignalAction,
    Trade,
)

__all__ = [
    "BacktestResult",
    "Candle",
    "ExitReason",
    "Position",
    "Signal",
    "SignalAction",
    "Trade",
]
