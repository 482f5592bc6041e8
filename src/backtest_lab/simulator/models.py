"""Simulation data structures."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from backtest_lab.analysis.metrics import PerformanceMetrics


class SignalAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class ExitReason(str, Enum):
    SIGNAL = "SIGNAL"
    STOP_LOSS = "STOP_LOSS"
    TAKE_PROFIT = "TAKE_PROFIT"
    END_OF_DATA = "END_OF_DATA"


@dataclass(frozen=True)
class Candle:
    open_time: int
    open: float
    high: float
    low: float
    close: float
    volume: float
    close_time: int
    quote_asset_volume: float = 0.0
    number_of_trades: int = 0
    taker_buy_base_volume: float = 0.0
    taker_buy_quote_volume: float = 0.0

    @property
    def opened_at(self) -> datetime:
        return datetime.fromtimestamp(self.open_time / 1000.0, tz=timezone.utc)


@dataclass(frozen=True)
class Signal:
    action: SignalAction
    confidence: float
    reason: str
    price: float
    timestamp: int

    @staticmethod
    def hold(candle: Candle, reason: str = "", confidence: float = 0.0) -> "Signal":
        return Signal(
            action=SignalAction.HOLD,
            confidence=confidence,
            reason=reason,
            price=candle.close,
            timestamp=candle.open_time,
        )


@dataclass(frozen=True)
class Position:
    entry_time: int
    entry_price: float
    quantity: float
    entry_fees: float
    entry_slippage: float
    side: SignalAction = SignalAction.BUY


@dataclass(frozen=True)
class Trade:
    entry_time: int
    exit_time: int
    entry_price: float
    exit_price: float
    side: SignalAction
    quantity: float
    pnl: float
    pnl_percentage: float
    entry_fees: float
    exit_fees: float
    entry_slippage: float
    exit_slippage: float
    net_pnl: float
    net_pnl_percentage: float
    exit_reason: ExitReason

    @property
    def duration(self) -> int:
        return self.exit_time - self.entry_time


@dataclass(frozen=True)
class BacktestResult:
    strategy: str
    signals: list[Signal]
    trades: list[Trade]
    performance: "PerformanceMetrics"
    candles_processed: int = 0
    final_balance: float = 0.0
    first_candle_time: Optional[int] = None
    last_candle_time: Optional[int] = None
