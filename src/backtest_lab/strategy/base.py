"""Strategy base interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from backtest_lab.simulator.models import Candle, Signal, SignalAction
from backtest_lab.strategy.models import IndicatorSnapshot

INSUFFICIENT_DATA = "Insufficient data"


class Strategy(ABC):
    """A pure signal generator.

    Implementations hold only frozen parameters, so one instance can be shared
    by every candle of a run and pickled to worker processes.
    """

    name: str

    @property
    @abstractmethod
    def min_window(self) -> int:
        raise NotImplementedError

    @property
    def lookback(self) -> int:
        """Trailing candles the strategy reads; the simulator trims windows to this."""
        params = getattr(self, "params", None)
        return max(self.min_window, getattr(params, "history", 0))

    def has_enough_data(self, window: Sequence[Candle]) -> bool:
        return len(window) >= self.min_window

    @abstractmethod
    def analyze(self, window: Sequence[Candle], indicators: IndicatorSnapshot) -> Signal:
        raise NotImplementedError

    def signal(self, window: Sequence[Candle], action: SignalAction, confidence: float, reason: str) -> Signal:
        candle = window[-1]
        return Signal(
            action=action,
            confidence=confidence,
            reason=reason,
            price=candle.close,
            timestamp=candle.open_time,
        )
