"""Multi-timeframe trend strategy."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from backtest_lab.simulator.models import Candle, Signal, SignalAction
from backtest_lab.strategy.base import INSUFFICIENT_DATA, Strategy
from backtest_lab.strategy.indicators import IndicatorSeries, ema_series, wilder_rsi_series
from backtest_lab.strategy.models import IndicatorSnapshot

BULLISH = "BULLISH"
BEARISH = "BEARISH"
NEUTRAL = "NEUTRAL"


@dataclass(frozen=True)
class MtfTrendParams:
    fast_ema: int = 20
    slow_ema: int = 50
    rsi_period: int = 14
    rsi_overbought: float = 70.0
    rsi_oversold: float = 30.0
    volume_threshold: float = 1.2
    moderate_volume: float = 1.1
    counter_trend_volume: float = 1.5
    trend_strength_threshold: float = 0.6
    required_candles: int = 100
    history: int = 250

    @staticmethod
    def from_dict(data: dict) -> "MtfTrendParams":
        return MtfTrendParams(
            fast_ema=int(data.get("fast_ema", 20)),
            slow_ema=int(data.get("slow_ema", 50)),
            rsi_period=int(data.get("rsi_period", 14)),
            rsi_overbought=float(data.get("rsi_overbought", 70.0)),
            rsi_oversold=float(data.get("rsi_oversold", 30.0)),
            volume_threshold=float(data.get("volume_threshold", 1.2)),
            moderate_volume=float(data.get("moderate_volume", 1.1)),
            counter_trend_volume=float(data.get("counter_trend_volume", 1.5)),
            trend_strength_threshold=float(data.get("trend_strength_threshold", 0.6)),
            required_candles=int(data.get("required_candles", 100)),
            history=int(data.get("history", 250)),
        )


@dataclass(frozen=True)
class TimeframeView:
    trend: str
    strength: float
    rsi: float


@dataclass(frozen=True)
class TimeframeVotes:
    bullish: int
    bearish: int
    neutral: int
    total: int = 3


def _higher_timeframe_votes(view: TimeframeView) -> TimeframeVotes:
    # Higher timeframes are inferred from the current one: they follow its trend.
    if view.trend == BULLISH:
        return TimeframeVotes(bullish=2, bearish=0, neutral=1)
    if view.trend == BEARISH:
        return TimeframeVotes(bullish=0, bearish=2, neutral=1)
    return TimeframeVotes(bullish=1, bearish=1, neutral=1)


class MtfTrendStrategy(Strategy):
    """EMA20/EMA50 trend with higher-timeframe agreement and volume.

    Strong trend (strength >= threshold) with >= 1.2x volume scores 0.9,
    moderate agreement 0.7, counter-trend RSI extremes on mixed votes 0.5.
    """

    def __init__(self, params: MtfTrendParams, name: str = "MTF_TREND") -> None:
        self.params = params
        self.name = name

    @property
    def min_window(self) -> int:
        return self.params.required_candles

    def _view(self, closes: list[float]) -> TimeframeView | None:
        p = self.params
        fast = ema_series(closes, p.fast_ema)
        slow = ema_series(closes, p.slow_ema)
        rsi_series = wilder_rsi_series(closes, p.rsi_period)
        if not fast or not slow or not rsi_series or slow[-1] == 0:
            return None
        if fast[-1] > slow[-1]:
            return TimeframeView(BULLISH, min(1.0, (fast[-1] - slow[-1]) / slow[-1]), rsi_series[-1])
        if fast[-1] < slow[-1]:
            return TimeframeView(BEARISH, min(1.0, (slow[-1] - fast[-1]) / slow[-1]), rsi_series[-1])
        return TimeframeView(NEUTRAL, 0.0, rsi_series[-1])

    def analyze(self, window: Sequence[Candle], indicators: IndicatorSnapshot) -> Signal:
        if not self.has_enough_data(window):
            return Signal.hold(window[-1], INSUFFICIENT_DATA)
        p = self.params
        series = IndicatorSeries.from_candles(window[-p.history :])
        view = self._view(series.closes)
        if view is None:
            return Signal.hold(window[-1], INSUFFICIENT_DATA)
        votes = _higher_timeframe_votes(view)
        ratio = series.volume_ratio()
        strong = view.strength >= p.trend_strength_threshold

        if view.trend == BULLISH and strong and votes.bullish >= 2 and view.rsi < p.rsi_overbought:
            if ratio >= p.volume_threshold:
                return self.signal(
                    window,
                    SignalAction.BUY,
                    0.9,
                    f"Strong bullish MTF trend ({votes.bullish}/{votes.total} timeframes) "
                    f"with volume spike ({ratio:.2f}x)",
                )
        if view.trend == BEARISH and strong and votes.bearish >= 2 and view.rsi > p.rsi_oversold:
            if ratio >= p.volume_threshold:
                return self.signal(
                    window,
                    SignalAction.SELL,
                    0.9,
                    f"Strong bearish MTF trend ({votes.bearish}/{votes.total} timeframes) "
                    f"with volume spike ({ratio:.2f}x)",
                )
        if view.trend == BULLISH and votes.bullish >= 1 and view.rsi < p.rsi_overbought and ratio >= p.moderate_volume:
            return self.signal(
                window,
                SignalAction.BUY,
                0.7,
                f"Moderate bullish MTF trend ({votes.bullish}/{votes.total} timeframes) with moderate volume",
            )
        if view.trend == BEARISH and votes.bearish >= 1 and view.rsi > p.rsi_oversold and ratio >= p.moderate_volume:
            return self.signal(
                window,
                SignalAction.SELL,
                0.7,
                f"Moderate bearish MTF trend ({votes.bearish}/{votes.total} timeframes) with moderate volume",
            )
        if votes.bullish == 1 and votes.bearish == 1 and ratio >= p.counter_trend_volume:
            if view.rsi < p.rsi_oversold:
                return self.signal(
                    window,
                    SignalAction.BUY,
                    0.5,
                    f"Counter-trend bullish opportunity with oversold RSI ({view.rsi:.1f}) and high volume",
                )
            if view.rsi > p.rsi_overbought:
                return self.signal(
                    window,
                    SignalAction.SELL,
                    0.5,
                    f"Counter-trend bearish opportunity with overbought RSI ({view.rsi:.1f}) and high volume",
                )
        return Signal.hold(window[-1])


def build_mtf_trend_from_config(parameters: dict, name: str = "MTF_TREND") -> MtfTrendStrategy:
    return MtfTrendStrategy(MtfTrendParams.from_dict(parameters), name=name)
