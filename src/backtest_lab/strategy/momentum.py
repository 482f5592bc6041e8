"""Momentum strategies: RSI with an EMA trend filter, MACD with volume confirmation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from backtest_lab.simulator.models import Candle, Signal, SignalAction
from backtest_lab.strategy.base import INSUFFICIENT_DATA, Strategy
from backtest_lab.strategy.indicators import (
    EMA_TREND_PERIOD,
    IndicatorSeries,
    ema,
    macd,
    wilder_rsi_series,
)
from backtest_lab.strategy.models import IndicatorSnapshot


@dataclass(frozen=True)
class RsiEmaParams:
    ema_period: int = 50
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0
    weak_oversold: float = 35.0
    weak_overbought: float = 65.0
    volume_oversold: float = 40.0
    volume_overbought: float = 60.0

    @staticmethod
    def from_dict(data: dict) -> "RsiEmaParams":
        return RsiEmaParams(
            ema_period=int(data.get("ema_period", 50)),
            rsi_oversold=float(data.get("rsi_oversold", 30.0)),
            rsi_overbought=float(data.get("rsi_overbought", 70.0)),
            weak_oversold=float(data.get("weak_oversold", 35.0)),
            weak_overbought=float(data.get("weak_overbought", 65.0)),
            volume_oversold=float(data.get("volume_oversold", 40.0)),
            volume_overbought=float(data.get("volume_overbought", 60.0)),
        )


class RsiEmaStrategy(Strategy):
    """RSI momentum gated by price position against a trend EMA.

    Strong entries need RSI and trend to agree (0.8); RSI extremes against the
    trend are weak (0.5); high volume relaxes the RSI bounds (0.7).
    """

    def __init__(self, params: RsiEmaParams, name: str = "RSI_EMA50") -> None:
        self.params = params
        self.name = name

    @property
    def min_window(self) -> int:
        return self.params.ema_period

    def _trend_ema(self, window: Sequence[Candle], indicators: IndicatorSnapshot) -> float | None:
        if self.params.ema_period == EMA_TREND_PERIOD and indicators.ema50 is not None:
            return indicators.ema50
        return ema([candle.close for candle in window], self.params.ema_period)

    def analyze(self, window: Sequence[Candle], indicators: IndicatorSnapshot) -> Signal:
        if not self.has_enough_data(window):
            return Signal.hold(window[-1], INSUFFICIENT_DATA)
        trend = self._trend_ema(window, indicators)
        rsi_value = indicators.rsi
        if trend is None or rsi_value is None:
            return Signal.hold(window[-1], INSUFFICIENT_DATA)

        p = self.params
        price = window[-1].close
        label = f"EMA{p.ema_period}"
        high_volume = indicators.has("HIGH_VOLUME")

        if rsi_value < p.rsi_oversold and price > trend:
            return self.signal(window, SignalAction.BUY, 0.8, f"RSI oversold ({rsi_value:.2f}) and price above {label}")
        if rsi_value > p.rsi_overbought and price < trend:
            return self.signal(window, SignalAction.SELL, 0.8, f"RSI overbought ({rsi_value:.2f}) and price below {label}")
        if rsi_value < p.weak_oversold and price < trend:
            return self.signal(
                window, SignalAction.BUY, 0.5, f"RSI oversold ({rsi_value:.2f}) but price below {label} - weak signal"
            )
        if rsi_value > p.weak_overbought and price > trend:
            return self.signal(
                window, SignalAction.SELL, 0.5, f"RSI overbought ({rsi_value:.2f}) but price above {label} - weak signal"
            )
        if high_volume and rsi_value < p.volume_oversold and price > trend:
            return self.signal(
                window, SignalAction.BUY, 0.7, f"High volume + RSI oversold ({rsi_value:.2f}) + price above {label}"
            )
        if high_volume and rsi_value > p.volume_overbought and price < trend:
            return self.signal(
                window, SignalAction.SELL, 0.7, f"High volume + RSI overbought ({rsi_value:.2f}) + price below {label}"
            )
        return Signal.hold(window[-1])


@dataclass(frozen=True)
class MacdVolumeParams:
    fast_period: int = 12
    slow_period: int = 26
    signal_period: int = 9
    volume_threshold: float = 1.5
    moderate_volume: float = 1.2
    rsi_period: int = 14
    rsi_overbought: float = 70.0
    rsi_oversold: float = 30.0
    required_candles: int = 50
    history: int = 250

    @staticmethod
    def from_dict(data: dict) -> "MacdVolumeParams":
        return MacdVolumeParams(
            fast_period=int(data.get("fast_period", 12)),
            slow_period=int(data.get("slow_period", 26)),
            signal_period=int(data.get("signal_period", 9)),
            volume_threshold=float(data.get("volume_threshold", 1.5)),
            moderate_volume=float(data.get("moderate_volume", 1.2)),
            rsi_period=int(data.get("rsi_period", 14)),
            rsi_overbought=float(data.get("rsi_overbought", 70.0)),
            rsi_oversold=float(data.get("rsi_oversold", 30.0)),
            required_candles=int(data.get("required_candles", 50)),
            history=int(data.get("history", 250)),
        )


def _histogram_divergence(histogram: list[float], closes: list[float]) -> bool:
    if len(histogram) < 10:
        return False
    recent_hist = histogram[-5:]
    recent_prices = closes[-5:]
    price_lower = recent_prices[-1] < recent_prices[0]
    hist_higher = recent_hist[-1] > recent_hist[0]
    price_higher = recent_prices[-1] > recent_prices[0]
    hist_lower = recent_hist[-1] < recent_hist[0]
    return (price_lower and hist_higher) or (price_higher and hist_lower)


class MacdVolumeStrategy(Strategy):
    """MACD line/signal crossovers confirmed by a volume spike and an RSI filter.

    Crossover with volume >= 1.5x average scores 0.8, >= 1.2x scores 0.6;
    a histogram/price divergence scores 0.7.
    """

    def __init__(self, params: MacdVolumeParams, name: str = "MACD_VOLUME") -> None:
        self.params = params
        self.name = name

    @property
    def min_window(self) -> int:
        return self.params.required_candles

    def analyze(self, window: Sequence[Candle], indicators: IndicatorSnapshot) -> Signal:
        if not self.has_enough_data(window):
            return Signal.hold(window[-1], INSUFFICIENT_DATA)
        p = self.params
        series = IndicatorSeries.from_candles(window[-p.history :])
        lines = macd(series.closes, p.fast_period, p.slow_period, p.signal_period)
        rsi_series = wilder_rsi_series(series.closes, p.rsi_period)
        if lines is None or len(lines.macd_line) < 2 or not rsi_series:
            return Signal.hold(window[-1], INSUFFICIENT_DATA)

        ratio = series.volume_ratio()
        rsi_value = rsi_series[-1]
        macd_line, signal_line, histogram = lines.macd_line, lines.signal_line, lines.histogram

        if macd_line[-1] > signal_line[-1] and macd_line[-2] <= signal_line[-2]:
            if rsi_value < p.rsi_overbought:
                if ratio >= p.volume_threshold:
                    return self.signal(
                        window,
                        SignalAction.BUY,
                        0.8,
                        f"MACD bullish crossover with volume spike ({ratio:.2f}x avg) and RSI {rsi_value:.1f}",
                    )
                if ratio >= p.moderate_volume:
                    return self.signal(
                        window,
                        SignalAction.BUY,
                        0.6,
                        f"MACD bullish crossover with moderate volume ({ratio:.2f}x avg) and RSI {rsi_value:.1f}",
                    )
        elif macd_line[-1] < signal_line[-1] and macd_line[-2] >= signal_line[-2]:
            if rsi_value > p.rsi_oversold:
                if ratio >= p.volume_threshold:
                    return self.signal(
                        window,
                        SignalAction.SELL,
                        0.8,
                        f"MACD bearish crossover with volume spike ({ratio:.2f}x avg) and RSI {rsi_value:.1f}",
                    )
                if ratio >= p.moderate_volume:
                    return self.signal(
                        window,
                        SignalAction.SELL,
                        0.6,
                        f"MACD bearish crossover with moderate volume ({ratio:.2f}x avg) and RSI {rsi_value:.1f}",
                    )
        elif _histogram_divergence(histogram, series.closes):
            if histogram[-1] > 0 and rsi_value < p.rsi_overbought:
                return self.signal(
                    window, SignalAction.BUY, 0.7, f"MACD histogram bullish divergence with RSI {rsi_value:.1f}"
                )
            if histogram[-1] < 0 and rsi_value > p.rsi_oversold:
                return self.signal(
                    window, SignalAction.SELL, 0.7, f"MACD histogram bearish divergence with RSI {rsi_value:.1f}"
                )
        return Signal.hold(window[-1])


def build_rsi_ema_from_config(parameters: dict, name: str = "RSI_EMA50") -> RsiEmaStrategy:
    return RsiEmaStrategy(RsiEmaParams.from_dict(parameters), name=name)


def build_macd_volume_from_config(parameters: dict, name: str = "MACD_VOLUME") -> MacdVolumeStrategy:
    return MacdVolumeStrategy(MacdVolumeParams.from_dict(parameters), name=name)
