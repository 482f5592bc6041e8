"""Mean reversion strategies: Bollinger + RSI, Stochastic + RSI divergence."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from backtest_lab.simulator.models import Candle, Signal, SignalAction
from backtest_lab.strategy.base import INSUFFICIENT_DATA, Strategy
from backtest_lab.strategy.indicators import (
    BOLLINGER_PERIOD,
    BOLLINGER_STDDEV,
    IndicatorSeries,
    bollinger,
    stochastic,
    wilder_rsi_series,
)
from backtest_lab.strategy.models import IndicatorSnapshot


@dataclass(frozen=True)
class BbRsiParams:
    bollinger_window: int = 20
    rsi_overbought: float = 70.0
    rsi_oversold: float = 30.0
    near_band_pct: float = 1.0
    moderate_overbought: float = 60.0
    moderate_oversold: float = 40.0

    @staticmethod
    def from_dict(data: dict) -> "BbRsiParams":
        return BbRsiParams(
            bollinger_window=int(data.get("bollinger_window", 20)),
            rsi_overbought=float(data.get("rsi_overbought", 70.0)),
            rsi_oversold=float(data.get("rsi_oversold", 30.0)),
            near_band_pct=float(data.get("near_band_pct", 1.0)),
            moderate_overbought=float(data.get("moderate_overbought", 60.0)),
            moderate_oversold=float(data.get("moderate_oversold", 40.0)),
        )


class BbRsiStrategy(Strategy):
    """Band touches confirmed by RSI.

    Touch plus RSI extreme scores 0.9; near the band with a moderate RSI 0.7;
    a touch without RSI confirmation is a 0.6 mean-reversion bet.
    """

    def __init__(self, params: BbRsiParams, name: str = "BB_RSI") -> None:
        self.params = params
        self.name = name

    @property
    def min_window(self) -> int:
        return self.params.bollinger_window

    def analyze(self, window: Sequence[Candle], indicators: IndicatorSnapshot) -> Signal:
        if not self.has_enough_data(window):
            return Signal.hold(window[-1], INSUFFICIENT_DATA)
        bands = indicators.bollinger
        if self.params.bollinger_window != BOLLINGER_PERIOD:
            bands = bollinger([candle.close for candle in window], self.params.bollinger_window, BOLLINGER_STDDEV)
        rsi_value = indicators.rsi
        if bands is None or rsi_value is None:
            return Signal.hold(window[-1], "Bollinger Bands not available")

        p = self.params
        price = window[-1].close
        near = p.near_band_pct / 100.0

        if price <= bands.lower and rsi_value < p.rsi_oversold:
            return self.signal(
                window,
                SignalAction.BUY,
                0.9,
                f"Price at lower BB ({bands.lower:.2f}) + RSI oversold ({rsi_value:.2f})",
            )
        if price >= bands.upper and rsi_value > p.rsi_overbought:
            return self.signal(
                window,
                SignalAction.SELL,
                0.9,
                f"Price at upper BB ({bands.upper:.2f}) + RSI overbought ({rsi_value:.2f})",
            )
        if price <= bands.lower * (1.0 + near) and rsi_value < p.moderate_oversold:
            return self.signal(window, SignalAction.BUY, 0.7, f"Price near lower BB + RSI oversold ({rsi_value:.2f})")
        if price >= bands.upper * (1.0 - near) and rsi_value > p.moderate_overbought:
            return self.signal(
                window, SignalAction.SELL, 0.7, f"Price near upper BB + RSI overbought ({rsi_value:.2f})"
            )
        if price <= bands.lower and rsi_value > p.moderate_oversold:
            return self.signal(
                window, SignalAction.BUY, 0.6, "Price at lower BB but RSI not oversold - mean reversion"
            )
        if price >= bands.upper and rsi_value < p.moderate_overbought:
            return self.signal(
                window, SignalAction.SELL, 0.6, "Price at upper BB but RSI not overbought - mean reversion"
            )
        return Signal.hold(window[-1])


@dataclass(frozen=True)
class StochasticRsiParams:
    k_period: int = 14
    d_period: int = 3
    rsi_period: int = 14
    rsi_overbought: float = 70.0
    rsi_oversold: float = 30.0
    volume_threshold: float = 1.3
    moderate_volume: float = 1.1
    divergence_lookback: int = 10
    required_candles: int = 40
    history: int = 250

    @staticmethod
    def from_dict(data: dict) -> "StochasticRsiParams":
        return StochasticRsiParams(
            k_period=int(data.get("k_period", 14)),
            d_period=int(data.get("d_period", 3)),
            rsi_period=int(data.get("rsi_period", 14)),
            rsi_overbought=float(data.get("rsi_overbought", 70.0)),
            rsi_oversold=float(data.get("rsi_oversold", 30.0)),
            volume_threshold=float(data.get("volume_threshold", 1.3)),
            moderate_volume=float(data.get("moderate_volume", 1.1)),
            divergence_lookback=int(data.get("divergence_lookback", 10)),
            required_candles=int(data.get("required_candles", 40)),
            history=int(data.get("history", 250)),
        )


@dataclass(frozen=True)
class Divergence:
    bullish: bool = False
    bearish: bool = False


def detect_divergence(prices: list[float], oscillator: list[float], lookback: int) -> Divergence:
    """Price and oscillator moving in opposite directions over ``lookback`` bars."""
    if len(prices) < lookback or len(oscillator) < lookback:
        return Divergence()
    recent_prices = prices[-lookback:]
    recent_osc = oscillator[-lookback:]
    return Divergence(
        bullish=recent_prices[-1] < recent_prices[0] and recent_osc[-1] > recent_osc[0],
        bearish=recent_prices[-1] > recent_prices[0] and recent_osc[-1] < recent_osc[0],
    )


class StochasticRsiStrategy(Strategy):
    """Stochastic %K/%D extremes with RSI or stochastic divergence.

    Divergent extremes score 0.8 on a volume spike and 0.6 on moderate volume;
    K/D crossovers inside the extreme zones score 0.7; bare RSI+K extremes 0.6.
    """

    def __init__(self, params: StochasticRsiParams, name: str = "STOCHASTIC_RSI") -> None:
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
        k_line, d_line = stochastic(series.highs, series.lows, series.closes, p.k_period, p.d_period)
        rsi_series = wilder_rsi_series(series.closes, p.rsi_period)
        if len(k_line) < 2 or len(d_line) < 2 or not rsi_series:
            return Signal.hold(window[-1], INSUFFICIENT_DATA)

        ratio = series.volume_ratio()
        rsi_value = rsi_series[-1]
        k, d = k_line[-1], d_line[-1]
        rsi_div = detect_divergence(series.closes, rsi_series, p.divergence_lookback)
        stoch_div = detect_divergence(series.closes, k_line, p.divergence_lookback)
        levels = f"Stochastic K={k:.1f}, D={d:.1f}, RSI={rsi_value:.1f}"

        if k < 20 and d < 20 and rsi_value < p.rsi_oversold and (rsi_div.bullish or stoch_div.bullish):
            if ratio >= p.volume_threshold:
                return self.signal(
                    window,
                    SignalAction.BUY,
                    0.8,
                    f"Strong oversold signal: {levels} with divergence and volume spike ({ratio:.2f}x)",
                )
            if ratio >= p.moderate_volume:
                return self.signal(window, SignalAction.BUY, 0.6, f"Oversold signal: {levels} with moderate volume")
        elif k > 80 and d > 80 and rsi_value > p.rsi_overbought and (rsi_div.bearish or stoch_div.bearish):
            if ratio >= p.volume_threshold:
                return self.signal(
                    window,
                    SignalAction.SELL,
                    0.8,
                    f"Strong overbought signal: {levels} with divergence and volume spike ({ratio:.2f}x)",
                )
            if ratio >= p.moderate_volume:
                return self.signal(
                    window, SignalAction.SELL, 0.6, f"Overbought signal: {levels} with moderate volume"
                )
        elif (k_line[-2] <= d_line[-2] and k > d) or (k_line[-2] >= d_line[-2] and k < d):
            if k < 30 and d < 30:
                return self.signal(
                    window, SignalAction.BUY, 0.7, f"Stochastic bullish crossover in oversold zone: {levels}"
                )
            if k > 70 and d > 70:
                return self.signal(
                    window, SignalAction.SELL, 0.7, f"Stochastic bearish crossover in overbought zone: {levels}"
                )
        elif rsi_value < 25 and k < 20:
            return self.signal(
                window, SignalAction.BUY, 0.6, f"Extreme oversold: RSI={rsi_value:.1f}, Stochastic K={k:.1f}"
            )
        elif rsi_value > 75 and k > 80:
            return self.signal(
                window, SignalAction.SELL, 0.6, f"Extreme overbought: RSI={rsi_value:.1f}, Stochastic K={k:.1f}"
            )
        return Signal.hold(window[-1])


def build_bb_rsi_from_config(parameters: dict, name: str = "BB_RSI") -> BbRsiStrategy:
    return BbRsiStrategy(BbRsiParams.from_dict(parameters), name=name)


def build_stochastic_rsi_from_config(parameters: dict, name: str = "STOCHASTIC_RSI") -> StochasticRsiStrategy:
    return StochasticRsiStrategy(StochasticRsiParams.from_dict(parameters), name=name)
