"""Volatility breakout strategies: ATR expansion and Bollinger/Keltner squeeze."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from backtest_lab.simulator.models import Candle, Signal, SignalAction
from backtest_lab.strategy.base import INSUFFICIENT_DATA, Strategy
from backtest_lab.strategy.indicators import (
    IndicatorSeries,
    atr_series,
    bollinger_series,
    keltner_series,
    wilder_rsi_series,
)
from backtest_lab.strategy.models import IndicatorSnapshot


@dataclass(frozen=True)
class AtrDynamicParams:
    atr_period: int = 14
    volatility_threshold: float = 0.02
    expansion_ratio: float = 1.1
    rsi_period: int = 14
    rsi_overbought: float = 70.0
    rsi_oversold: float = 30.0
    volume_threshold: float = 1.3
    required_candles: int = 30
    history: int = 250

    @staticmethod
    def from_dict(data: dict) -> "AtrDynamicParams":
        return AtrDynamicParams(
            atr_period=int(data.get("atr_period", 14)),
            volatility_threshold=float(data.get("volatility_threshold", 0.02)),
            expansion_ratio=float(data.get("expansion_ratio", 1.1)),
            rsi_period=int(data.get("rsi_period", 14)),
            rsi_overbought=float(data.get("rsi_overbought", 70.0)),
            rsi_oversold=float(data.get("rsi_oversold", 30.0)),
            volume_threshold=float(data.get("volume_threshold", 1.3)),
            required_candles=int(data.get("required_candles", 30)),
            history=int(data.get("history", 250)),
        )


def _breaking_out(closes: list[float], upward: bool) -> bool:
    if len(closes) < 10:
        return False
    recent = closes[-5:]
    previous = closes[-10:-5]
    if upward:
        return max(recent) > max(previous)
    return min(recent) < min(previous)


def _atr_expanding(atr: list[float], ratio: float) -> bool:
    if len(atr) < 10:
        return False
    recent = sum(atr[-5:]) / 5
    previous = sum(atr[-10:-5]) / 5
    return recent > previous * ratio


def _mean_reverting(closes: list[float], rsi_series: list[float]) -> bool:
    if len(closes) < 20 or len(rsi_series) < 20:
        return False
    recent = closes[-5:]
    if recent[0] == 0:
        return False
    change = (recent[-1] - recent[0]) / recent[0]
    rsi_value = rsi_series[-1]
    return (rsi_value < 40 and change > 0) or (rsi_value > 60 and change < 0)


class AtrDynamicStrategy(Strategy):
    """ATR-driven regime switch.

    High volatility (ATR/price above threshold) with a volume spike trades
    breakouts at 0.8; ATR expansion trades at 0.7; quiet markets fade RSI
    extremes at 0.6.
    """

    def __init__(self, params: AtrDynamicParams, name: str = "ATR_DYNAMIC") -> None:
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
        atr = atr_series(series.highs, series.lows, series.closes, p.atr_period)
        rsi_series = wilder_rsi_series(series.closes, p.rsi_period)
        price = series.closes[-1]
        if not atr or not rsi_series or price <= 0:
            return Signal.hold(window[-1], INSUFFICIENT_DATA)

        rsi_value = rsi_series[-1]
        ratio = series.volume_ratio()
        volatility = atr[-1] / price
        high_volatility = volatility > p.volatility_threshold

        if high_volatility and ratio >= p.volume_threshold:
            if rsi_value < p.rsi_overbought and _breaking_out(series.closes, upward=True):
                return self.signal(
                    window,
                    SignalAction.BUY,
                    0.8,
                    f"Volatility breakout ({volatility * 100:.2f}%) with volume spike ({ratio:.2f}x) "
                    f"and RSI {rsi_value:.1f}",
                )
            if rsi_value > p.rsi_oversold and _breaking_out(series.closes, upward=False):
                return self.signal(
                    window,
                    SignalAction.SELL,
                    0.8,
                    f"Volatility breakdown ({volatility * 100:.2f}%) with volume spike ({ratio:.2f}x) "
                    f"and RSI {rsi_value:.1f}",
                )
        elif _atr_expanding(atr, p.expansion_ratio):
            if rsi_value < p.rsi_overbought and ratio >= 1.1:
                return self.signal(
                    window,
                    SignalAction.BUY,
                    0.7,
                    f"ATR pattern bullish with moderate volume ({ratio:.2f}x) and RSI {rsi_value:.1f}",
                )
            if rsi_value > p.rsi_oversold and ratio >= 1.1:
                return self.signal(
                    window,
                    SignalAction.SELL,
                    0.7,
                    f"ATR pattern bearish with moderate volume ({ratio:.2f}x) and RSI {rsi_value:.1f}",
                )
        elif not high_volatility and _mean_reverting(series.closes, rsi_series):
            if rsi_value < 40 and ratio >= 1.2:
                return self.signal(
                    window,
                    SignalAction.BUY,
                    0.6,
                    f"Mean reversion bullish in low volatility with RSI {rsi_value:.1f}",
                )
            if rsi_value > 60 and ratio >= 1.2:
                return self.signal(
                    window,
                    SignalAction.SELL,
                    0.6,
                    f"Mean reversion bearish in low volatility with RSI {rsi_value:.1f}",
                )
        return Signal.hold(window[-1])


@dataclass(frozen=True)
class BbSqueezeParams:
    bollinger_window: int = 20
    bollinger_stddev: float = 2.0
    keltner_window: int = 20
    keltner_multiplier: float = 1.5
    volume_threshold: float = 1.5
    moderate_volume: float = 1.2
    momentum_period: int = 14
    strong_squeeze: float = 0.8
    required_candles: int = 50
    history: int = 250

    @staticmethod
    def from_dict(data: dict) -> "BbSqueezeParams":
        return BbSqueezeParams(
            bollinger_window=int(data.get("bollinger_window", 20)),
            bollinger_stddev=float(data.get("bollinger_stddev", 2.0)),
            keltner_window=int(data.get("keltner_window", 20)),
            keltner_multiplier=float(data.get("keltner_multiplier", 1.5)),
            volume_threshold=float(data.get("volume_threshold", 1.5)),
            moderate_volume=float(data.get("moderate_volume", 1.2)),
            momentum_period=int(data.get("momentum_period", 14)),
            strong_squeeze=float(data.get("strong_squeeze", 0.8)),
            required_candles=int(data.get("required_candles", 50)),
            history=int(data.get("history", 250)),
        )


@dataclass(frozen=True)
class Momentum:
    current: float = 0.0
    trend: float = 0.0


def _momentum(closes: list[float], period: int) -> Momentum:
    if len(closes) < period + 2:
        return Momentum()
    current = closes[-1] - closes[-period - 1]
    previous = closes[-2] - closes[-period - 2]
    return Momentum(current=current, trend=current - previous)


class BbSqueezeStrategy(Strategy):
    """Bollinger bands inside Keltner channels mark a squeeze; trade the release.

    During a squeeze the signal is HOLD (confidence shows squeeze strength).
    A close outside the bands with a volume spike scores
    ``min(0.8 + (volume_ratio - 1.5) * 0.2, 0.95)``; with moderate volume 0.6;
    momentum continuation near the mid line 0.5.
    """

    def __init__(self, params: BbSqueezeParams, name: str = "BB_SQUEEZE") -> None:
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
        bands = bollinger_series(series.closes, p.bollinger_window, p.bollinger_stddev)
        channels = keltner_series(series.highs, series.lows, series.closes, p.keltner_window, p.keltner_multiplier)
        if len(bands) < 2 or len(channels) < 2:
            return Signal.hold(window[-1], INSUFFICIENT_DATA)

        price = series.closes[-1]
        ratio = series.volume_ratio()
        momentum = _momentum(series.closes, p.momentum_period)
        band, channel = bands[-1], channels[-1]

        if band.width < channel.width:
            prev_band, prev_channel = bands[-2].width, channels[-2].width
            intensity = min(
                band.width / prev_band if prev_band else 0.0,
                channel.width / prev_channel if prev_channel else 0.0,
            )
            if intensity > p.strong_squeeze:
                return Signal.hold(
                    window[-1],
                    f"Strong squeeze detected: BB width={band.width:.4f}, KC width={channel.width:.4f}, "
                    f"intensity={intensity:.2f}. Waiting for breakout.",
                    confidence=0.9,
                )
            return Signal.hold(
                window[-1],
                f"Moderate squeeze: BB width={band.width:.4f}, KC width={channel.width:.4f}. Monitor for breakout.",
                confidence=0.7,
            )

        bullish = price > band.upper
        bearish = price < band.lower
        if (bullish or bearish) and ratio >= p.volume_threshold:
            confidence = min(0.8 + (ratio - p.volume_threshold) * 0.2, 0.95)
            if bullish:
                return self.signal(
                    window,
                    SignalAction.BUY,
                    confidence,
                    f"Bullish breakout: Price above BB upper={band.upper:.4f}, KC upper={channel.upper:.4f}, "
                    f"volume spike {ratio:.2f}x, momentum={momentum.current:.2f}",
                )
            return self.signal(
                window,
                SignalAction.SELL,
                confidence,
                f"Bearish breakout: Price below BB lower={band.lower:.4f}, KC lower={channel.lower:.4f}, "
                f"volume spike {ratio:.2f}x, momentum={momentum.current:.2f}",
            )
        if bullish and ratio >= p.moderate_volume:
            return self.signal(
                window,
                SignalAction.BUY,
                0.6,
                f"Weak bullish breakout: Price above BB upper, moderate volume {ratio:.2f}x, "
                f"momentum={momentum.current:.2f}",
            )
        if bearish and ratio >= p.moderate_volume:
            return self.signal(
                window,
                SignalAction.SELL,
                0.6,
                f"Weak bearish breakout: Price below BB lower, moderate volume {ratio:.2f}x, "
                f"momentum={momentum.current:.2f}",
            )

        in_middle = min(band.middle, channel.middle) <= price <= max(band.middle, channel.middle)
        if in_middle and abs(momentum.current) > abs(momentum.trend) * 1.5:
            if momentum.current > 0 and momentum.trend > 0:
                return self.signal(
                    window,
                    SignalAction.BUY,
                    0.5,
                    f"Momentum continuation: Positive momentum={momentum.current:.2f}, trend={momentum.trend:.2f}",
                )
            if momentum.current < 0 and momentum.trend < 0:
                return self.signal(
                    window,
                    SignalAction.SELL,
                    0.5,
                    f"Momentum continuation: Negative momentum={momentum.current:.2f}, trend={momentum.trend:.2f}",
                )
        return Signal.hold(window[-1])


def build_atr_dynamic_from_config(parameters: dict, name: str = "ATR_DYNAMIC") -> AtrDynamicStrategy:
    return AtrDynamicStrategy(AtrDynamicParams.from_dict(parameters), name=name)


def build_bb_squeeze_from_config(parameters: dict, name: str = "BB_SQUEEZE") -> BbSqueezeStrategy:
    return BbSqueezeStrategy(BbSqueezeParams.from_dict(parameters), name=name)
