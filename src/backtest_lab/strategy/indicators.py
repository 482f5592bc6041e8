"""Common indicator helpers for strategies.

Every function here is pure: it reads a price/volume series and returns a
scalar, a series, or ``None`` when the series is too short.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from backtest_lab.simulator.models import Candle
from backtest_lab.strategy.models import (
    BollingerBands,
    IchimokuCloud,
    IndicatorSnapshot,
    SupportResistanceLevels,
    VolumeProfile,
)

RSI_PERIOD = 14
RSI_OVERBOUGHT = 70.0
RSI_OVERSOLD = 30.0
EMA_TREND_PERIOD = 50
BOLLINGER_PERIOD = 20
BOLLINGER_STDDEV = 2.0
VOLUME_PERIOD = 20
HIGH_VOLUME_THRESHOLD = 1.5
ICHIMOKU_CONVERSION = 9
ICHIMOKU_BASE = 26
ICHIMOKU_SPAN_B = 52
ICHIMOKU_DISPLACEMENT = 26
FIBONACCI_LEVELS = (0.0, 0.382, 0.5, 0.618, 1.0)
FIBONACCI_LOOKBACK = 100
LEVEL_PROXIMITY = 0.002
SNAPSHOT_TAIL = max(FIBONACCI_LOOKBACK, ICHIMOKU_SPAN_B, ICHIMOKU_DISPLACEMENT + 1, RSI_PERIOD + 1)


@dataclass
class IndicatorSeries:
    closes: list[float]
    highs: list[float]
    lows: list[float]
    volumes: list[float]

    @staticmethod
    def from_candles(candles: Sequence[Candle]) -> "IndicatorSeries":
        return IndicatorSeries(
            closes=[candle.close for candle in candles],
            highs=[candle.high for candle in candles],
            lows=[candle.low for candle in candles],
            volumes=[candle.volume for candle in candles],
        )

    def sma(self, window: int) -> Optional[float]:
        return sma(self.closes, window)

    def ema(self, window: int) -> Optional[float]:
        return ema(self.closes, window)

    def bollinger(self, window: int, stddevs: float) -> Optional[BollingerBands]:
        return bollinger(self.closes, window, stddevs)

    def rsi(self, period: int) -> Optional[float]:
        return rsi(self.closes, period)

    def volume_ratio(self, period: int = VOLUME_PERIOD) -> float:
        return volume_ratio(self.volumes, period)


def sma(values: Sequence[float], window: int) -> Optional[float]:
    if window <= 0 or len(values) < window:
        return None
    slice_ = values[-window:]
    return sum(slice_) / window


def ema(values: Sequence[float], window: int) -> Optional[float]:
    if window <= 0 or len(values) < window:
        return None
    alpha = 2.0 / (window + 1.0)
    ema_value = values[-window]
    for value in values[-window + 1 :]:
        ema_value = alpha * value + (1.0 - alpha) * ema_value
    return ema_value


def ema_from_start(values: Sequence[float], window: int) -> Optional[float]:
    """EMA over the whole series, seeded with its first value."""
    if not values:
        return None
    alpha = 2.0 / (window + 1.0)
    ema_value = values[0]
    for value in values[1:]:
        ema_value = alpha * value + (1.0 - alpha) * ema_value
    return ema_value


def ema_series(values: Sequence[float], window: int) -> list[float]:
    """SMA-seeded EMA; element ``k`` corresponds to ``values[window - 1 + k]``."""
    if window <= 0 or len(values) < window:
        return []
    alpha = 2.0 / (window + 1.0)
    series = [sum(values[:window]) / window]
    for value in values[window:]:
        series.append((value - series[-1]) * alpha + series[-1])
    return series


def stddev(values: Sequence[float], window: int) -> Optional[float]:
    if window <= 0 or len(values) < window:
        return None
    slice_ = values[-window:]
    mean = sum(slice_) / window
    variance = sum((value - mean) ** 2 for value in slice_) / window
    return variance**0.5


def bollinger(values: Sequence[float], window: int, stddevs: float) -> Optional[BollingerBands]:
    mean = sma(values, window)
    deviation = stddev(values, window)
    if mean is None or deviation is None:
        return None
    return BollingerBands(upper=mean + stddevs * deviation, middle=mean, lower=mean - stddevs * deviation)


def bollinger_series(values: Sequence[float], window: int, stddevs: float) -> list[BollingerBands]:
    bands = []
    for end in range(window, len(values) + 1):
        band = bollinger(values[end - window : end], window, stddevs)
        if band is not None:
            bands.append(band)
    return bands


def rsi(values: Sequence[float], period: int) -> Optional[float]:
    """Simple-average RSI over the last ``period`` changes."""
    if len(values) < period + 1:
        return None
    deltas = [values[i] - values[i - 1] for i in range(len(values) - period, len(values))]
    gains = sum(delta for delta in deltas if delta > 0)
    losses = -sum(delta for delta in deltas if delta < 0)
    if gains == 0 and losses == 0:
        return 50.0
    if losses == 0:
        return 100.0
    rs = gains / losses
    return 100.0 - (100.0 / (1.0 + rs))


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    if avg_gain == 0 and avg_loss == 0:
        return 50.0
    if avg_loss == 0:
        return 100.0
    return 100.0 - (100.0 / (1.0 + avg_gain / avg_loss))


def wilder_rsi_series(values: Sequence[float], period: int) -> list[float]:
    """Wilder-smoothed RSI; the last element belongs to the last value."""
    if len(values) < period + 1:
        return []
    gains = []
    losses = []
    for index in range(1, len(values)):
        change = values[index] - values[index - 1]
        gains.append(change if change > 0 else 0.0)
        losses.append(-change if change < 0 else 0.0)

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period
    series = [_rsi_from_averages(avg_gain, avg_loss)]
    for index in range(period, len(gains)):
        avg_gain = (avg_gain * (period - 1) + gains[index]) / period
        avg_loss = (avg_loss * (period - 1) + losses[index]) / period
        series.append(_rsi_from_averages(avg_gain, avg_loss))
    return series


def true_ranges(highs: Sequence[float], lows: Sequence[float], closes: Sequence[float]) -> list[float]:
    ranges = []
    for index in range(1, len(closes)):
        high = highs[index]
        low = lows[index]
        prev_close = closes[index - 1]
        ranges.append(max(high - low, abs(high - prev_close), abs(low - prev_close)))
    return ranges


def atr_series(highs: Sequence[float], lows: Sequence[float], closes: Sequence[float], period: int) -> list[float]:
    """ATR smoothed with an SMA-seeded EMA."""
    return ema_series(true_ranges(highs, lows, closes), period)


def keltner_series(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    window: int,
    multiplier: float,
) -> list[BollingerBands]:
    """Keltner channels around an SMA, using the mean true range inside each window."""
    channels = []
    for end in range(window, len(closes) + 1):
        start = end - window
        middle = sum(closes[start:end]) / window
        ranges = true_ranges(highs[start:end], lows[start:end], closes[start:end])
        average_range = sum(ranges) / len(ranges) if ranges else 0.0
        channels.append(
            BollingerBands(
                upper=middle + multiplier * average_range,
                middle=middle,
                lower=middle - multiplier * average_range,
            )
        )
    return channels


@dataclass(frozen=True)
class MacdSeries:
    macd_line: list[float]
    signal_line: list[float]
    histogram: list[float]


def macd(values: Sequence[float], fast: int = 12, slow: int = 26, signal: int = 9) -> Optional[MacdSeries]:
    """MACD with all three series aligned on the most recent value."""
    fast_series = ema_series(values, fast)
    slow_series = ema_series(values, slow)
    if not slow_series:
        return None
    offset = len(fast_series) - len(slow_series)
    macd_line = [fast_series[offset + index] - value for index, value in enumerate(slow_series)]
    signal_line = ema_series(macd_line, signal)
    if not signal_line:
        return None
    macd_line = macd_line[len(macd_line) - len(signal_line) :]
    histogram = [value - signal_line[index] for index, value in enumerate(macd_line)]
    return MacdSeries(macd_line=macd_line, signal_line=signal_line, histogram=histogram)


def stochastic(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    k_period: int = 14,
    d_period: int = 3,
) -> tuple[list[float], list[float]]:
    k_line = []
    for end in range(k_period, len(closes) + 1):
        period_high = max(highs[end - k_period : end])
        period_low = min(lows[end - k_period : end])
        span = period_high - period_low
        k_line.append(50.0 if span == 0 else (closes[end - 1] - period_low) / span * 100.0)
    d_line = [sum(k_line[end - d_period : end]) / d_period for end in range(d_period, len(k_line) + 1)]
    return k_line, d_line


def volume_ratio(volumes: Sequence[float], period: int = VOLUME_PERIOD) -> float:
    """Current volume over the mean of the last ``period`` volumes (current included)."""
    if not volumes:
        return 0.0
    recent = volumes[-period:]
    average = sum(recent) / len(recent)
    if average <= 0:
        return 0.0
    return volumes[-1] / average


def ichimoku(highs: Sequence[float], lows: Sequence[float], closes: Sequence[float]) -> Optional[IchimokuCloud]:
    if len(closes) < ICHIMOKU_SPAN_B:
        return None

    def midpoint(window: int) -> float:
        return (max(highs[-window:]) + min(lows[-window:])) / 2.0

    conversion = midpoint(ICHIMOKU_CONVERSION)
    base = midpoint(ICHIMOKU_BASE)
    if len(closes) > ICHIMOKU_DISPLACEMENT:
        lagging = closes[-ICHIMOKU_DISPLACEMENT - 1]
    else:
        lagging = closes[-1]
    return IchimokuCloud(
        conversion_line=conversion,
        base_line=base,
        leading_span_a=(conversion + base) / 2.0,
        leading_span_b=midpoint(ICHIMOKU_SPAN_B),
        lagging_span=lagging,
    )


def fibonacci_levels(closes: Sequence[float], lookback: int = FIBONACCI_LOOKBACK) -> Optional[SupportResistanceLevels]:
    if not closes:
        return None
    recent = closes[-lookback:]
    high = max(recent)
    low = min(recent)
    price = closes[-1]
    levels = [low + (high - low) * level for level in FIBONACCI_LEVELS]
    supports = [level for level in levels if level < price]
    resistances = [level for level in levels if level > price]
    return SupportResistanceLevels(
        supports=supports,
        resistances=resistances,
        nearest_support=max(supports) if supports else None,
        nearest_resistance=min(resistances) if resistances else None,
    )


def volume_profile(volumes: Sequence[float], period: int = VOLUME_PERIOD) -> Optional[VolumeProfile]:
    if len(volumes) < period:
        return None
    average = sum(volumes[-period:]) / period
    current = volumes[-1]
    return VolumeProfile(
        volume=current,
        average_volume=average,
        is_high_volume=current > average * HIGH_VOLUME_THRESHOLD,
    )


def build_snapshot(window: Sequence[Candle], ema50: Optional[float] = None) -> IndicatorSnapshot:
    """Indicator snapshot for the last candle of ``window``.

    ``ema50`` may be passed in by callers that maintain it incrementally;
    otherwise it is recomputed over the whole window.
    """
    if not window:
        raise ValueError("Cannot build an indicator snapshot from an empty window")
    if ema50 is None:
        ema50 = ema_from_start([candle.close for candle in window], EMA_TREND_PERIOD)
    series = IndicatorSeries.from_candles(window[-SNAPSHOT_TAIL:])
    price = series.closes[-1]

    rsi_value = series.rsi(RSI_PERIOD)
    bands = series.bollinger(BOLLINGER_PERIOD, BOLLINGER_STDDEV)
    cloud = ichimoku(series.highs, series.lows, series.closes)
    volume = volume_profile(series.volumes)
    levels = fibonacci_levels(series.closes)

    tags: list[str] = []
    if rsi_value is not None:
        if rsi_value > RSI_OVERBOUGHT:
            tags.append("RSI_OVERBOUGHT")
        elif rsi_value < RSI_OVERSOLD:
            tags.append("RSI_OVERSOLD")
    if ema50 is not None:
        tags.append("ABOVE_EMA50" if price > ema50 else "BELOW_EMA50")
    if bands is not None:
        if price <= bands.lower:
            tags.append("BB_LOWER_TOUCH")
        elif price >= bands.upper:
            tags.append("BB_UPPER_TOUCH")
    if cloud is not None:
        above_cloud = price > cloud.leading_span_a and price > cloud.leading_span_b
        below_cloud = price < cloud.leading_span_a and price < cloud.leading_span_b
        lagging_above = cloud.lagging_span > price
        if above_cloud and lagging_above:
            tags.append("ICHIMOKU_BULLISH")
        elif below_cloud and not lagging_above:
            tags.append("ICHIMOKU_BEARISH")
    if levels is not None and price > 0:
        if levels.nearest_support is not None and abs(price - levels.nearest_support) / price < LEVEL_PROXIMITY:
            tags.append("AT_SUPPORT")
        elif (
            levels.nearest_resistance is not None
            and abs(price - levels.nearest_resistance) / price < LEVEL_PROXIMITY
        ):
            tags.append("AT_RESISTANCE")
    if volume is not None and volume.is_high_volume:
        tags.append("HIGH_VOLUME")

    return IndicatorSnapshot(
        price=price,
        rsi=rsi_value,
        ema50=ema50,
        bollinger=bands,
        ichimoku=cloud,
        volume_profile=volume,
        support_resistance=levels,
        tags=tuple(tags),
    )


def snapshot_series(candles: Sequence[Candle]) -> list[IndicatorSnapshot]:
    """Snapshots for every prefix of ``candles``, keeping the EMA incremental."""
    snapshots = []
    alpha = 2.0 / (EMA_TREND_PERIOD + 1.0)
    ema_value: Optional[float] = None
    for index, candle in enumerate(candles):
        ema_value = candle.close if ema_value is None else alpha * candle.close + (1.0 - alpha) * ema_value
        start = max(0, index + 1 - SNAPSHOT_TAIL)
        snapshots.append(build_snapshot(candles[start : index + 1], ema50=ema_value))
    return snapshots
