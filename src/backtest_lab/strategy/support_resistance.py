"""Pivot-based support/resistance strategy."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence

from backtest_lab.simulator.models import Candle, Signal, SignalAction
from backtest_lab.strategy.base import INSUFFICIENT_DATA, Strategy
from backtest_lab.strategy.indicators import IndicatorSeries
from backtest_lab.strategy.models import IndicatorSnapshot

SUPPORT = "support"
RESISTANCE = "resistance"
BULLISH = "bullish"
BEARISH = "bearish"
SIDEWAYS = "sideways"

MAX_LEVEL_STRENGTH = 5.0
MERGE_TOLERANCE = 0.01


@dataclass(frozen=True)
class SupportResistanceParams:
    pivot_lookback: int = 20
    strength_threshold: float = 3.0
    volume_threshold: float = 1.5
    retest_volume: float = 1.2
    moderate_volume: float = 1.1
    trend_period: int = 14
    consolidation_threshold: float = 0.02
    retest_tolerance: float = 0.005
    required_candles: int = 60
    history: int = 250

    @staticmethod
    def from_dict(data: dict) -> "SupportResistanceParams":
        return SupportResistanceParams(
            pivot_lookback=int(data.get("pivot_lookback", 20)),
            strength_threshold=float(data.get("strength_threshold", 3.0)),
            volume_threshold=float(data.get("volume_threshold", 1.5)),
            retest_volume=float(data.get("retest_volume", 1.2)),
            moderate_volume=float(data.get("moderate_volume", 1.1)),
            trend_period=int(data.get("trend_period", 14)),
            consolidation_threshold=float(data.get("consolidation_threshold", 0.02)),
            retest_tolerance=float(data.get("retest_tolerance", 0.005)),
            required_candles=int(data.get("required_candles", 60)),
            history=int(data.get("history", 250)),
        )


@dataclass
class PivotLevel:
    price: float
    kind: str
    strength: float = 1.0
    touches: int = 1

    @property
    def weight(self) -> float:
        return self.strength * self.touches


@dataclass(frozen=True)
class MarketStructure:
    supports: list[PivotLevel] = field(default_factory=list)
    resistances: list[PivotLevel] = field(default_factory=list)
    trend: str = SIDEWAYS
    trend_strength: float = 0.0


@dataclass(frozen=True)
class LevelEvent:
    bullish: bool = False
    bearish: bool = False
    level: Optional[float] = None
    score: float = 0.0


def _is_swing(values: list[float], index: int, lookback: int, higher: bool) -> bool:
    current = values[index]
    for j in range(index - lookback, index + lookback + 1):
        if j == index:
            continue
        if higher and values[j] >= current:
            return False
        if not higher and values[j] <= current:
            return False
    return True


def find_pivots(series: IndicatorSeries, params: SupportResistanceParams) -> list[PivotLevel]:
    """Swing highs/lows merged within 1% and scored by how often closes revisit them.

    Only levels at or above ``strength_threshold`` are returned.
    """
    lookback = params.pivot_lookback
    raw: list[PivotLevel] = []
    for i in range(lookback, len(series.highs) - lookback):
        if _is_swing(series.highs, i, lookback, higher=True):
            raw.append(PivotLevel(series.highs[i], RESISTANCE))
    for i in range(lookback, len(series.lows) - lookback):
        if _is_swing(series.lows, i, lookback, higher=False):
            raw.append(PivotLevel(series.lows[i], SUPPORT))

    merged: list[PivotLevel] = []
    for pivot in raw:
        for existing in merged:
            if existing.kind == pivot.kind and abs(existing.price - pivot.price) / existing.price < MERGE_TOLERANCE:
                existing.touches += 1
                existing.strength = min(existing.strength + 0.5, MAX_LEVEL_STRENGTH)
                break
        else:
            merged.append(pivot)

    for pivot in merged:
        touches = 1 + sum(
            1 for close in series.closes if abs(close - pivot.price) / pivot.price < params.retest_tolerance
        )
        pivot.touches = max(pivot.touches, touches)
        pivot.strength = min(pivot.strength + (touches - 1) * 0.3, MAX_LEVEL_STRENGTH)

    return [pivot for pivot in merged if pivot.strength >= params.strength_threshold]


def market_structure(pivots: list[PivotLevel], price: float) -> MarketStructure:
    supports = sorted(
        (p for p in pivots if p.kind == SUPPORT and p.price < price), key=lambda p: p.weight, reverse=True
    )
    resistances = sorted((p for p in pivots if p.kind == RESISTANCE and p.price > price), key=lambda p: p.weight)
    trend, strength = SIDEWAYS, 0.0
    if supports and resistances:
        support_distance = (price - supports[0].price) / supports[0].price
        resistance_distance = (resistances[0].price - price) / resistances[0].price
        if support_distance > resistance_distance * 1.5:
            trend = BULLISH
            strength = min(support_distance / resistance_distance, 3.0) if resistance_distance else 3.0
        elif resistance_distance > support_distance * 1.5:
            trend = BEARISH
            strength = min(resistance_distance / support_distance, 3.0) if support_distance else 3.0
    return MarketStructure(supports=supports, resistances=resistances, trend=trend, trend_strength=strength)


def detect_breakout(
    pivots: list[PivotLevel], previous_close: float, price: float, params: SupportResistanceParams
) -> LevelEvent:
    """A close that crossed a qualified level on this candle."""
    for pivot in pivots:
        if pivot.kind != RESISTANCE or pivot.touches < 2 or pivot.strength < params.strength_threshold:
            continue
        if previous_close <= pivot.price < price:
            return LevelEvent(bullish=True, level=pivot.price, score=pivot.weight)
    for pivot in pivots:
        if pivot.kind != SUPPORT or pivot.touches < 2 or pivot.strength < params.strength_threshold:
            continue
        if previous_close >= pivot.price > price:
            return LevelEvent(bearish=True, level=pivot.price, score=pivot.weight)
    return LevelEvent()


def detect_retest(structure: MarketStructure, price: float, tolerance: float) -> LevelEvent:
    for support in structure.supports:
        if abs(price - support.price) / support.price < tolerance and support.touches >= 2:
            return LevelEvent(bullish=True, level=support.price, score=support.touches)
    for resistance in structure.resistances:
        if abs(price - resistance.price) / resistance.price < tolerance and resistance.touches >= 2:
            return LevelEvent(bearish=True, level=resistance.price, score=resistance.touches)
    return LevelEvent()


def price_range(closes: list[float], period: int) -> float:
    recent = closes[-period:]
    low = min(recent)
    if low <= 0:
        return 0.0
    return (max(recent) - low) / low


class SupportResistanceStrategy(Strategy):
    """Breakouts through, and retests of, pivot support/resistance levels.

    Decision order: volume-confirmed breakout (up to 0.95), retest with
    >= 1.2x volume (0.7), breakout with >= 1.1x volume (0.6), consolidation
    HOLD (0.8), trend continuation (0.5).
    """

    def __init__(self, params: SupportResistanceParams, name: str = "SUPPORT_RESISTANCE") -> None:
        self.params = params
        self.name = name

    @property
    def min_window(self) -> int:
        return self.params.required_candles

    def analyze(self, window: Sequence[Candle], indicators: IndicatorSnapshot) -> Signal:
        if not self.has_enough_data(window) or len(window) < 2:
            return Signal.hold(window[-1], INSUFFICIENT_DATA)
        p = self.params
        series = IndicatorSeries.from_candles(window[-p.history :])
        price = series.closes[-1]
        pivots = find_pivots(series, p)
        structure = market_structure(pivots, price)
        ratio = series.volume_ratio()
        breakout = detect_breakout(pivots, series.closes[-2], price, p)
        retest = detect_retest(structure, price, p.retest_tolerance)

        if (breakout.bullish or breakout.bearish) and ratio >= p.volume_threshold:
            confidence = min(0.8 + (ratio - p.volume_threshold) * 0.2, 0.95)
            if breakout.bullish:
                return self.signal(
                    window,
                    SignalAction.BUY,
                    confidence,
                    f"Strong bullish breakout: Price above resistance {breakout.level:.4f}, volume spike "
                    f"{ratio:.2f}x, trend={structure.trend}, strength={breakout.score:.2f}",
                )
            return self.signal(
                window,
                SignalAction.SELL,
                confidence,
                f"Strong bearish breakout: Price below support {breakout.level:.4f}, volume spike "
                f"{ratio:.2f}x, trend={structure.trend}, strength={breakout.score:.2f}",
            )
        if retest.bullish and ratio >= p.retest_volume:
            return self.signal(
                window,
                SignalAction.BUY,
                0.7,
                f"Bullish retest: Price bouncing off support {retest.level:.4f}, volume {ratio:.2f}x, "
                f"touches={int(retest.score)}",
            )
        if retest.bearish and ratio >= p.retest_volume:
            return self.signal(
                window,
                SignalAction.SELL,
                0.7,
                f"Bearish retest: Price rejecting from resistance {retest.level:.4f}, volume {ratio:.2f}x, "
                f"touches={int(retest.score)}",
            )
        if breakout.bullish and ratio >= p.moderate_volume:
            return self.signal(
                window,
                SignalAction.BUY,
                0.6,
                f"Weak bullish breakout: Price above resistance {breakout.level:.4f}, moderate volume {ratio:.2f}x",
            )
        if breakout.bearish and ratio >= p.moderate_volume:
            return self.signal(
                window,
                SignalAction.SELL,
                0.6,
                f"Weak bearish breakout: Price below support {breakout.level:.4f}, moderate volume {ratio:.2f}x",
            )
        spread = price_range(series.closes, p.trend_period)
        if spread < p.consolidation_threshold and structure.trend == SIDEWAYS:
            return Signal.hold(
                window[-1],
                f"Consolidation detected: Price range {spread * 100:.2f}%, waiting for breakout",
                confidence=0.8,
            )
        if structure.trend_strength > 1.5 and ratio >= p.moderate_volume:
            if structure.trend == BULLISH:
                return self.signal(
                    window,
                    SignalAction.BUY,
                    0.5,
                    f"Trend continuation: Bullish trend strength={structure.trend_strength:.2f}",
                )
            if structure.trend == BEARISH:
                return self.signal(
                    window,
                    SignalAction.SELL,
                    0.5,
                    f"Trend continuation: Bearish trend strength={structure.trend_strength:.2f}",
                )
        return Signal.hold(window[-1])


def build_support_resistance_from_config(
    parameters: dict, name: str = "SUPPORT_RESISTANCE"
) -> SupportResistanceStrategy:
    return SupportResistanceStrategy(SupportResistanceParams.from_dict(parameters), name=name)
