"""Indicator snapshot models handed to strategies."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class BollingerBands:
    upper: float
    middle: float
    lower: float

    @property
    def width(self) -> float:
        if self.middle == 0:
            return 0.0
        return (self.upper - self.lower) / self.middle


@dataclass(frozen=True)
class IchimokuCloud:
    conversion_line: float
    base_line: float
    leading_span_a: float
    leading_span_b: float
    lagging_span: float


@dataclass(frozen=True)
class VolumeProfile:
    volume: float
    average_volume: float
    is_high_volume: bool


@dataclass(frozen=True)
class SupportResistanceLevels:
    supports: list[float]
    resistances: list[float]
    nearest_support: Optional[float]
    nearest_resistance: Optional[float]


@dataclass(frozen=True)
class IndicatorSnapshot:
    price: float
    rsi: Optional[float] = None
    ema50: Optional[float] = None
    bollinger: Optional[BollingerBands] = None
    ichimoku: Optional[IchimokuCloud] = None
    volume_profile: Optional[VolumeProfile] = None
    support_resistance: Optional[SupportResistanceLevels] = None
    tags: tuple[str, ...] = field(default_factory=tuple)

    def has(self, tag: str) -> bool:
        return tag in self.tags
