"""Shared builders for the test suite."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from backtest_lab.config.models import BacktestConfig
from backtest_lab.simulator.models import Candle, ExitReason, Signal, SignalAction, Trade
from backtest_lab.strategy.base import Strategy
from backtest_lab.strategy.models import IndicatorSnapshot
from backtest_lab.strategy.registry import StrategyEntry, StrategyRegistry

START_MS = 1_700_000_000_000
HOUR_MS = 3_600_000
DAY_MS = 24 * HOUR_MS


def make_candles(
    closes: Sequence[float],
    start: int = START_MS,
    step: int = HOUR_MS,
    volumes: Optional[Sequence[float]] = None,
) -> list[Candle]:
    candles = []
    previous = closes[0]
    for index, close in enumerate(closes):
        open_ = previous
        open_time = start + index * step
        candles.append(
            Candle(
                open_time=open_time,
                open=open_,
                high=max(open_, close) * 1.002,
                low=min(open_, close) * 0.998,
                close=close,
                volume=volumes[index] if volumes is not None else 1000.0,
                close_time=open_time + step - 1,
            )
        )
        previous = close
    return candles


def wave_closes(count: int, base: float = 100.0, amplitude: float = 8.0, period: int = 40, drift: float = 0.01) -> list[float]:
    return [base + amplitude * math.sin(2 * math.pi * i / period) + drift * i for i in range(count)]


def candle_index(candle: Candle, start: int = START_MS, step: int = HOUR_MS) -> int:
    return (candle.open_time - start) // step


class ScriptedStrategy(Strategy):
    """Emits pre-set actions keyed by candle index; HOLD everywhere else."""

    name = "SCRIPTED"

    def __init__(self, script: dict[int, SignalAction], window: int = 1, confidence: float = 0.9) -> None:
        self.script = script
        self.window = window
        self.confidence = confidence

    @property
    def min_window(self) -> int:
        return self.window

    def analyze(self, window: Sequence[Candle], indicators: IndicatorSnapshot) -> Signal:
        action = self.script.get(candle_index(window[-1]))
        if action is None:
            return Signal.hold(window[-1])
        return self.signal(window, action, self.confidence, "scripted")


@dataclass(frozen=True)
class CycleParams:
    period: int = 6
    hold: int = 3
    required_candles: int = 2


class CycleStrategy(Strategy):
    """BUY every ``period`` candles and SELL ``hold`` candles later."""

    def __init__(self, params: CycleParams, name: str = "CYCLE") -> None:
        self.params = params
        self.name = name

    @property
    def min_window(self) -> int:
        return self.params.required_candles

    def analyze(self, window: Sequence[Candle], indicators: IndicatorSnapshot) -> Signal:
        phase = candle_index(window[-1]) % self.params.period
        if phase == 0:
            return self.signal(window, SignalAction.BUY, 0.8, "cycle start")
        if phase == self.params.hold:
            return self.signal(window, SignalAction.SELL, 0.8, "cycle end")
        return Signal.hold(window[-1])


def build_cycle(parameters: dict, name: str) -> CycleStrategy:
    return CycleStrategy(
        CycleParams(
            period=int(parameters.get("period", 6)),
            hold=int(parameters.get("hold", 3)),
            required_candles=int(parameters.get("required_candles", 2)),
        ),
        name,
    )


def cycle_registry() -> StrategyRegistry:
    registry = StrategyRegistry()
    registry.register(StrategyEntry("CYCLE", build_cycle, CycleParams, "Fixed buy/sell cycle"))
    return registry


def no_cost_config(**overrides) -> BacktestConfig:
    settings = dict(slippage=0.0, maker_fees=0.0, taker_fees=0.0)
    settings.update(overrides)
    return BacktestConfig(**settings)


def make_trade(
    net_pnl: float,
    pnl: Optional[float] = None,
    entry_time: int = START_MS,
    exit_time: Optional[int] = None,
    fees: float = 0.0,
    slippage: float = 0.0,
    cost_basis: float = 1000.0,
) -> Trade:
    gross = net_pnl + fees if pnl is None else pnl
    return Trade(
        entry_time=entry_time,
        exit_time=entry_time + HOUR_MS if exit_time is None else exit_time,
        entry_price=100.0,
        exit_price=100.0 + gross / (cost_basis / 100.0),
        side=SignalAction.BUY,
        quantity=cost_basis / 100.0,
        pnl=gross,
        pnl_percentage=gross / cost_basis * 100.0,
        entry_fees=fees / 2,
        exit_fees=fees / 2,
        entry_slippage=slippage / 2,
        exit_slippage=slippage / 2,
        net_pnl=net_pnl,
        net_pnl_percentage=net_pnl / cost_basis * 100.0,
        exit_reason=ExitReason.SIGNAL,
    )
