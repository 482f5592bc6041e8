"""Signal generators and the strategy registry."""

from backtest_lab.strategy.base import INSUFFICIENT_DATA, Strategy
from backtest_lab.strategy.breakout import AtrDynamicStrategy, BbSqueezeStrategy
from backtest_lab.strategy.indicators import build_snapshot, snapshot_series
from backtest_lab.strategy.mean_reversion import BbRsiStrategy, StochasticRsiStrategy
from backtest_lab.strategy.models import IndicatorSnapshot
from backtest_lab.strategy.momentum import MacdVolumeStrategy, RsiEmaStrategy
from backtest_lab.strategy.registry import (
    StrategyEntry,
    StrategyRegistry,
    available_strategies,
    build_strategy,
    default_registry,
    describe,
)
from backtest_lab.strategy.support_resistance import SupportResistanceStrategy
from backtest_lab.strategy.trend import MtfTrendStrategy

__all__ = [
    "INSUFFICIENT_DATA",
    "AtrDynamicStrategy",
    "BbRsiStrategy",
    "BbSqueezeStrategy",
    "IndicatorSnapshot",
    "MacdVolumeStrategy",
    "MtfTrendStrategy",
    "RsiEmaStrategy",
    "StochasticRsiStrategy",
    "Strategy",
    "StrategyEntry",
    "StrategyRegistry",
    "SupportResistanceStrategy",
    "available_strategies",
    "build_snapshot",
    "build_strategy",
    "default_registry",
    "describe",
    "snapshot_series",
]
