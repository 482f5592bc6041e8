"""Name -> strategy factory lookup."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Callable

from backtest_lab.errors import InvalidRequestError, UnknownStrategyError
from backtest_lab.strategy.base import Strategy
from backtest_lab.strategy.breakout import (
    AtrDynamicParams,
    BbSqueezeParams,
    build_atr_dynamic_from_config,
    build_bb_squeeze_from_config,
)
from backtest_lab.strategy.mean_reversion import (
    BbRsiParams,
    StochasticRsiParams,
    build_bb_rsi_from_config,
    build_stochastic_rsi_from_config,
)
from backtest_lab.strategy.momentum import (
    MacdVolumeParams,
    RsiEmaParams,
    build_macd_volume_from_config,
    build_rsi_ema_from_config,
)
from backtest_lab.strategy.support_resistance import (
    SupportResistanceParams,
    build_support_resistance_from_config,
)
from backtest_lab.strategy.trend import MtfTrendParams, build_mtf_trend_from_config


@dataclass(frozen=True)
class StrategyEntry:
    name: str
    builder: Callable[[dict, str], Strategy]
    params_cls: type
    description: str
    defaults: dict[str, Any] = field(default_factory=dict)

    def parameter_names(self) -> list[str]:
        return [item.name for item in fields(self.params_cls)]

    def build(self, parameters: dict | None = None) -> Strategy:
        merged = dict(self.defaults)
        merged.update(parameters or {})
        return self.builder(merged, self.name)


class StrategyRegistry:
    def __init__(self) -> None:
        self._entries: dict[str, StrategyEntry] = {}

    def register(self, entry: StrategyEntry) -> None:
        self._entries[entry.name] = entry

    def names(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def get(self, name: str) -> StrategyEntry:
        entry = self._entries.get(name)
        if entry is None:
            raise UnknownStrategyError(name, self.names())
        return entry

    def parameter_names(self, name: str) -> list[str]:
        return self.get(name).parameter_names()

    def check_parameters(self, name: str, parameters: dict) -> None:
        allowed = set(self.parameter_names(name))
        unknown = sorted(key for key in parameters if key not in allowed)
        if unknown:
            raise InvalidRequestError(f"Unknown parameter(s) for strategy {name}: {', '.join(unknown)}")

    def build_strategy(self, name: str, parameters: dict | None = None) -> Strategy:
        parameters = parameters or {}
        self.check_parameters(name, parameters)
        try:
            return self.get(name).build(parameters)
        except (TypeError, ValueError) as exc:
            raise InvalidRequestError(f"Invalid parameters for strategy {name}: {exc}") from exc

    def describe(self, name: str) -> dict[str, Any]:
        entry = self.get(name)
        return {
            "name": entry.name,
            "requiredCandles": entry.build().min_window,
            "description": entry.description,
        }


def default_registry() -> StrategyRegistry:
    registry = StrategyRegistry()
    registry.register(
        StrategyEntry(
            "RSI_EMA50",
            build_rsi_ema_from_config,
            RsiEmaParams,
            "Combines RSI momentum indicator with EMA50 trend filter. "
            "Best for short-term trading on 1m-15m timeframes.",
        )
    )
    registry.register(
        StrategyEntry(
            "RSI_EMA200",
            build_rsi_ema_from_config,
            RsiEmaParams,
            "Combines RSI momentum indicator with EMA200 trend filter. "
            "Best for long-term trading on 1h-4h timeframes.",
            defaults={"ema_period": 200},
        )
    )
    registry.register(
        StrategyEntry(
            "BB_RSI",
            build_bb_rsi_from_config,
            BbRsiParams,
            "Uses Bollinger Bands for volatility and RSI for momentum. "
            "Effective in ranging markets and mean reversion strategies.",
        )
    )
    registry.register(
        StrategyEntry(
            "SR_VOLUME",
            build_macd_volume_from_config,
            MacdVolumeParams,
            "Combines support/resistance levels with volume analysis. "
            "Best for swing trading on 1h-4h timeframes.",
        )
    )
    registry.register(
        StrategyEntry(
            "ICHIMOKU",
            build_mtf_trend_from_config,
            MtfTrendParams,
            "Uses Ichimoku Cloud for trend analysis. Best for medium-term trading on 4h-1d timeframes.",
        )
    )
    registry.register(
        StrategyEntry(
            "MACD_VOLUME",
            build_macd_volume_from_config,
            MacdVolumeParams,
            "Combines MACD for trend detection and volume for confirmation. "
            "Useful for trend following strategies.",
        )
    )
    registry.register(
        StrategyEntry(
            "ATR_DYNAMIC",
            build_atr_dynamic_from_config,
            AtrDynamicParams,
            "Uses ATR for volatility and dynamic stop loss. Effective in volatile markets.",
        )
    )
    registry.register(
        StrategyEntry(
            "MTF_TREND",
            build_mtf_trend_from_config,
            MtfTrendParams,
            "Uses multi-timeframe analysis for trend detection. Best for swing trading on 4h-1d timeframes.",
        )
    )
    registry.register(
        StrategyEntry(
            "STOCHASTIC_RSI",
            build_stochastic_rsi_from_config,
            StochasticRsiParams,
            "Mean reversion strategy combining Stochastic and RSI divergence. "
            "Best for sideways markets on 5m-15m timeframes.",
        )
    )
    registry.register(
        StrategyEntry(
            "BB_SQUEEZE",
            build_bb_squeeze_from_config,
            BbSqueezeParams,
            "Breakout strategy detecting market compression and breakout opportunities. "
            "Best for volatile markets on 5m-1h timeframes.",
        )
    )
    registry.register(
        StrategyEntry(
            "SUPPORT_RESISTANCE",
            build_support_resistance_from_config,
            SupportResistanceParams,
            "Market structure strategy identifying key levels and breakout/retest signals. "
            "Best for swing trading on 1h-4h timeframes.",
        )
    )
    return registry


_DEFAULT = default_registry()


def build_strategy(name: str, parameters: dict | None = None) -> Strategy:
    return _DEFAULT.build_strategy(name, parameters)


def describe(name: str) -> dict[str, Any]:
    return _DEFAULT.describe(name)


def available_strategies() -> list[str]:
    return _DEFAULT.names()
