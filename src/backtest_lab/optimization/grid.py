"""Exhaustive parameter grid search."""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional, Sequence

from backtest_lab.analysis.metrics import PerformanceMetrics
from backtest_lab.config.models import BacktestConfig, is_config_key
from backtest_lab.errors import OptimizationError
from backtest_lab.optimization.parallel import CancelToken, run_batch
from backtest_lab.simulator.engine import DEFAULT_ACTIVATION_THRESHOLD, ExecutionSimulator
from backtest_lab.simulator.models import BacktestResult, Candle
from backtest_lab.strategy.indicators import snapshot_series
from backtest_lab.strategy.models import IndicatorSnapshot
from backtest_lab.strategy.registry import StrategyRegistry, default_registry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParameterRun:
    params: dict[str, Any]
    performance: PerformanceMetrics


@dataclass(frozen=True)
class ParameterFailure:
    params: dict[str, Any]
    error: str


@dataclass(frozen=True)
class OptimizationResult:
    best_params: dict[str, Any]
    best_performance: PerformanceMetrics
    all_results: list[ParameterRun]
    failures: list[ParameterFailure] = field(default_factory=list)


def combinations(param_ranges: dict[str, Sequence[Any]]) -> Iterator[dict[str, Any]]:
    """Lazily yield every combination, last key varying fastest."""
    names = list(param_ranges)
    for values in itertools.product(*(param_ranges[name] for name in names)):
        yield dict(zip(names, values))


def split_params(params: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    config_part = {key: value for key, value in params.items() if is_config_key(key)}
    strategy_part = {key: value for key, value in params.items() if not is_config_key(key)}
    return config_part, strategy_part


@dataclass(frozen=True)
class SimulationJob:
    """One reusable simulation setup; calling it runs a single combination.

    Holds only immutable inputs so it can be shared by threads or pickled to
    worker processes.
    """

    candles: tuple[Candle, ...]
    snapshots: tuple[IndicatorSnapshot, ...]
    strategy_name: str
    config: BacktestConfig
    strategy_params: dict[str, Any] = field(default_factory=dict)
    activation_threshold: float = DEFAULT_ACTIVATION_THRESHOLD
    registry: Optional[StrategyRegistry] = None

    def run(self, params: Optional[dict[str, Any]] = None) -> BacktestResult:
        config_part, strategy_part = split_params(params or {})
        config = self.config.with_overrides(config_part).validate()
        registry = self.registry or default_registry()
        strategy = registry.build_strategy(self.strategy_name, {**self.strategy_params, **strategy_part})
        simulator = ExecutionSimulator(config, activation_threshold=self.activation_threshold)
        return simulator.run(self.candles, strategy, self.snapshots)

    def __call__(self, params: dict[str, Any]) -> PerformanceMetrics:
        return self.run(params).performance


def build_job(
    candles: Sequence[Candle],
    strategy_name: str,
    config: BacktestConfig,
    strategy_params: Optional[dict[str, Any]] = None,
    activation_threshold: float = DEFAULT_ACTIVATION_THRESHOLD,
    snapshots: Optional[Sequence[IndicatorSnapshot]] = None,
    registry: Optional[StrategyRegistry] = None,
) -> SimulationJob:
    candles = tuple(candles)
    if snapshots is None:
        snapshots = snapshot_series(candles)
    return SimulationJob(
        candles=candles,
        snapshots=tuple(snapshots),
        strategy_name=strategy_name,
        config=config,
        strategy_params=dict(strategy_params or {}),
        activation_threshold=activation_threshold,
        registry=registry,
    )


def grid_search(
    candles: Sequence[Candle],
    strategy_name: str,
    config: BacktestConfig,
    param_ranges: dict[str, Sequence[Any]],
    strategy_params: Optional[dict[str, Any]] = None,
    activation_threshold: float = DEFAULT_ACTIVATION_THRESHOLD,
    snapshots: Optional[Sequence[IndicatorSnapshot]] = None,
    registry: Optional[StrategyRegistry] = None,
    executor: str = "thread",
    max_workers: Optional[int] = None,
    timeout: Optional[float] = None,
    cancel_token: Optional[CancelToken] = None,
) -> OptimizationResult:
    """Run every combination of ``param_ranges`` and keep the best net Sharpe.

    Keys naming a ``BacktestConfig`` field (camelCase or snake_case) override
    the config; any other key must be a parameter of the strategy.
    """
    registry = registry or default_registry()
    _, strategy_keys = split_params(dict.fromkeys(param_ranges))
    registry.check_parameters(strategy_name, strategy_keys)
    registry.check_parameters(strategy_name, strategy_params or {})

    job = build_job(candles, strategy_name, config, strategy_params, activation_threshold, snapshots, registry)
    logger.info("Starting grid search for %s over %s", strategy_name, ", ".join(param_ranges) or "no parameters")
    outcomes = run_batch(
        job,
        combinations(param_ranges),
        executor=executor,
        max_workers=max_workers,
        timeout=timeout,
        cancel_token=cancel_token,
    )

    runs: list[ParameterRun] = []
    failures: list[ParameterFailure] = []
    for outcome in outcomes:
        if outcome.ok:
            runs.append(ParameterRun(params=outcome.item, performance=outcome.value))
        else:
            failures.append(ParameterFailure(params=outcome.item, error=outcome.error))
    if not runs:
        detail = f": {failures[0].error}" if failures else ""
        raise OptimizationError(f"No parameter combination produced a result{detail}")

    best = runs[0]
    for run in runs[1:]:
        if run.performance.net_sharpe_ratio > best.performance.net_sharpe_ratio:
            best = run
    logger.info(
        "Grid search finished: %d succeeded, %d failed, best net Sharpe %.4f",
        len(runs),
        len(failures),
        best.performance.net_sharpe_ratio,
    )
    return OptimizationResult(
        best_params=dict(best.params),
        best_performance=best.performance,
        all_results=runs,
        failures=failures,
    )
