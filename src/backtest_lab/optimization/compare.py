"""Side-by-side strategy comparison on one candle series."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from backtest_lab.analysis.metrics import PerformanceMetrics
from backtest_lab.config.models import BacktestConfig
from backtest_lab.errors import OptimizationError
from backtest_lab.optimization.grid import build_job
from backtest_lab.optimization.parallel import CancelToken, run_batch
from backtest_lab.simulator.engine import DEFAULT_ACTIVATION_THRESHOLD
from backtest_lab.simulator.models import Candle
from backtest_lab.strategy.indicators import snapshot_series
from backtest_lab.strategy.registry import StrategyRegistry, default_registry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StrategyRanking:
    strategy: str
    performance: PerformanceMetrics
    trade_count: int


@dataclass(frozen=True)
class StrategyFailure:
    strategy: str
    error: str


@dataclass(frozen=True)
class ComparisonResult:
    rankings: list[StrategyRanking]
    failures: list[StrategyFailure] = field(default_factory=list)

    @property
    def best(self) -> StrategyRanking:
        return self.rankings[0]


@dataclass(frozen=True)
class _StrategyJob:
    candles: tuple[Candle, ...]
    snapshots: tuple
    config: BacktestConfig
    activation_threshold: float
    registry: Optional[StrategyRegistry]

    def __call__(self, strategy_name: str) -> StrategyRanking:
        job = build_job(
            self.candles,
            strategy_name,
            self.config,
            activation_threshold=self.activation_threshold,
            snapshots=self.snapshots,
            registry=self.registry,
        )
        result = job.run()
        return StrategyRanking(strategy=strategy_name, performance=result.performance, trade_count=len(result.trades))


def compare_strategies(
    candles: Sequence[Candle],
    strategy_names: Sequence[str],
    config: BacktestConfig,
    activation_threshold: float = DEFAULT_ACTIVATION_THRESHOLD,
    registry: Optional[StrategyRegistry] = None,
    executor: str = "thread",
    max_workers: Optional[int] = None,
    timeout: Optional[float] = None,
    cancel_token: Optional[CancelToken] = None,
) -> ComparisonResult:
    """Rank strategies by net Sharpe ratio, highest first."""
    candles = tuple(candles)
    job = _StrategyJob(
        candles=candles,
        snapshots=tuple(snapshot_series(candles)),
        config=config.validate(),
        activation_threshold=activation_threshold,
        registry=registry or default_registry(),
    )
    outcomes = run_batch(
        job,
        list(strategy_names),
        executor=executor,
        max_workers=max_workers,
        timeout=timeout,
        cancel_token=cancel_token,
    )
    rankings = [outcome.value for outcome in outcomes if outcome.ok]
    failures = [StrategyFailure(strategy=outcome.item, error=outcome.error) for outcome in outcomes if not outcome.ok]
    if not rankings:
        raise OptimizationError("No strategy produced a result: " + "; ".join(f.error for f in failures))
    rankings.sort(key=lambda ranking: ranking.performance.net_sharpe_ratio, reverse=True)
    return ComparisonResult(rankings=rankings, failures=failures)
