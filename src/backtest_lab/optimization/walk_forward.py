"""Rolling in-sample optimisation with out-of-sample validation."""

from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from backtest_lab.analysis.aggregate import average_metrics, stability_score
from backtest_lab.analysis.metrics import PerformanceMetrics
from backtest_lab.config.models import DEFAULT_PARAM_RANGES, BacktestConfig
from backtest_lab.errors import BacktestError, BatchCancelled, InvalidRequestError
from backtest_lab.optimization.grid import build_job, grid_search
from backtest_lab.optimization.parallel import CancelToken
from backtest_lab.simulator.engine import DEFAULT_ACTIVATION_THRESHOLD
from backtest_lab.simulator.models import Candle
from backtest_lab.strategy.indicators import snapshot_series
from backtest_lab.strategy.registry import StrategyRegistry, default_registry

logger = logging.getLogger(__name__)

MS_PER_DAY = 86_400_000


@dataclass(frozen=True)
class WalkForwardPeriod:
    start_date: int
    end_date: int
    in_sample: PerformanceMetrics
    out_of_sample: PerformanceMetrics
    params: dict[str, Any]
    out_of_sample_candles: int = 0


@dataclass(frozen=True)
class SkippedPeriod:
    start_date: int
    end_date: int
    reason: str


@dataclass(frozen=True)
class WalkForwardResult:
    periods: list[WalkForwardPeriod]
    average_out_of_sample: PerformanceMetrics
    stability_score: float
    skipped_periods: list[SkippedPeriod] = field(default_factory=list)


def _slice(open_times: list[int], start: int, end: int) -> tuple[int, int]:
    """Index bounds of candles with ``start <= open_time < end``."""
    return bisect.bisect_left(open_times, start), bisect.bisect_left(open_times, end)


def walk_forward(
    candles: Sequence[Candle],
    strategy_name: str,
    config: BacktestConfig,
    window_days: float = 30.0,
    step_days: float = 7.0,
    param_ranges: Optional[dict[str, Sequence[Any]]] = None,
    strategy_params: Optional[dict[str, Any]] = None,
    activation_threshold: float = DEFAULT_ACTIVATION_THRESHOLD,
    registry: Optional[StrategyRegistry] = None,
    executor: str = "thread",
    max_workers: Optional[int] = None,
    timeout: Optional[float] = None,
    cancel_token: Optional[CancelToken] = None,
) -> WalkForwardResult:
    """Optimise on ``[cursor, cursor + window)`` and test on the following ``step``.

    The final out-of-sample slice runs through the last candle inclusive.

    Indicator snapshots are computed once over the full series and sliced with
    the candles, so each slice sees the same indicator values as a full run.
    """
    if window_days <= 0 or step_days <= 0:
        raise InvalidRequestError("Window size and step size must be greater than 0")
    if not candles:
        raise InvalidRequestError("No historical data available for walk-forward analysis")
    registry = registry or default_registry()
    min_window = registry.build_strategy(strategy_name, strategy_params).min_window
    ranges = param_ranges if param_ranges is not None else DEFAULT_PARAM_RANGES

    candles = tuple(candles)
    snapshots = tuple(snapshot_series(candles))
    open_times = [candle.open_time for candle in candles]
    window_ms = int(window_days * MS_PER_DAY)
    step_ms = int(step_days * MS_PER_DAY)
    last_open = open_times[-1]

    periods: list[WalkForwardPeriod] = []
    skipped: list[SkippedPeriod] = []
    cursor = open_times[0]
    while cursor + window_ms < last_open:
        in_sample_end = cursor + window_ms
        out_end = min(in_sample_end + step_ms, last_open)
        in_lo, in_hi = _slice(open_times, cursor, in_sample_end)
        out_lo, out_hi = _slice(open_times, in_sample_end, out_end)
        if out_end == last_open:
            out_hi = len(open_times)
        try:
            if out_hi - out_lo < min_window:
                raise InvalidRequestError(
                    f"Out-of-sample slice has {out_hi - out_lo} candles, strategy needs {min_window}"
                )
            optimization = grid_search(
                candles[in_lo:in_hi],
                strategy_name,
                config,
                ranges,
                strategy_params=strategy_params,
                activation_threshold=activation_threshold,
                snapshots=snapshots[in_lo:in_hi],
                registry=registry,
                executor=executor,
                max_workers=max_workers,
                timeout=timeout,
                cancel_token=cancel_token,
            )
            job = build_job(
                candles[out_lo:out_hi],
                strategy_name,
                config,
                strategy_params,
                activation_threshold,
                snapshots=snapshots[out_lo:out_hi],
                registry=registry,
            )
            out_of_sample = job(optimization.best_params)
        except BatchCancelled:
            raise
        except BacktestError as exc:
            logger.warning("Skipping walk-forward period starting %d: %s", cursor, exc)
            skipped.append(SkippedPeriod(start_date=cursor, end_date=out_end, reason=str(exc)))
        else:
            periods.append(
                WalkForwardPeriod(
                    start_date=cursor,
                    end_date=out_end,
                    in_sample=optimization.best_performance,
                    out_of_sample=out_of_sample,
                    params=optimization.best_params,
                    out_of_sample_candles=out_hi - out_lo,
                )
            )
        cursor += step_ms

    out_of_sample_metrics = [period.out_of_sample for period in periods]
    return WalkForwardResult(
        periods=periods,
        average_out_of_sample=average_metrics(out_of_sample_metrics),
        stability_score=stability_score(m.net_total_return_percentage for m in out_of_sample_metrics),
        skipped_periods=skipped,
    )
