"""Grid search, Monte Carlo, walk-forward and comparison."""

from backtest_lab.optimization.compare import ComparisonResult, StrategyRanking, compare_strategies
from backtest_lab.optimization.grid import OptimizationResult, ParameterRun, combinations, grid_search
from backtest_lab.optimization.monte_carlo import MonteCarloResult, run_monte_carlo
from backtest_lab.optimization.parallel import BatchResult, CancelToken, run_batch
from backtest_lab.optimization.walk_forward import WalkForwardResult, walk_forward

__all__ = [
    "BatchResult",
    "CancelToken",
    "ComparisonResult",
    "MonteCarloResult",
    "OptimizationResult",
    "ParameterRun",
    "StrategyRanking",
    "WalkForwardResult",
    "combinations",
    "compare_strategies",
    "grid_search",
    "run_batch",
    "run_monte_carlo",
    "walk_forward",
]
