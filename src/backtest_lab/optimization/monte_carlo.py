"""Bootstrap resampling of per-trade returns."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Optional, Sequence

from backtest_lab.errors import OptimizationError
from backtest_lab.optimization.parallel import CancelToken, run_batch

PERCENTILES = (0.95, 0.90, 0.75, 0.50, 0.25, 0.10, 0.05)
CHUNK_SIZE = 250


@dataclass(frozen=True)
class MonteCarloResult:
    simulations: int
    percentiles: dict[str, float]
    worst_case: float
    best_case: float
    expected_value: float
    trade_count: int
    mean_trade_return: float


def percentile_key(level: float) -> str:
    return f"p{round(level * 100)}"


def _chunk_seeds(simulations: int, seed: Optional[int]) -> list[tuple[int, int]]:
    base = random.Random(seed) if seed is not None else random.Random()
    chunks = []
    remaining = simulations
    while remaining > 0:
        size = min(CHUNK_SIZE, remaining)
        chunks.append((size, base.getrandbits(64)))
        remaining -= size
    return chunks


def simulate_chunk(returns: tuple[float, ...], size: int, seed: int) -> list[float]:
    rng = random.Random(seed)
    count = len(returns)
    return [sum(rng.choices(returns, k=count)) for _ in range(size)]


@dataclass(frozen=True)
class _ChunkJob:
    returns: tuple[float, ...]

    def __call__(self, chunk: tuple[int, int]) -> list[float]:
        size, seed = chunk
        return simulate_chunk(self.returns, size, seed)


def run_monte_carlo(
    returns: Sequence[float],
    simulations: int = 1000,
    seed: Optional[int] = None,
    executor: str = "thread",
    max_workers: Optional[int] = None,
    timeout: Optional[float] = None,
    cancel_token: Optional[CancelToken] = None,
) -> MonteCarloResult:
    """Resample ``returns`` with replacement ``simulations`` times and summarise the totals.

    Chunks of ``CHUNK_SIZE`` draws get seeds derived from ``seed``, so a seeded
    run gives the same answer regardless of worker count.
    """
    if not returns:
        raise OptimizationError("No trades found for Monte Carlo simulation")
    if simulations < 1:
        raise OptimizationError("Monte Carlo simulation count must be at least 1")

    outcomes = run_batch(
        _ChunkJob(tuple(returns)),
        _chunk_seeds(simulations, seed),
        executor=executor,
        max_workers=max_workers,
        timeout=timeout,
        cancel_token=cancel_token,
    )
    totals: list[float] = []
    for outcome in outcomes:
        if not outcome.ok:
            raise OptimizationError(f"Monte Carlo chunk failed: {outcome.error}")
        totals.extend(outcome.value)
    totals.sort()

    count = len(totals)
    percentiles = {percentile_key(level): totals[min(int(count * level), count - 1)] for level in PERCENTILES}
    return MonteCarloResult(
        simulations=count,
        percentiles=percentiles,
        worst_case=totals[0],
        best_case=totals[-1],
        expected_value=sum(totals) / count,
        trade_count=len(returns),
        mean_trade_return=sum(returns) / len(returns),
    )
