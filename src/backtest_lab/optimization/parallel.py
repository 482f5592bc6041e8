"""Bounded batch execution for independent simulation runs."""

from __future__ import annotations

import logging
import os
import time
from concurrent.futures import FIRST_COMPLETED, Executor, Future, ProcessPoolExecutor, ThreadPoolExecutor, wait
from dataclasses import dataclass
from threading import Event
from typing import Any, Callable, Generic, Iterable, Iterator, Optional, TypeVar

from backtest_lab.errors import BatchCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

EXECUTORS = ("thread", "process")
POLL_INTERVAL_SECONDS = 0.1


class CancelToken:
    """Cooperative cancel flag shared between a caller and a running batch."""

    def __init__(self) -> None:
        self._event = Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class BatchResult(Generic[T, R]):
    index: int
    item: T
    value: Optional[R] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def resolve_workers(max_workers: Optional[int]) -> int:
    cpus = os.cpu_count() or 1
    if max_workers is None:
        return cpus
    return max(1, min(max_workers, cpus))


def _describe(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class _Deadline:
    def __init__(self, timeout: Optional[float], cancel_token: Optional[CancelToken]) -> None:
        self.expires_at = None if timeout is None else time.monotonic() + timeout
        self.timeout = timeout
        self.cancel_token = cancel_token

    def remaining(self) -> Optional[float]:
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - time.monotonic())

    def check(self) -> None:
        if self.cancel_token is not None and self.cancel_token.cancelled:
            raise BatchCancelled("Batch cancelled")
        if self.expires_at is not None and time.monotonic() >= self.expires_at:
            logger.error("Batch exceeded its %.1fs timeout", self.timeout)
            raise BatchCancelled(f"Batch timed out after {self.timeout:.1f}s")


def _run_inline(func: Callable[[T], R], items: Iterator[tuple[int, T]], deadline: _Deadline) -> list[BatchResult]:
    results: list[BatchResult] = []
    for index, item in items:
        deadline.check()
        try:
            results.append(BatchResult(index, item, value=func(item)))
        except Exception as exc:
            logger.warning("Batch member %d failed: %s", index, _describe(exc))
            results.append(BatchResult(index, item, error=_describe(exc)))
    return results


def _make_executor(executor: str, workers: int) -> Executor:
    if executor == "process":
        return ProcessPoolExecutor(max_workers=workers)
    return ThreadPoolExecutor(max_workers=workers, thread_name_prefix="backtest")


def run_batch(
    func: Callable[[T], R],
    items: Iterable[T],
    executor: str = "thread",
    max_workers: Optional[int] = None,
    timeout: Optional[float] = None,
    cancel_token: Optional[CancelToken] = None,
) -> list[BatchResult]:
    """Apply ``func`` to each item and return results in submission order.

    Items are pulled lazily with at most ``2 * workers`` in flight. A failing
    item is recorded on its ``BatchResult`` and the batch carries on. Cancel
    or timeout abandons pending work and raises ``BatchCancelled``. With the
    process executor ``func`` and the items must be picklable.
    """
    if executor not in EXECUTORS:
        raise ValueError(f"Unknown executor: {executor}")
    workers = resolve_workers(max_workers)
    deadline = _Deadline(timeout, cancel_token)
    indexed = enumerate(items)
    if workers == 1:
        return _run_inline(func, indexed, deadline)

    results: dict[int, BatchResult] = {}
    pending: dict[Future, tuple[int, Any]] = {}
    pool = _make_executor(executor, workers)
    abandoned = False

    def fill() -> None:
        while len(pending) < workers * 2:
            try:
                index, item = next(indexed)
            except StopIteration:
                return
            pending[pool.submit(func, item)] = (index, item)

    try:
        fill()
        while pending:
            deadline.check()
            remaining = deadline.remaining()
            poll = POLL_INTERVAL_SECONDS if remaining is None else min(POLL_INTERVAL_SECONDS, remaining)
            done, _ = wait(list(pending), timeout=poll, return_when=FIRST_COMPLETED)
            for future in done:
                index, item = pending.pop(future)
                exc = future.exception()
                if exc is not None:
                    logger.warning("Batch member %d failed: %s", index, _describe(exc))
                    results[index] = BatchResult(index, item, error=_describe(exc))
                else:
                    results[index] = BatchResult(index, item, value=future.result())
            fill()
    except BatchCancelled:
        abandoned = True
        raise
    finally:
        pool.shutdown(wait=not abandoned, cancel_futures=abandoned)
    return [results[index] for index in sorted(results)]
