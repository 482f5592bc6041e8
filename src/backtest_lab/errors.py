"""Exception hierarchy shared by the engine, service and API."""

from __future__ import annotations


class BacktestError(Exception):
    """Base class for every error the service turns into a structured failure."""


class InvalidRequestError(BacktestError):
    """Client error: missing fields, out-of-range config, bad parameters."""


class UnknownStrategyError(InvalidRequestError):
    def __init__(self, name: str, available: list[str]) -> None:
        self.name = name
        self.available = list(available)
        super().__init__(f"Strategy '{name}' not found. Available strategies: {', '.join(self.available)}")


class InsufficientDataError(InvalidRequestError):
    def __init__(self, required: int, actual: int) -> None:
        self.required = required
        self.actual = actual
        super().__init__(f"Insufficient data. Need at least {required} candles, got {actual}")


class OptimizationError(BacktestError):
    """A batch operation produced zero usable results."""


class DataProviderError(BacktestError):
    """The historical data source failed after retries."""


class BatchCancelled(BacktestError):
    """A batch was cancelled or exceeded its wall-clock timeout."""
