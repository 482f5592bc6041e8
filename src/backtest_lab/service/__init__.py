"""Request validation and the async backtest service."""

from backtest_lab.service.backtest_service import BacktestService, ServiceResponse, popular_symbols
from backtest_lab.service.requests import BacktestRequest, parse_backtest_request

__all__ = [
    "BacktestRequest",
    "BacktestService",
    "ServiceResponse",
    "parse_backtest_request",
    "popular_symbols",
]
